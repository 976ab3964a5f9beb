"""
Transport adapters - one normalized streaming interface over the backends.
"""

from abc import ABC, abstractmethod
from typing import Dict, Iterator, Optional

from duochat.services.ai_service.models import CancellationToken, NormalizedChunk, StreamRequest
from duochat.services.chat_service.exceptions import UnsupportedAttachment
from duochat.services.chat_service.models import FileAttachment


class TransportAdapter(ABC):
    """
    Base class for backend transports.

    ``open`` performs the network open eagerly, raising
    ``TransportOpenFailure``, and returns a single-pass generator of
    ``NormalizedChunk``. The generator raises ``TransportMidStreamFailure``
    when the stream breaks and stops once the token is cancelled.
    """

    backend_id: str = ""
    supports_attachments: bool = False

    def check_attachment(self, file: Optional[FileAttachment]):
        """Fail before any network call when a file cannot be sent"""
        if file is not None and not self.supports_attachments:
            raise UnsupportedAttachment(f"Backend '{self.backend_id}' does not accept file attachments")

    @abstractmethod
    def open(self, request: StreamRequest, cancel_token: CancellationToken) -> Iterator[NormalizedChunk]:
        ...


def build_transports(config) -> Dict[str, TransportAdapter]:
    """Create one adapter per backend from application config"""
    from duochat.infrastructure.external.openai_client import get_openai_client
    from duochat.infrastructure.external.proxy_client import get_proxy_client
    from duochat.services.ai_service.openai_transport import OpenAIStreamTransport
    from duochat.services.ai_service.proxy_transport import ProxyStreamTransport

    transports = [
        OpenAIStreamTransport(get_openai_client(), model=config.llm.model_name),
        ProxyStreamTransport(get_proxy_client()),
    ]
    return {t.backend_id: t for t in transports}
