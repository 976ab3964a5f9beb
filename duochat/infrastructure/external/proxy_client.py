"""
Chat proxy client - HTTP access to the server-side DeepSeek proxy.
"""

from typing import Any, Dict, Optional
import requests

from duochat.config.app_config import get_config
from duochat.utils.logging_config import get_logger


class ProxyClient:
    """
    Posts chat history to the proxy endpoint and returns the streaming
    response. The proxy holds the DeepSeek key; this client only carries
    the caller-supplied bearer credential.
    """

    def __init__(self, url: Optional[str] = None, token: Optional[str] = None,
                 timeout: Optional[float] = None, session: Optional[requests.Session] = None):
        self.logger = get_logger(__name__)
        if url is None or token is None or timeout is None:
            config = get_config()
            url = url or config.api.proxy_url
            token = token if token is not None else config.api.proxy_token
            timeout = timeout or config.llm.request_timeout
        self.url = url
        self.token = token
        self.timeout = timeout
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "text/event-stream"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def post_stream(self, payload: Dict[str, Any]) -> requests.Response:
        """POST the payload and return the un-consumed streaming response"""
        self.logger.debug(f"POST {self.url} ({len(payload.get('history', []))} history messages)")
        return self.session.post(
            self.url,
            json=payload,
            headers=self._headers(),
            timeout=self.timeout,
            stream=True
        )


# Global client instance
_proxy_client: Optional[ProxyClient] = None


def get_proxy_client() -> ProxyClient:
    """Get the global proxy client instance"""
    global _proxy_client
    if _proxy_client is None:
        _proxy_client = ProxyClient()
    return _proxy_client
