"""
Chat service - conversation state, catalog and local persistence.
"""

from .models import (
    Turn,
    Citation,
    FileAttachment,
    MessageStats,
    ChatSettings,
    CatalogEntry,
    Conversation,
    ChatContext,
)
from .exceptions import (
    ChatError,
    TransportOpenFailure,
    TransportMidStreamFailure,
    MalformedChunk,
    UnsupportedAttachment,
    StorageMiss,
    SessionBusyError,
)

__all__ = [
    'Turn',
    'Citation',
    'FileAttachment',
    'MessageStats',
    'ChatSettings',
    'CatalogEntry',
    'Conversation',
    'ChatContext',
    'ChatError',
    'TransportOpenFailure',
    'TransportMidStreamFailure',
    'MalformedChunk',
    'UnsupportedAttachment',
    'StorageMiss',
    'SessionBusyError',
]
