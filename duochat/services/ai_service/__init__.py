"""
AI service - backend transports and the streaming session controller.
"""

from .models import (
    CancellationToken,
    Draft,
    NormalizedChunk,
    SessionOutcome,
    SessionResult,
    SessionState,
    StreamRequest,
    Usage
)
from .transport import TransportAdapter, build_transports
from .streaming_session import StreamingSessionController, compute_stats

__all__ = [
    'CancellationToken',
    'Draft',
    'NormalizedChunk',
    'SessionOutcome',
    'SessionResult',
    'SessionState',
    'StreamRequest',
    'Usage',
    'TransportAdapter',
    'build_transports',
    'StreamingSessionController',
    'compute_stats'
]
