"""
Message processing package initialization.
"""

from .errors import (
    EmbeddingError,
    InboxAssistantError,
    MalformedResponseError,
    ProviderError,
    SyncError,
)
from .models import (
    AnalysisResult,
    BusinessPolicy,
    Channel,
    Message,
    MessageCategory,
    ResponseCost,
    ResponseMode,
    Sentiment,
    SimilarityMatch,
    SimilarityMethod,
    SimilarityResult,
)

__all__ = [
    'AnalysisResult',
    'BusinessPolicy',
    'Channel',
    'EmbeddingError',
    'InboxAssistantError',
    'MalformedResponseError',
    'Message',
    'MessageCategory',
    'ProviderError',
    'ResponseCost',
    'ResponseMode',
    'Sentiment',
    'SimilarityMatch',
    'SimilarityMethod',
    'SimilarityResult',
    'SyncError',
]
