from .client import (
    EmbeddingEndpointCache,
    ModelResolutionCache,
    OllamaClient,
    parse_embedding_response,
)

__all__ = [
    'OllamaClient',
    'ModelResolutionCache',
    'EmbeddingEndpointCache',
    'parse_embedding_response'
]
