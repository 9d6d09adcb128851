"""
Embedding client module for ctxpack.

Provides the embedding capability interface and an async HTTP client for
OpenAI-compatible endpoints with batching, backoff and batch-size fallback.
"""

from .client import OpenAIEmbeddingClient, create_embedding_client
from .errors import (
    BatchSizeError,
    EmbeddingClientError,
    NonRetryableError,
    RetryableError,
)
from .interface import EmbeddingClientInterface

__all__ = [
    "EmbeddingClientInterface",
    "OpenAIEmbeddingClient",
    "create_embedding_client",
    "EmbeddingClientError",
    "RetryableError",
    "NonRetryableError",
    "BatchSizeError",
]
