"""
Infrastructure Layer - Embedding client, vector stores and the versioned chunk index.
"""

from ctxpack.infrastructure.chunk_index import (
    ChunkIndex,
    FileRecord,
    Generation,
    GenerationBuilder,
    IndexSnapshot,
    point_id_for,
)
from ctxpack.infrastructure.embedding import (
    BatchSizeError,
    EmbeddingClientError,
    EmbeddingClientInterface,
    NonRetryableError,
    OpenAIEmbeddingClient,
    RetryableError,
    create_embedding_client,
)
from ctxpack.infrastructure.fakes import (
    FlakyEmbeddingClient,
    FlakyVectorStore,
    LocalEmbeddingClient,
)
from ctxpack.infrastructure.retry import RetryPolicy, with_retry
from ctxpack.infrastructure.vector_store import (
    InMemoryVectorStore,
    QdrantVectorStore,
    VectorStoreError,
    VectorStoreInterface,
    create_vector_store,
)

__all__ = [
    # Embedding client
    "EmbeddingClientInterface",
    "OpenAIEmbeddingClient",
    "EmbeddingClientError",
    "RetryableError",
    "NonRetryableError",
    "BatchSizeError",
    "create_embedding_client",
    # Vector store
    "VectorStoreInterface",
    "InMemoryVectorStore",
    "QdrantVectorStore",
    "VectorStoreError",
    "create_vector_store",
    # Chunk index
    "ChunkIndex",
    "FileRecord",
    "Generation",
    "GenerationBuilder",
    "IndexSnapshot",
    "point_id_for",
    # Retry
    "RetryPolicy",
    "with_retry",
    # Fakes for testing
    "LocalEmbeddingClient",
    "FlakyEmbeddingClient",
    "FlakyVectorStore",
]
