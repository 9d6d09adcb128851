"""
Vector Store module for ctxpack.

Provides the vector store interface with an in-process backend and a
Qdrant backend.
"""

from typing import Optional

from .base import PayloadFilter, VectorStoreError, VectorStoreInterface, payload_matches
from .memory import InMemoryVectorStore
from .qdrant import QdrantVectorStore

__all__ = [
    "PayloadFilter",
    "VectorStoreError",
    "VectorStoreInterface",
    "InMemoryVectorStore",
    "QdrantVectorStore",
    "create_vector_store",
    "payload_matches",
]

BACKENDS = ("memory", "qdrant")


def create_vector_store(
    backend: str = "memory",
    host: str = "localhost",
    port: int = 6333,
    collection_name: str = "ctxpack_chunks",
    vector_size: int = 1536,
    api_key: Optional[str] = None,
    url: Optional[str] = None,
) -> VectorStoreInterface:
    """
    Factory function to create a vector store.

    Args:
        backend: "memory" or "qdrant"
        host: Qdrant server host
        port: Qdrant server port
        collection_name: Name of the Qdrant collection
        vector_size: Dimension of embedding vectors
        api_key: Optional Qdrant API key
        url: Optional Qdrant URL (takes precedence over host/port)
    """
    if backend == "memory":
        return InMemoryVectorStore(vector_size=vector_size)
    if backend == "qdrant":
        return QdrantVectorStore(
            host=host,
            port=port,
            collection_name=collection_name,
            vector_size=vector_size,
            api_key=api_key,
            url=url,
        )
    raise ValueError(f"Unknown vector store backend: {backend!r} (expected one of {BACKENDS})")
