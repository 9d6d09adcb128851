"""
Centralized services container module for ctxpack.

Wires configuration into the shared tokenizer, chunker, index and the
indexing and retrieval services used by the CLI and by library callers.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ctxpack.core.chunker import Chunker, create_chunker
from ctxpack.core.config import CtxpackConfig, load_config
from ctxpack.core.source_files import SourceScanner
from ctxpack.core.tokenizer import TokenizerInterface, get_default_tokenizer
from ctxpack.infrastructure import (
    ChunkIndex,
    EmbeddingClientInterface,
    LocalEmbeddingClient,
    VectorStoreInterface,
    create_embedding_client,
    create_vector_store,
)
from ctxpack.services.context_cache import ContextCache
from ctxpack.services.indexing_service import IndexingService
from ctxpack.services.retrieval_service import RetrievalService

logger = logging.getLogger(__name__)


@dataclass
class ServicesContainer:
    """
    Container holding all shared service instances.

    Attributes:
        config: Application configuration
        tokenizer: Shared token counter
        chunker: Code chunker for splitting files
        scanner: Scanner for discovering source files
        embedding_client: Client for generating embeddings
        vector_store: Vector database backing the chunk index
        chunk_index: Versioned chunk index
        indexing_service: Write path
        retrieval_service: Read path
    """

    config: CtxpackConfig
    tokenizer: TokenizerInterface
    chunker: Chunker
    scanner: SourceScanner
    embedding_client: EmbeddingClientInterface
    vector_store: VectorStoreInterface
    chunk_index: ChunkIndex
    indexing_service: IndexingService
    retrieval_service: RetrievalService

    async def close(self) -> None:
        await self.embedding_client.close()
        await self.vector_store.close()


def create_services(
    config_path: Optional[Path] = None,
    config: Optional[CtxpackConfig] = None,
) -> ServicesContainer:
    """
    Create and wire all services.

    Args:
        config_path: Optional path to a configuration file. Ignored when
                     ``config`` is given.
        config: Already loaded configuration.

    Returns:
        ServicesContainer with all services wired to one chunk index.

    Raises:
        ConfigurationError: If the configuration is invalid.
    """
    if config is None:
        config = load_config(config_path)

    tokenizer = get_default_tokenizer()
    chunker = create_chunker(
        tokenizer=tokenizer,
        max_tokens=config.indexing.max_chunk_tokens,
        class_split_tokens=config.indexing.class_split_tokens,
    )
    scanner = SourceScanner(
        extensions=set(config.indexing.file_extensions),
        ignore_patterns=config.indexing.ignore_patterns,
    )

    if config.embedding.api_key:
        embedding_client = create_embedding_client(
            api_url=config.embedding.api_url,
            api_key=config.embedding.api_key,
            model=config.embedding.model,
            dimension=config.embedding.dimension,
            batch_size=config.embedding.batch_size,
            timeout=config.embedding.timeout,
            max_retries=config.embedding.max_retries,
        )
    else:
        logger.warning("No embedding API key configured; using local hashed embeddings")
        embedding_client = LocalEmbeddingClient(dimension=config.vector_store.vector_size)

    vector_store = create_vector_store(
        backend=config.vector_store.backend,
        host=config.vector_store.host,
        port=config.vector_store.port,
        collection_name=config.vector_store.collection_name,
        vector_size=config.vector_store.vector_size,
    )
    chunk_index = ChunkIndex(
        vector_store, retained_generations=config.indexing.retained_generations
    )

    indexing_service = IndexingService(
        chunk_index,
        embedding_client,
        chunker=chunker,
        scanner=scanner,
        batch_size=config.embedding.batch_size,
        max_workers=config.indexing.max_workers,
    )
    retrieval_service = RetrievalService(
        chunk_index,
        embedding_client,
        tokenizer=tokenizer,
        cache=ContextCache(),
        default_config=config.context,
    )

    return ServicesContainer(
        config=config,
        tokenizer=tokenizer,
        chunker=chunker,
        scanner=scanner,
        embedding_client=embedding_client,
        vector_store=vector_store,
        chunk_index=chunk_index,
        indexing_service=indexing_service,
        retrieval_service=retrieval_service,
    )
