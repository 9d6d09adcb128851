"""
Indexing worker functions for parallel chunking.

Contains worker initialization and file chunking functions that run in
separate processes via ProcessPoolExecutor.
"""

import logging
from typing import Optional

from ctxpack.core.chunker import Chunker, ChunkerConfig, ChunkingResult, create_chunker
from ctxpack.core.errors import SourceParseError
from ctxpack.core.source_files import SourceFile

logger = logging.getLogger(__name__)

# Per-process chunker, built once by init_worker
_worker_chunker: Optional[Chunker] = None
_worker_config: Optional[ChunkerConfig] = None


def init_worker(config: Optional[ChunkerConfig] = None) -> None:
    """
    Initialize a worker process.

    Runs once per process so Tree-sitter grammars and the tiktoken encoding
    are loaded once rather than per file.
    """
    global _worker_chunker, _worker_config
    _worker_config = config or ChunkerConfig()
    _worker_chunker = create_chunker(
        max_tokens=_worker_config.max_tokens,
        class_split_tokens=_worker_config.class_split_tokens,
    )


def chunk_file_worker(source: SourceFile) -> tuple[str, Optional[ChunkingResult], Optional[str]]:
    """
    Chunk one file inside a worker process.

    Parse failures are returned rather than raised, since SourceParseError
    does not survive pickling across the process boundary.

    Returns:
        Tuple of (file_path, result, error) where exactly one of result and
        error is set
    """
    global _worker_chunker
    if _worker_chunker is None:
        init_worker(_worker_config)

    try:
        return (source.path, _worker_chunker.chunk(source), None)
    except SourceParseError as e:
        return (source.path, None, e.message)
