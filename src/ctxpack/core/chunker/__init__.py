"""
Chunker module for ctxpack.

Provides declaration-level chunking with Tree-sitter, smart splitting of
oversized fragments and incremental change detection.
"""

from .chunker import MODULE_CHUNK_NAME, Chunker, create_chunker, is_test_file
from .complexity import cyclomatic_complexity, decision_lines
from .delta import compute_chunk_delta
from .interfaces import ChunkerConfig, ChunkerInterface
from .models import (
    ChunkDelta,
    ChunkingResult,
    ChunkKind,
    CodeChunk,
    content_hash,
    make_chunk_id,
)
from .smart_splitter import SmartChunkSplitter, SplitPart

__all__ = [
    # Main classes
    "Chunker",
    "ChunkerConfig",
    "ChunkerInterface",
    "CodeChunk",
    "ChunkKind",
    "ChunkingResult",
    "ChunkDelta",
    # Helpers
    "SmartChunkSplitter",
    "SplitPart",
    "compute_chunk_delta",
    "cyclomatic_complexity",
    "decision_lines",
    "content_hash",
    "make_chunk_id",
    "is_test_file",
    "MODULE_CHUNK_NAME",
    # Factory
    "create_chunker",
]
