"""
Indexing Service data models.
"""

from dataclasses import dataclass, field


@dataclass
class IndexingResult:
    """
    Result of an indexing operation.

    Attributes:
        total_files: Files chunked successfully
        total_chunks: Chunks in those files after indexing
        new_files: Files not previously indexed
        modified_files: Previously indexed files whose content changed
        unchanged_files: Previously indexed files with identical content
        deleted_files: Files removed from the index
        embedded_chunks: Chunks sent to the embedding service
        relocated_chunks: Chunks that moved and kept their vectors
        removed_chunks: Chunks deleted from the index
        failed_files: Paths that failed to parse, mapped to the reason
        generation: Index generation committed (None if nothing changed)
        duration_seconds: Wall-clock duration
    """

    total_files: int = 0
    total_chunks: int = 0
    new_files: int = 0
    modified_files: int = 0
    unchanged_files: int = 0
    deleted_files: int = 0
    embedded_chunks: int = 0
    relocated_chunks: int = 0
    removed_chunks: int = 0
    failed_files: dict[str, str] = field(default_factory=dict)
    generation: int | None = None
    duration_seconds: float = 0.0
