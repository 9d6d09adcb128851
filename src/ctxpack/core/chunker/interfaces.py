"""
Abstract interfaces for the chunker module.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from ctxpack.core.source_files import SourceFile

from .models import ChunkingResult


@dataclass
class ChunkerConfig:
    """Configuration for chunker instances.

    Used to transfer chunker settings across process boundaries
    (e.g., for parallel worker initialization).
    """

    max_tokens: int = 1024
    class_split_tokens: int = 512


class ChunkerInterface(ABC):
    """Abstract interface for code chunking operations."""

    @abstractmethod
    def chunk(self, file: SourceFile) -> ChunkingResult:
        """
        Split a file into code chunks.

        Args:
            file: The source file to chunk

        Returns:
            ChunkingResult with chunks in source order

        Raises:
            SourceParseError: If the file's syntax tree contains errors
        """
        pass

    @abstractmethod
    def get_config(self) -> ChunkerConfig:
        """
        Get the configuration needed to recreate an equivalent chunker
        (e.g., for parallel workers).
        """
        pass
