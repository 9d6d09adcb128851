"""
Data models for the chunker module.

Contains ChunkKind, CodeChunk, ChunkingResult and ChunkDelta.
"""

import hashlib
import uuid
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, Optional

# Namespace for deterministic chunk ids (uuid5 keeps ids valid Qdrant point ids)
_CHUNK_NAMESPACE = uuid.UUID("6f1c2a8e-52b4-4f0e-9d0a-3c8b7e4f1a22")


class ChunkKind(str, Enum):
    """
    Closed set of chunk kinds.

    Inherits from str so kinds serialize directly into vector store payloads.
    """

    FUNCTION = "function"
    CLASS = "class"
    INTERFACE = "interface"
    MODULE = "module"
    CONSTANT = "constant"
    TEST = "test"
    CONFIG = "config"


def content_hash(content: str) -> str:
    """SHA-256 hex digest of chunk or file content."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def make_chunk_id(file_path: str, kind: ChunkKind, qualified_name: str, ordinal: int = 0) -> str:
    """
    Build a deterministic chunk id.

    Line numbers are deliberately excluded so a declaration that only moves
    keeps its id across re-chunking.
    """
    key = f"{file_path}\x00{kind.value}\x00{qualified_name}\x00{ordinal}"
    return str(uuid.uuid5(_CHUNK_NAMESPACE, key))


@dataclass
class CodeChunk:
    """
    A semantically bounded unit of source code.

    Attributes:
        chunk_id: Deterministic identifier (see make_chunk_id)
        kind: Chunk kind
        file_path: Path of the source file
        start_line: Start line number (1-based)
        end_line: End line number (1-based, inclusive)
        content: Raw source content
        language: Language identifier
        token_count: Token count of content, always > 0
        name: Declared name ('' for module/config chunks)
        parent_name: Enclosing class for method chunks
        dependencies: Imported symbols referenced by this chunk
        exports: Public symbols declared by this chunk
        complexity: Cyclomatic complexity
        modified_time: Source modification time (Unix epoch)
        coverage: Ratio of covered lines in [0, 1]
        content_hash: SHA-256 of content
        metadata: Kind-specific payload (is_partial, class_summary, ...)
    """

    chunk_id: str
    kind: ChunkKind
    file_path: str
    start_line: int
    end_line: int
    content: str
    language: str
    token_count: int
    name: str = ""
    parent_name: Optional[str] = None
    dependencies: list[str] = field(default_factory=list)
    exports: list[str] = field(default_factory=list)
    complexity: int = 1
    modified_time: float = 0.0
    coverage: float = 0.0
    content_hash: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.token_count <= 0:
            raise ValueError(f"Chunk {self.chunk_id} must have a positive token count")
        if not self.content_hash:
            self.content_hash = content_hash(self.content)

    @property
    def qualified_name(self) -> str:
        if self.parent_name:
            return f"{self.parent_name}.{self.name}"
        return self.name

    @property
    def symbols(self) -> set[str]:
        """Names this chunk can be referred to by."""
        names = set(self.exports)
        if self.name:
            names.add(self.name)
        return names

    def relocated(self, start_line: int, end_line: int, modified_time: float) -> "CodeChunk":
        """Return a copy moved to a new line range with unchanged content."""
        return replace(
            self,
            start_line=start_line,
            end_line=end_line,
            modified_time=modified_time,
            metadata=dict(self.metadata),
        )

    def to_payload(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible payload for vector stores."""
        payload = asdict(self)
        payload["kind"] = self.kind.value
        return payload

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "CodeChunk":
        data = dict(payload)
        data["kind"] = ChunkKind(data["kind"])
        return cls(**data)


@dataclass
class ChunkingResult:
    """
    Result of chunking one file.

    Attributes:
        file_path: Path of the chunked file
        language: Language identifier
        file_hash: SHA-256 of the whole file content
        chunks: Chunks in source order
    """

    file_path: str
    language: str
    file_hash: str
    chunks: list[CodeChunk] = field(default_factory=list)


@dataclass
class ChunkDelta:
    """
    Difference between the previous and current chunking of one file.

    Attributes:
        added: Chunks with ids not present before
        invalidated: Chunks whose region changed; must be re-embedded
        relocated: Chunks with identical content but a new line range
        unchanged: Chunks identical in content and location
        removed: Ids of chunks that no longer exist
    """

    added: list[CodeChunk] = field(default_factory=list)
    invalidated: list[CodeChunk] = field(default_factory=list)
    relocated: list[CodeChunk] = field(default_factory=list)
    unchanged: list[CodeChunk] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)

    @property
    def needs_embedding(self) -> list[CodeChunk]:
        return self.added + self.invalidated

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.invalidated or self.relocated or self.removed)
