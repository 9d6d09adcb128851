"""
Data models for context assembly.

Sections and contexts are immutable: compression and ordering always build
new instances.
"""

import hashlib
import json
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Optional

from ctxpack.core.chunker.models import ChunkKind, CodeChunk
from ctxpack.core.errors import ConfigurationError, ValidationError
from ctxpack.core.tokenizer import TokenizerInterface

SECTION_SEPARATOR = "\n\n"

_WEIGHT_TOLERANCE = 1e-6


class CompressionLevel(IntEnum):
    """Ordered compression levels; each level includes all lower ones."""

    NONE = 0
    LIGHT = 1
    MEDIUM = 2
    AGGRESSIVE = 3

    @classmethod
    def parse(cls, value: "str | int | CompressionLevel") -> "CompressionLevel":
        if isinstance(value, CompressionLevel):
            return value
        if isinstance(value, int):
            return cls(value)
        try:
            return cls[str(value).strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown compression level: {value!r}") from None


class SectionKind(str, Enum):
    TASK = "task"
    CODE = "code"
    SUMMARY = "summary"
    STRUCTURE = "structure"


class SectionPriority(str, Enum):
    PRIMARY = "primary"
    TYPE = "type"
    CONTEXT = "context"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    SectionPriority.PRIMARY: 0,
    SectionPriority.TYPE: 1,
    SectionPriority.CONTEXT: 2,
}


@dataclass(frozen=True)
class ScoringWeights:
    """Weights of the five relevance signals. Must be non-negative and sum to 1."""

    semantic: float = 0.40
    explicit_reference: float = 0.30
    dependency: float = 0.15
    type_relevance: float = 0.10
    recency: float = 0.05

    def as_dict(self) -> dict[str, float]:
        return {
            "semantic": self.semantic,
            "explicit_reference": self.explicit_reference,
            "dependency": self.dependency,
            "type_relevance": self.type_relevance,
            "recency": self.recency,
        }

    def validate(self) -> None:
        """
        Raises:
            ConfigurationError: If a weight is negative or the sum is not 1.0
        """
        weights = self.as_dict()
        negative = [name for name, value in weights.items() if value < 0]
        if negative:
            raise ConfigurationError(f"Scoring weights must be non-negative: {', '.join(negative)}")
        total = sum(weights.values())
        if abs(total - 1.0) > _WEIGHT_TOLERANCE:
            raise ConfigurationError(f"Scoring weights must sum to 1.0, got {total:.6f}")


@dataclass(frozen=True)
class SubScores:
    """The five independent relevance signals, each in [0, 1]."""

    semantic: float = 0.0
    explicit_reference: float = 0.0
    dependency: float = 0.0
    type_relevance: float = 0.0
    recency: float = 0.0


@dataclass(frozen=True)
class ScoredChunk:
    """A chunk with its relevance score for one task."""

    chunk: CodeChunk
    score: float
    components: SubScores = field(default_factory=SubScores)

    @property
    def chunk_id(self) -> str:
        return self.chunk.chunk_id

    @property
    def sort_key(self) -> tuple:
        """Descending score, then descending complexity, then ascending id."""
        return (-self.score, -self.chunk.complexity, self.chunk.chunk_id)


@dataclass(frozen=True)
class ContextSection:
    """
    One packed unit of the final context.

    ``token_count`` covers the rendered text (header line plus content) and
    the separator that joins it to the next section.
    """

    kind: SectionKind
    priority: SectionPriority
    content: str
    token_count: int
    chunk_id: Optional[str] = None
    file_path: Optional[str] = None
    start_line: Optional[int] = None
    end_line: Optional[int] = None
    language: str = ""
    score: float = 0.0
    complexity: int = 0
    summarized: bool = False

    @classmethod
    def create(
        cls,
        tokenizer: TokenizerInterface,
        kind: SectionKind,
        priority: SectionPriority,
        content: str,
        **source,
    ) -> "ContextSection":
        draft = cls(kind=kind, priority=priority, content=content, token_count=0, **source)
        token_count = tokenizer.count_tokens(draft.render()) + tokenizer.count_tokens(
            SECTION_SEPARATOR
        )
        return cls(kind=kind, priority=priority, content=content, token_count=token_count, **source)

    @classmethod
    def for_chunk(
        cls,
        tokenizer: TokenizerInterface,
        scored: ScoredChunk,
        priority: SectionPriority,
        content: Optional[str] = None,
        summarized: bool = False,
    ) -> "ContextSection":
        chunk = scored.chunk
        return cls.create(
            tokenizer,
            SectionKind.SUMMARY if summarized else SectionKind.CODE,
            priority,
            chunk.content if content is None else content,
            chunk_id=chunk.chunk_id,
            file_path=chunk.file_path,
            start_line=chunk.start_line,
            end_line=chunk.end_line,
            language=chunk.language,
            score=scored.score,
            complexity=chunk.complexity,
            summarized=summarized,
        )

    def with_content(self, tokenizer: TokenizerInterface, content: str) -> "ContextSection":
        """Return a new section with replaced content and a recomputed count."""
        return ContextSection.create(
            tokenizer,
            self.kind,
            self.priority,
            content,
            chunk_id=self.chunk_id,
            file_path=self.file_path,
            start_line=self.start_line,
            end_line=self.end_line,
            language=self.language,
            score=self.score,
            complexity=self.complexity,
            summarized=self.summarized,
        )

    @property
    def header(self) -> str:
        if self.kind == SectionKind.TASK:
            return "## Task"
        if self.kind == SectionKind.STRUCTURE:
            return "## Repository structure"
        location = f"{self.file_path}:{self.start_line}-{self.end_line}"
        if self.kind == SectionKind.SUMMARY:
            return f"## {location} (summary)"
        return f"## {location}"

    def render(self) -> str:
        return f"{self.header}\n{self.content}"


@dataclass(frozen=True)
class OptimizedContext:
    """
    Ordered, budget-bounded context handed to the model-invocation layer.

    ``total_tokens <= budget`` holds by construction.
    """

    sections: tuple[ContextSection, ...]
    total_tokens: int
    budget: int
    included_chunks: int
    excluded_chunks: int
    compression_level: CompressionLevel = CompressionLevel.NONE

    def __post_init__(self) -> None:
        if self.total_tokens > self.budget:
            raise ValueError(
                f"Context uses {self.total_tokens} tokens, above its budget of {self.budget}"
            )

    @classmethod
    def from_sections(
        cls,
        sections: "list[ContextSection] | tuple[ContextSection, ...]",
        budget: int,
        included_chunks: int,
        excluded_chunks: int,
        compression_level: CompressionLevel = CompressionLevel.NONE,
    ) -> "OptimizedContext":
        return cls(
            sections=tuple(sections),
            total_tokens=sum(s.token_count for s in sections),
            budget=budget,
            included_chunks=included_chunks,
            excluded_chunks=excluded_chunks,
            compression_level=compression_level,
        )

    @property
    def utilization(self) -> float:
        if self.budget <= 0:
            return 0.0
        return self.total_tokens / self.budget

    @property
    def text(self) -> str:
        return SECTION_SEPARATOR.join(section.render() for section in self.sections)

    @property
    def chunk_ids(self) -> list[str]:
        return [s.chunk_id for s in self.sections if s.chunk_id is not None]

    @property
    def summarized_chunk_ids(self) -> list[str]:
        return [s.chunk_id for s in self.sections if s.summarized and s.chunk_id is not None]

    def section_for(self, chunk_id: str) -> Optional[ContextSection]:
        for section in self.sections:
            if section.chunk_id == chunk_id:
                return section
        return None


@dataclass(frozen=True)
class TransformationTask:
    """
    A code transformation request.

    Attributes:
        description: Natural-language task description
        target_files: Files the task explicitly targets
        target_symbols: Symbols the task explicitly targets
        referenced_types: Type names the task refers to
        generation: Index generation to query (None = latest)
    """

    description: str
    target_files: tuple[str, ...] = ()
    target_symbols: tuple[str, ...] = ()
    referenced_types: tuple[str, ...] = ()
    generation: Optional[int] = None

    def __post_init__(self) -> None:
        # Accept any iterable for the reference fields; store tuples so the task stays hashable
        for name in ("target_files", "target_symbols", "referenced_types"):
            value = getattr(self, name)
            if isinstance(value, str):
                value = (value,)
            object.__setattr__(self, name, tuple(value))

    def validate(self) -> None:
        if not isinstance(self.description, str) or not self.description.strip():
            raise ValidationError("Task description must be a non-empty string")
        for name in ("target_files", "target_symbols", "referenced_types"):
            for value in getattr(self, name):
                if not isinstance(value, str) or not value.strip():
                    raise ValidationError(f"Task {name} entries must be non-empty strings")
        if self.generation is not None and self.generation < 0:
            raise ValidationError("Task generation must be non-negative")

    @property
    def task_hash(self) -> str:
        """Stable hash of everything that influences retrieval."""
        payload = json.dumps(
            {
                "description": self.description,
                "target_files": sorted(self.target_files),
                "target_symbols": sorted(self.target_symbols),
                "referenced_types": sorted(self.referenced_types),
            },
            sort_keys=True,
        )
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()


# Chunk kinds packed with TYPE priority
TYPE_KINDS = frozenset({ChunkKind.INTERFACE})
