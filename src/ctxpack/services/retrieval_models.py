"""
Retrieval Service data models.
"""

from dataclasses import dataclass, field
from typing import Optional

from ctxpack.core.context import OptimizedContext
from ctxpack.core.errors import ReasonCode, UnresolvedReference


@dataclass(frozen=True)
class ScoreEntry:
    """Score of one included chunk, for observability."""

    chunk_id: str
    file_path: str
    name: str
    score: float


@dataclass
class RetrievalReport:
    """
    What a retrieval did and how it went.

    Attributes:
        generation: Index generation the retrieval read
        candidates: Chunks considered after expansion and filtering
        included_chunks: Chunks present in the context (full or summarized)
        excluded_chunks: Candidates left out
        summarized_chunks: Included chunks present only as a summary
        tokens_before_compression: Context size before compression
        tokens_after_compression: Context size delivered
        compression_ratio: after / before (1.0 when nothing was compressed)
        top_scores: Best-scoring candidates, best first
        unresolved_references: Task references absent from the index
        cache_hit: Whether the context came from the context cache
        duration_seconds: Wall-clock duration
    """

    generation: int = 0
    candidates: int = 0
    included_chunks: int = 0
    excluded_chunks: int = 0
    summarized_chunks: int = 0
    tokens_before_compression: int = 0
    tokens_after_compression: int = 0
    compression_ratio: float = 1.0
    top_scores: list[ScoreEntry] = field(default_factory=list)
    unresolved_references: list[UnresolvedReference] = field(default_factory=list)
    cache_hit: bool = False
    duration_seconds: float = 0.0

    def to_dict(self) -> dict:
        return {
            "generation": self.generation,
            "candidates": self.candidates,
            "included_chunks": self.included_chunks,
            "excluded_chunks": self.excluded_chunks,
            "summarized_chunks": self.summarized_chunks,
            "tokens_before_compression": self.tokens_before_compression,
            "tokens_after_compression": self.tokens_after_compression,
            "compression_ratio": round(self.compression_ratio, 4),
            "top_scores": [
                {"chunk_id": s.chunk_id, "file_path": s.file_path, "name": s.name, "score": round(s.score, 4)}
                for s in self.top_scores
            ],
            "unresolved_references": [
                {"reference": r.reference, "type": r.reference_type} for r in self.unresolved_references
            ],
            "cache_hit": self.cache_hit,
            "duration_seconds": round(self.duration_seconds, 4),
        }


@dataclass
class RetrievalResult:
    """A successfully assembled context and its report."""

    context: OptimizedContext
    report: RetrievalReport


@dataclass
class RetrievalOutcome:
    """
    Structured result of ``RetrievalService.prepare``.

    ``ok`` is False whenever the pipeline failed; ``reason_code`` and
    ``message`` then describe the failure and ``context`` holds whatever
    partial context was assembled.
    """

    ok: bool
    context: Optional[OptimizedContext] = None
    report: Optional[RetrievalReport] = None
    reason_code: Optional[ReasonCode] = None
    message: str = ""
    unplaced_chunk_ids: list[str] = field(default_factory=list)
