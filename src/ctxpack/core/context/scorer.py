"""
Relevance scoring of candidate chunks against a transformation task.

The score is a weighted sum of five signals, each in [0, 1]:

- semantic: cosine similarity of task and chunk embeddings (clamped)
- explicit_reference: the task names the chunk's file or one of its symbols
- dependency: proximity to task-targeted files along import edges
- type_relevance: overlap of an interface's declared names with the task's
  referenced types
- recency: modification time, min-max normalized over the candidate set
"""

import logging
import math
import re
from dataclasses import dataclass
from typing import Optional, Sequence

from ctxpack.core.chunker.models import ChunkKind, CodeChunk
from ctxpack.core.context.models import (
    ScoredChunk,
    ScoringWeights,
    SubScores,
    TransformationTask,
)

logger = logging.getLogger(__name__)

_WORD = re.compile(r"[A-Za-z_$][A-Za-z0-9_$]*")

DIRECT_DEPENDENCY_SCORE = 1.0
INDIRECT_DEPENDENCY_SCORE = 0.5


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity; 0.0 for mismatched or zero vectors."""
    if not a or not b or len(a) != len(b):
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


@dataclass(frozen=True)
class Candidate:
    """A chunk under consideration, with its stored embedding if any."""

    chunk: CodeChunk
    vector: Optional[list[float]] = None


@dataclass
class ScoringContext:
    """
    Task-derived facts the scorer needs beyond the candidates themselves.

    Attributes:
        target_files: Files the task targets explicitly
        mentioned_symbols: Target symbols plus identifiers mentioned in the description
        referenced_types: Type names the task refers to
        direct_imports: Symbols imported by chunks of targeted files
        indirect_imports: Symbols imported by chunks that export a direct import
        explicit_symbols: Target symbols only
    """

    target_files: frozenset[str] = frozenset()
    mentioned_symbols: frozenset[str] = frozenset()
    referenced_types: frozenset[str] = frozenset()
    direct_imports: frozenset[str] = frozenset()
    indirect_imports: frozenset[str] = frozenset()
    explicit_symbols: frozenset[str] = frozenset()

    @classmethod
    def from_task(
        cls,
        task: TransformationTask,
        direct_imports: frozenset[str] = frozenset(),
        indirect_imports: frozenset[str] = frozenset(),
    ) -> "ScoringContext":
        description_words = frozenset(_WORD.findall(task.description))
        return cls(
            target_files=frozenset(task.target_files),
            mentioned_symbols=description_words | frozenset(task.target_symbols),
            referenced_types=frozenset(task.referenced_types),
            direct_imports=direct_imports,
            indirect_imports=indirect_imports,
            explicit_symbols=frozenset(task.target_symbols),
        )


class RelevanceScorer:
    """
    Scores candidate chunks for one task.

    Scoring is a pure function of the candidates, the task vector and the
    scoring context, so identical inputs always rank identically.
    """

    def __init__(self, weights: Optional[ScoringWeights] = None):
        """
        Raises:
            ConfigurationError: If the weights are negative or do not sum to 1.0
        """
        self._weights = weights or ScoringWeights()
        self._weights.validate()

    @property
    def weights(self) -> ScoringWeights:
        return self._weights

    def score(
        self,
        candidates: Sequence[Candidate],
        task_vector: Optional[Sequence[float]],
        context: ScoringContext,
    ) -> list[ScoredChunk]:
        """
        Score and rank candidates.

        Returns:
            ScoredChunks sorted by descending score, then descending
            complexity, then ascending chunk id.
        """
        if not candidates:
            return []

        times = [c.chunk.modified_time for c in candidates]
        oldest, newest = min(times), max(times)

        scored = []
        for candidate in candidates:
            chunk = candidate.chunk
            components = SubScores(
                semantic=self._semantic(candidate, task_vector),
                explicit_reference=self._explicit_reference(chunk, context),
                dependency=self._dependency(chunk, context),
                type_relevance=self._type_relevance(chunk, context),
                recency=self._recency(chunk.modified_time, oldest, newest),
            )
            scored.append(ScoredChunk(chunk=chunk, score=self._combine(components), components=components))

        scored.sort(key=lambda s: s.sort_key)
        return scored

    def _combine(self, components: SubScores) -> float:
        w = self._weights
        total = (
            w.semantic * components.semantic
            + w.explicit_reference * components.explicit_reference
            + w.dependency * components.dependency
            + w.type_relevance * components.type_relevance
            + w.recency * components.recency
        )
        # Rounding keeps float noise from reordering equal-weight ties
        return min(1.0, max(0.0, round(total, 9)))

    def _semantic(self, candidate: Candidate, task_vector: Optional[Sequence[float]]) -> float:
        if candidate.vector is None or not task_vector:
            return 0.0
        return min(1.0, max(0.0, cosine_similarity(task_vector, candidate.vector)))

    def _explicit_reference(self, chunk: CodeChunk, context: ScoringContext) -> float:
        if chunk.file_path in context.target_files:
            return 1.0
        names = set(chunk.exports)
        if chunk.qualified_name:
            names.add(chunk.qualified_name)
        if names & context.mentioned_symbols:
            return 1.0
        # Target symbols also match non-exported names such as private helpers
        if chunk.name and chunk.name in context.explicit_symbols:
            return 1.0
        return 0.0

    def _dependency(self, chunk: CodeChunk, context: ScoringContext) -> float:
        if not chunk.exports:
            return 0.0
        exports = set(chunk.exports)
        if exports & context.direct_imports:
            return DIRECT_DEPENDENCY_SCORE
        if exports & context.indirect_imports:
            return INDIRECT_DEPENDENCY_SCORE
        return 0.0

    def _type_relevance(self, chunk: CodeChunk, context: ScoringContext) -> float:
        if chunk.kind != ChunkKind.INTERFACE or not context.referenced_types:
            return 0.0
        declared = set(chunk.exports) or ({chunk.name} if chunk.name else set())
        if not declared:
            return 0.0
        return len(declared & context.referenced_types) / len(declared)

    def _recency(self, modified_time: float, oldest: float, newest: float) -> float:
        if newest == oldest:
            return 1.0
        return (modified_time - oldest) / (newest - oldest)
