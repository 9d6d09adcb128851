"""
Context module for ctxpack.

Scores candidate chunks against a task, packs them into a token budget and
compresses the result when it runs close to the limit.
"""

from .assembler import ContextAssembler, order_sections
from .compressor import ContextCompressor
from .models import (
    SECTION_SEPARATOR,
    TYPE_KINDS,
    CompressionLevel,
    ContextSection,
    OptimizedContext,
    ScoredChunk,
    ScoringWeights,
    SectionKind,
    SectionPriority,
    SubScores,
    TransformationTask,
)
from .scorer import Candidate, RelevanceScorer, ScoringContext, cosine_similarity
from .structure import build_structure_overview
from .summarizer import ChunkSummarizer

__all__ = [
    # Models
    "CompressionLevel",
    "ContextSection",
    "OptimizedContext",
    "ScoredChunk",
    "ScoringWeights",
    "SectionKind",
    "SectionPriority",
    "SubScores",
    "TransformationTask",
    "SECTION_SEPARATOR",
    "TYPE_KINDS",
    # Pipeline stages
    "Candidate",
    "ScoringContext",
    "RelevanceScorer",
    "ContextAssembler",
    "ContextCompressor",
    "ChunkSummarizer",
    # Helpers
    "build_structure_overview",
    "cosine_similarity",
    "order_sections",
]
