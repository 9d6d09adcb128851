"""
Service Layer - IndexingService, RetrievalService, ContextCache, and ServicesContainer.
"""

from ctxpack.services.container import ServicesContainer, create_services
from ctxpack.services.context_cache import ContextCache
from ctxpack.services.indexing_models import IndexingResult
from ctxpack.services.indexing_service import IndexingService, embedding_text
from ctxpack.services.retrieval_models import (
    RetrievalOutcome,
    RetrievalReport,
    RetrievalResult,
    ScoreEntry,
)
from ctxpack.services.retrieval_service import RetrievalService

__all__ = [
    # Container and factory
    "ServicesContainer",
    "create_services",
    # Services
    "IndexingService",
    "IndexingResult",
    "RetrievalService",
    "ContextCache",
    # Models
    "RetrievalResult",
    "RetrievalReport",
    "RetrievalOutcome",
    "ScoreEntry",
    "embedding_text",
]
