"""
Error taxonomy for the context budgeting pipeline.

Every pipeline failure carries a stable reason code so callers can react to
it without parsing messages. Failures that happen after part of the context
was assembled also carry that partial context.
"""

from enum import Enum
from typing import TYPE_CHECKING, Optional, Sequence

if TYPE_CHECKING:
    from ctxpack.core.context.models import OptimizedContext


class ReasonCode(str, Enum):
    """Stable reason codes for pipeline failures."""

    VALIDATION_FAILED = "CTX_1001"
    INVALID_CONFIGURATION = "CTX_1002"
    UNRESOLVED_REFERENCE = "CTX_2001"
    BUDGET_EXCEEDED = "CTX_3001"
    PARSE_FAILED = "CTX_4001"
    INDEX_UNAVAILABLE = "CTX_6001"
    EMBEDDING_FAILED = "CTX_6002"
    TIMEOUT = "CTX_6003"
    INTERNAL_ERROR = "CTX_9001"


class ContextPipelineError(Exception):
    """Base exception for all pipeline errors."""

    reason_code: ReasonCode = ReasonCode.INTERNAL_ERROR
    retryable: bool = False

    def __init__(
        self,
        message: str,
        partial_context: Optional["OptimizedContext"] = None,
    ):
        super().__init__(message)
        self.message = message
        self.partial_context = partial_context


class ValidationError(ContextPipelineError):
    """Malformed transformation task or per-call configuration."""

    reason_code = ReasonCode.VALIDATION_FAILED


class ConfigurationError(ContextPipelineError):
    """Invalid weights, thresholds or configuration file."""

    reason_code = ReasonCode.INVALID_CONFIGURATION


class UnresolvedReference(ContextPipelineError):
    """
    A task names a file or symbol that the index does not contain.

    Non-fatal: retrieval proceeds without it and the reference is listed in
    the retrieval report.
    """

    reason_code = ReasonCode.UNRESOLVED_REFERENCE

    def __init__(self, reference: str, reference_type: str):
        super().__init__(f"Unresolved {reference_type} reference: {reference}")
        self.reference = reference
        self.reference_type = reference_type

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, UnresolvedReference):
            return NotImplemented
        return (self.reference, self.reference_type) == (other.reference, other.reference_type)

    def __hash__(self) -> int:
        return hash((self.reference, self.reference_type))


class BudgetExceededAfterCompression(ContextPipelineError):
    """
    Mandatory content cannot fit the budget, even summarized and compressed.

    The caller may drop the lowest-priority mandatory chunk and retry, or abort.
    """

    reason_code = ReasonCode.BUDGET_EXCEEDED

    def __init__(
        self,
        message: str,
        partial_context: Optional["OptimizedContext"] = None,
        unplaced_chunk_ids: Sequence[str] = (),
    ):
        super().__init__(message, partial_context)
        self.unplaced_chunk_ids = list(unplaced_chunk_ids)


class SourceParseError(ContextPipelineError):
    """A source file could not be parsed into a clean syntax tree."""

    reason_code = ReasonCode.PARSE_FAILED

    def __init__(self, file_path: str, message: str):
        super().__init__(f"{file_path}: {message}")
        self.file_path = file_path


class IndexUnavailable(ContextPipelineError):
    """The chunk index or its vector store could not be reached."""

    reason_code = ReasonCode.INDEX_UNAVAILABLE
    retryable = True


class EmbeddingServiceError(ContextPipelineError):
    """The embedding capability failed after bounded retries."""

    reason_code = ReasonCode.EMBEDDING_FAILED
    retryable = True


class RetrievalTimeout(ContextPipelineError):
    """The end-to-end retrieval deadline was exceeded."""

    reason_code = ReasonCode.TIMEOUT
    retryable = True
