"""
Core Layer - Source files, AST parsing, chunking, tokenization and context packing.
"""

from ctxpack.core.ast_parser import (
    SUPPORTED_LANGUAGES,
    ASTNode,
    ParsedFile,
    TreeSitterParser,
)
from ctxpack.core.chunker import (
    ChunkDelta,
    Chunker,
    ChunkerConfig,
    ChunkerInterface,
    ChunkingResult,
    ChunkKind,
    CodeChunk,
    compute_chunk_delta,
    create_chunker,
)
from ctxpack.core.context import (
    CompressionLevel,
    ContextAssembler,
    ContextCompressor,
    ContextSection,
    OptimizedContext,
    RelevanceScorer,
    ScoredChunk,
    ScoringWeights,
    TransformationTask,
)
from ctxpack.core.config import (
    ContextConfig,
    CtxpackConfig,
    EmbeddingConfig,
    IndexingConfig,
    LoggingConfig,
    VectorStoreConfig,
    load_config,
)
from ctxpack.core.errors import (
    BudgetExceededAfterCompression,
    ConfigurationError,
    ContextPipelineError,
    EmbeddingServiceError,
    IndexUnavailable,
    ReasonCode,
    RetrievalTimeout,
    SourceParseError,
    UnresolvedReference,
    ValidationError,
)
from ctxpack.core.source_files import (
    EXTENSION_TO_LANGUAGE,
    SourceFile,
    SourceScanner,
    detect_language,
)
from ctxpack.core.tokenizer import (
    TiktokenTokenizer,
    TokenizerInterface,
    get_default_tokenizer,
)

__all__ = [
    # Config
    "CtxpackConfig",
    "ContextConfig",
    "EmbeddingConfig",
    "VectorStoreConfig",
    "IndexingConfig",
    "LoggingConfig",
    "load_config",
    # Errors
    "ReasonCode",
    "ContextPipelineError",
    "ValidationError",
    "ConfigurationError",
    "UnresolvedReference",
    "BudgetExceededAfterCompression",
    "SourceParseError",
    "IndexUnavailable",
    "EmbeddingServiceError",
    "RetrievalTimeout",
    # Source files
    "SourceFile",
    "SourceScanner",
    "detect_language",
    "EXTENSION_TO_LANGUAGE",
    # AST Parser
    "ASTNode",
    "ParsedFile",
    "TreeSitterParser",
    "SUPPORTED_LANGUAGES",
    # Tokenizer
    "TokenizerInterface",
    "TiktokenTokenizer",
    "get_default_tokenizer",
    # Chunker
    "CodeChunk",
    "ChunkKind",
    "ChunkingResult",
    "ChunkDelta",
    "ChunkerConfig",
    "ChunkerInterface",
    "Chunker",
    "compute_chunk_delta",
    "create_chunker",
    # Context
    "CompressionLevel",
    "ContextSection",
    "OptimizedContext",
    "ScoredChunk",
    "ScoringWeights",
    "TransformationTask",
    "RelevanceScorer",
    "ContextAssembler",
    "ContextCompressor",
]
