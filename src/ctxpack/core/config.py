"""
Configuration module for ctxpack.

Supports loading from YAML/JSON files with environment variable overrides.
Default values are loaded from defaults.yaml for maintainability.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Optional

import yaml

from ctxpack.core.context.models import CompressionLevel, ScoringWeights
from ctxpack.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Path to the default configuration file
_DEFAULTS_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

# Cache for default values
_defaults_cache: dict[str, Any] | None = None


def _load_defaults() -> dict[str, Any]:
    """Load default configuration values from defaults.yaml."""
    global _defaults_cache

    if _defaults_cache is not None:
        return _defaults_cache

    if not _DEFAULTS_CONFIG_PATH.exists():
        logger.warning(f"Defaults config not found: {_DEFAULTS_CONFIG_PATH}")
        _defaults_cache = {}
        return _defaults_cache

    try:
        content = _DEFAULTS_CONFIG_PATH.read_text(encoding="utf-8")
        _defaults_cache = yaml.safe_load(content) or {}
    except yaml.YAMLError as e:
        logger.error(f"Failed to parse defaults config: {e}")
        _defaults_cache = {}

    return _defaults_cache


def _get_default(section: str, key: str, fallback: Any = None) -> Any:
    """Get a default value from the defaults config."""
    defaults = _load_defaults()
    section_defaults = defaults.get(section, {}) or {}
    return section_defaults.get(key, fallback)


def _default_weights() -> ScoringWeights:
    return ScoringWeights(
        semantic=float(_get_default("scoring", "semantic", 0.40)),
        explicit_reference=float(_get_default("scoring", "explicit_reference", 0.30)),
        dependency=float(_get_default("scoring", "dependency", 0.15)),
        type_relevance=float(_get_default("scoring", "type_relevance", 0.10)),
        recency=float(_get_default("scoring", "recency", 0.05)),
    )


@dataclass
class EmbeddingConfig:
    """Configuration for the embedding service."""

    api_key: str = field(default_factory=lambda: _get_default("embedding", "api_key", ""))
    api_url: str = field(
        default_factory=lambda: _get_default(
            "embedding", "api_url", "https://api.openai.com/v1/embeddings"
        )
    )
    model: str = field(
        default_factory=lambda: _get_default("embedding", "model", "text-embedding-3-small")
    )
    dimension: int = field(default_factory=lambda: _get_default("embedding", "dimension", 1536))
    batch_size: int = field(default_factory=lambda: _get_default("embedding", "batch_size", 100))
    max_retries: int = field(default_factory=lambda: _get_default("embedding", "max_retries", 3))
    timeout: float = field(default_factory=lambda: _get_default("embedding", "timeout", 30.0))


@dataclass
class VectorStoreConfig:
    """Configuration for the vector store backend ('memory' or 'qdrant')."""

    backend: str = field(default_factory=lambda: _get_default("vector_store", "backend", "memory"))
    host: str = field(default_factory=lambda: _get_default("vector_store", "host", "localhost"))
    port: int = field(default_factory=lambda: _get_default("vector_store", "port", 6333))
    collection_name: str = field(
        default_factory=lambda: _get_default("vector_store", "collection_name", "ctxpack_chunks")
    )
    vector_size: int = field(
        default_factory=lambda: _get_default("vector_store", "vector_size", 1536)
    )


@dataclass
class IndexingConfig:
    """Configuration for chunking and indexing."""

    file_extensions: list[str] = field(
        default_factory=lambda: _get_default(
            "indexing",
            "file_extensions",
            [".py", ".js", ".jsx", ".mjs", ".ts", ".tsx", ".json", ".yaml", ".yml", ".toml"],
        )
    )
    ignore_patterns: list[str] = field(
        default_factory=lambda: _get_default(
            "indexing",
            "ignore_patterns",
            ["__pycache__/", "*.pyc", ".git/", "node_modules/", ".venv/", "dist/", "build/"],
        )
    )
    max_chunk_tokens: int = field(
        default_factory=lambda: _get_default("indexing", "max_chunk_tokens", 1024)
    )
    class_split_tokens: int = field(
        default_factory=lambda: _get_default("indexing", "class_split_tokens", 512)
    )
    max_workers: int = field(default_factory=lambda: _get_default("indexing", "max_workers", 4))
    retained_generations: int = field(
        default_factory=lambda: _get_default("indexing", "retained_generations", 4)
    )


@dataclass
class ContextConfig:
    """
    Per-call configuration for context retrieval.

    Passed explicitly to every retrieval; there is no process-wide copy.
    """

    max_context_tokens: int = field(
        default_factory=lambda: _get_default("context", "max_context_tokens", 8000)
    )
    reserved_response_tokens: int = field(
        default_factory=lambda: _get_default("context", "reserved_response_tokens", 2000)
    )
    include_types: bool = field(
        default_factory=lambda: _get_default("context", "include_types", True)
    )
    include_tests: bool = field(
        default_factory=lambda: _get_default("context", "include_tests", True)
    )
    include_docs: bool = field(default_factory=lambda: _get_default("context", "include_docs", True))
    include_config: bool = field(
        default_factory=lambda: _get_default("context", "include_config", True)
    )
    compression_level: CompressionLevel = field(
        default_factory=lambda: CompressionLevel.parse(
            _get_default("context", "compression_level", "medium")
        )
    )
    compression_trigger: float = field(
        default_factory=lambda: _get_default("context", "compression_trigger", 0.95)
    )
    mandatory_threshold: float = field(
        default_factory=lambda: _get_default("context", "mandatory_threshold", 0.9)
    )
    minimum_threshold: float = field(
        default_factory=lambda: _get_default("context", "minimum_threshold", 0.3)
    )
    weights: ScoringWeights = field(default_factory=_default_weights)
    top_k: int = field(default_factory=lambda: _get_default("context", "top_k", 20))
    expand_dependencies: bool = field(
        default_factory=lambda: _get_default("context", "expand_dependencies", True)
    )
    timeout_seconds: float = field(
        default_factory=lambda: _get_default("context", "timeout_seconds", 5.0)
    )
    call_timeout_seconds: float = field(
        default_factory=lambda: _get_default("context", "call_timeout_seconds", 2.0)
    )
    max_retries: int = field(default_factory=lambda: _get_default("context", "max_retries", 2))
    retry_base_delay: float = field(
        default_factory=lambda: _get_default("context", "retry_base_delay", 0.1)
    )
    retry_max_delay: float = field(
        default_factory=lambda: _get_default("context", "retry_max_delay", 1.0)
    )

    def __post_init__(self) -> None:
        self.compression_level = CompressionLevel.parse(self.compression_level)
        if isinstance(self.weights, dict):
            self.weights = ScoringWeights(**self.weights)

    @property
    def budget(self) -> int:
        """Token budget for assembled input."""
        return self.max_context_tokens - self.reserved_response_tokens

    def with_overrides(self, **overrides: Any) -> "ContextConfig":
        """Return a copy with the given fields replaced and validated."""
        config = replace(self, **overrides)
        config.validate()
        return config

    def validate(self) -> None:
        """
        Raises:
            ConfigurationError: If weights, thresholds or limits are invalid
        """
        self.weights.validate()
        if self.max_context_tokens <= 0:
            raise ConfigurationError("max_context_tokens must be positive")
        if self.reserved_response_tokens < 0:
            raise ConfigurationError("reserved_response_tokens must be non-negative")
        if self.budget <= 0:
            raise ConfigurationError(
                "reserved_response_tokens must be smaller than max_context_tokens"
            )
        for name in ("mandatory_threshold", "minimum_threshold", "compression_trigger"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"{name} must be within [0, 1], got {value}")
        if self.minimum_threshold > self.mandatory_threshold:
            raise ConfigurationError("minimum_threshold must not exceed mandatory_threshold")
        if self.top_k <= 0:
            raise ConfigurationError("top_k must be positive")
        if self.timeout_seconds <= 0 or self.call_timeout_seconds <= 0:
            raise ConfigurationError("timeouts must be positive")
        if self.max_retries < 0:
            raise ConfigurationError("max_retries must be non-negative")


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = field(default_factory=lambda: _get_default("logging", "level", "INFO"))
    format: str = field(
        default_factory=lambda: _get_default(
            "logging", "format", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
    )


@dataclass
class CtxpackConfig:
    """Main configuration class for ctxpack."""

    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    vector_store: VectorStoreConfig = field(default_factory=VectorStoreConfig)
    indexing: IndexingConfig = field(default_factory=IndexingConfig)
    context: ContextConfig = field(default_factory=ContextConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_file(cls, path: Path | str) -> "CtxpackConfig":
        """
        Load configuration from a YAML or JSON file.

        Args:
            path: Path to the configuration file (.yaml, .yml, or .json)

        Returns:
            CtxpackConfig instance with loaded values

        Raises:
            FileNotFoundError: If the config file doesn't exist
            ConfigurationError: If the file format is unsupported or malformed
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        content = path.read_text(encoding="utf-8")

        try:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(content) or {}
            elif path.suffix == ".json":
                data = json.loads(content) if content.strip() else {}
            else:
                raise ConfigurationError(f"Unsupported config file format: {path.suffix}")
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Malformed configuration file {path}: {e}") from e

        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: dict) -> "CtxpackConfig":
        """Create CtxpackConfig from a dictionary."""
        config = cls()

        try:
            if "embedding" in data:
                config.embedding = EmbeddingConfig(**data["embedding"])
            if "vector_store" in data:
                config.vector_store = VectorStoreConfig(**data["vector_store"])
            if "indexing" in data:
                config.indexing = IndexingConfig(**data["indexing"])
            if "context" in data:
                config.context = ContextConfig(**data["context"])
            if "scoring" in data:
                config.context.weights = replace(config.context.weights, **data["scoring"])
            if "logging" in data:
                config.logging = LoggingConfig(**data["logging"])
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

        config.validate()
        return config

    def validate(self) -> None:
        self.context.validate()
        if self.vector_store.backend not in ("memory", "qdrant"):
            raise ConfigurationError(
                f"Unknown vector store backend: {self.vector_store.backend!r}"
            )
        if self.indexing.max_chunk_tokens <= 0 or self.indexing.class_split_tokens <= 0:
            raise ConfigurationError("Chunk token limits must be positive")
        if self.indexing.retained_generations < 1:
            raise ConfigurationError("retained_generations must be at least 1")

    def apply_env_overrides(self) -> "CtxpackConfig":
        """
        Apply environment variable overrides to the configuration.

        Environment variables follow the pattern: CTXPACK_<SECTION>_<KEY>
        Examples:
            - CTXPACK_EMBEDDING_API_KEY
            - CTXPACK_VECTOR_STORE_BACKEND
            - CTXPACK_INDEXING_MAX_WORKERS
            - CTXPACK_CONTEXT_MAX_CONTEXT_TOKENS
            - CTXPACK_SCORING_SEMANTIC
            - CTXPACK_LOGGING_LEVEL

        Returns:
            Self with environment overrides applied
        """
        env_mappings = {
            # Embedding config
            "CTXPACK_EMBEDDING_API_KEY": ("embedding", "api_key", str),
            "CTXPACK_EMBEDDING_API_URL": ("embedding", "api_url", str),
            "CTXPACK_EMBEDDING_MODEL": ("embedding", "model", str),
            "CTXPACK_EMBEDDING_DIMENSION": ("embedding", "dimension", int),
            "CTXPACK_EMBEDDING_BATCH_SIZE": ("embedding", "batch_size", int),
            "CTXPACK_EMBEDDING_MAX_RETRIES": ("embedding", "max_retries", int),
            "CTXPACK_EMBEDDING_TIMEOUT": ("embedding", "timeout", float),
            # Vector store config
            "CTXPACK_VECTOR_STORE_BACKEND": ("vector_store", "backend", str),
            "CTXPACK_VECTOR_STORE_HOST": ("vector_store", "host", str),
            "CTXPACK_VECTOR_STORE_PORT": ("vector_store", "port", int),
            "CTXPACK_VECTOR_STORE_COLLECTION_NAME": ("vector_store", "collection_name", str),
            "CTXPACK_VECTOR_STORE_VECTOR_SIZE": ("vector_store", "vector_size", int),
            # Indexing config
            "CTXPACK_INDEXING_MAX_CHUNK_TOKENS": ("indexing", "max_chunk_tokens", int),
            "CTXPACK_INDEXING_CLASS_SPLIT_TOKENS": ("indexing", "class_split_tokens", int),
            "CTXPACK_INDEXING_MAX_WORKERS": ("indexing", "max_workers", int),
            "CTXPACK_INDEXING_RETAINED_GENERATIONS": ("indexing", "retained_generations", int),
            # Context config
            "CTXPACK_CONTEXT_MAX_CONTEXT_TOKENS": ("context", "max_context_tokens", int),
            "CTXPACK_CONTEXT_RESERVED_RESPONSE_TOKENS": (
                "context",
                "reserved_response_tokens",
                int,
            ),
            "CTXPACK_CONTEXT_INCLUDE_TYPES": ("context", "include_types", _parse_bool),
            "CTXPACK_CONTEXT_INCLUDE_TESTS": ("context", "include_tests", _parse_bool),
            "CTXPACK_CONTEXT_INCLUDE_DOCS": ("context", "include_docs", _parse_bool),
            "CTXPACK_CONTEXT_INCLUDE_CONFIG": ("context", "include_config", _parse_bool),
            "CTXPACK_CONTEXT_COMPRESSION_LEVEL": (
                "context",
                "compression_level",
                CompressionLevel.parse,
            ),
            "CTXPACK_CONTEXT_COMPRESSION_TRIGGER": ("context", "compression_trigger", float),
            "CTXPACK_CONTEXT_MANDATORY_THRESHOLD": ("context", "mandatory_threshold", float),
            "CTXPACK_CONTEXT_MINIMUM_THRESHOLD": ("context", "minimum_threshold", float),
            "CTXPACK_CONTEXT_TOP_K": ("context", "top_k", int),
            "CTXPACK_CONTEXT_TIMEOUT_SECONDS": ("context", "timeout_seconds", float),
            # Logging config
            "CTXPACK_LOGGING_LEVEL": ("logging", "level", str),
        }

        for env_var, (section, key, converter) in env_mappings.items():
            value = os.environ.get(env_var)
            if value is not None:
                section_obj = getattr(self, section)
                try:
                    setattr(section_obj, key, converter(value))
                except ValueError as e:
                    raise ConfigurationError(f"Invalid value for {env_var}: {value!r}") from e

        weight_overrides = {}
        for weight_field in fields(ScoringWeights):
            value = os.environ.get(f"CTXPACK_SCORING_{weight_field.name.upper()}")
            if value is not None:
                try:
                    weight_overrides[weight_field.name] = float(value)
                except ValueError as e:
                    raise ConfigurationError(
                        f"Invalid value for CTXPACK_SCORING_{weight_field.name.upper()}: {value!r}"
                    ) from e
        if weight_overrides:
            self.context.weights = replace(self.context.weights, **weight_overrides)

        return self

    def to_dict(self) -> dict:
        """Convert configuration to a dictionary."""
        data = asdict(self)
        context = data["context"]
        context["compression_level"] = self.context.compression_level.name.lower()
        data["scoring"] = context.pop("weights")
        return data

    def to_yaml(self) -> str:
        """Serialize configuration to YAML string."""
        return yaml.dump(self.to_dict(), default_flow_style=False, sort_keys=False)

    def to_json(self) -> str:
        """Serialize configuration to JSON string."""
        return json.dumps(self.to_dict(), indent=2)

    def save(self, path: Path | str) -> None:
        """
        Save configuration to a file.

        Args:
            path: Path to save the configuration (.yaml, .yml, or .json)

        Raises:
            ConfigurationError: If the file format is unsupported
        """
        path = Path(path)

        if path.suffix in (".yaml", ".yml"):
            content = self.to_yaml()
        elif path.suffix == ".json":
            content = self.to_json()
        else:
            raise ConfigurationError(f"Unsupported config file format: {path.suffix}")

        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")


def _parse_bool(value: str) -> bool:
    """Parse a string to boolean."""
    return value.lower() in ("true", "1", "yes", "on")


def load_config(
    config_path: Optional[Path | str] = None, apply_env: bool = True
) -> CtxpackConfig:
    """
    Load configuration with optional environment variable overrides.

    Args:
        config_path: Optional path to config file. If None, uses defaults.
        apply_env: Whether to apply environment variable overrides.

    Returns:
        Validated CtxpackConfig instance

    Raises:
        ConfigurationError: If the resulting configuration is invalid
    """
    if config_path:
        config = CtxpackConfig.from_file(config_path)
    else:
        config = CtxpackConfig()

    if apply_env:
        config.apply_env_overrides()

    config.validate()
    return config
