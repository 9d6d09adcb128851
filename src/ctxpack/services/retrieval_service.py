"""
Retrieval Service for ctxpack.

The read-path façade: given a transformation task it gathers candidate
chunks from an index snapshot, scores them, packs them into the token
budget, compresses when the context runs close to the limit and returns the
ordered result with a report.

Each retrieval works on its own snapshot and per-call objects, so any
number of retrievals may run concurrently on one service.
"""

import asyncio
import hashlib
import json
import logging
import time
from dataclasses import asdict, replace
from typing import Optional

from ctxpack.core.ast_parser import TreeSitterParser
from ctxpack.core.chunker.models import ChunkKind, CodeChunk
from ctxpack.core.config import ContextConfig
from ctxpack.core.context import (
    Candidate,
    ChunkSummarizer,
    CompressionLevel,
    ContextAssembler,
    ContextCompressor,
    OptimizedContext,
    RelevanceScorer,
    ScoredChunk,
    ScoringContext,
    TransformationTask,
    order_sections,
)
from ctxpack.core.errors import (
    BudgetExceededAfterCompression,
    ContextPipelineError,
    EmbeddingServiceError,
    IndexUnavailable,
    RetrievalTimeout,
    UnresolvedReference,
)
from ctxpack.core.tokenizer import TokenizerInterface, get_default_tokenizer
from ctxpack.infrastructure.chunk_index import ChunkIndex, IndexSnapshot
from ctxpack.infrastructure.embedding import (
    EmbeddingClientError,
    EmbeddingClientInterface,
    RetryableError,
)
from ctxpack.infrastructure.retry import RetryPolicy, with_retry
from ctxpack.infrastructure.vector_store import VectorStoreError
from ctxpack.services.context_cache import ContextCache
from ctxpack.services.retrieval_models import (
    RetrievalOutcome,
    RetrievalReport,
    RetrievalResult,
    ScoreEntry,
)

logger = logging.getLogger(__name__)

TOP_SCORES_REPORTED = 5


def _config_key(config: ContextConfig) -> str:
    payload = json.dumps(asdict(config), sort_keys=True, default=str)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def _kind_allowed(chunk: CodeChunk, config: ContextConfig) -> bool:
    if chunk.kind == ChunkKind.INTERFACE:
        return config.include_types
    if chunk.kind == ChunkKind.TEST:
        return config.include_tests
    if chunk.kind == ChunkKind.CONFIG:
        return config.include_config
    if chunk.metadata.get("doc"):
        return config.include_docs
    return True


class RetrievalService:
    """
    Orchestrates context retrieval for transformation tasks.

    Example:
        service = RetrievalService(index, embedding_client)
        result = await service.retrieve(TransformationTask("rename computeTotal"))
        prompt_input = result.context.text
    """

    def __init__(
        self,
        chunk_index: ChunkIndex,
        embedding_client: EmbeddingClientInterface,
        tokenizer: Optional[TokenizerInterface] = None,
        parser: Optional[TreeSitterParser] = None,
        cache: Optional[ContextCache] = None,
        default_config: Optional[ContextConfig] = None,
    ):
        self._index = chunk_index
        self._embedding_client = embedding_client
        self._tokenizer = tokenizer or get_default_tokenizer()
        self._summarizer = ChunkSummarizer(self._tokenizer)
        self._compressor = ContextCompressor(self._tokenizer, parser or TreeSitterParser())
        self._cache = cache
        self._default_config = default_config or ContextConfig()

    async def retrieve(
        self, task: TransformationTask, config: Optional[ContextConfig] = None
    ) -> RetrievalResult:
        """
        Build the optimized context for a task.

        Args:
            task: The transformation task
            config: Per-call context configuration (service default if None)

        Raises:
            ValidationError: If the task is malformed
            ConfigurationError: If the configuration is invalid
            IndexUnavailable: If the index cannot be queried after retries
            EmbeddingServiceError: If the task cannot be embedded after retries
            BudgetExceededAfterCompression: If mandatory content cannot fit
            RetrievalTimeout: If the whole retrieval exceeds ``timeout_seconds``
        """
        config = config or self._default_config
        config.validate()
        task.validate()

        try:
            return await asyncio.wait_for(self._retrieve(task, config), timeout=config.timeout_seconds)
        except asyncio.TimeoutError as e:
            logger.warning(
                f"Retrieval exceeded {config.timeout_seconds}s",
                extra={"task_hash": task.task_hash},
            )
            raise RetrievalTimeout(
                f"Retrieval did not finish within {config.timeout_seconds}s"
            ) from e

    async def prepare(
        self, task: TransformationTask, config: Optional[ContextConfig] = None
    ) -> RetrievalOutcome:
        """
        Like ``retrieve`` but reports pipeline failures as a structured outcome.
        """
        try:
            result = await self.retrieve(task, config)
        except BudgetExceededAfterCompression as e:
            return RetrievalOutcome(
                ok=False,
                context=e.partial_context,
                reason_code=e.reason_code,
                message=e.message,
                unplaced_chunk_ids=list(e.unplaced_chunk_ids),
            )
        except ContextPipelineError as e:
            logger.warning(f"Retrieval failed [{e.reason_code.value}]: {e.message}")
            return RetrievalOutcome(
                ok=False,
                context=e.partial_context,
                reason_code=e.reason_code,
                message=e.message,
            )
        return RetrievalOutcome(ok=True, context=result.context, report=result.report)

    async def _retrieve(self, task: TransformationTask, config: ContextConfig) -> RetrievalResult:
        start_time = time.monotonic()
        snapshot = self._index.snapshot(task.generation)

        cache_key = (task.task_hash, snapshot.generation, _config_key(config))
        if self._cache is not None:
            cached = self._cache.get(cache_key)
            if cached is not None:
                report = replace(cached.report, cache_hit=True, duration_seconds=time.monotonic() - start_time)
                return RetrievalResult(context=cached.context, report=report)

        policy = RetryPolicy(
            max_retries=config.max_retries,
            base_delay=config.retry_base_delay,
            max_delay=config.retry_max_delay,
        )
        task_vector = await self._embed_task(task, config, policy)
        hits = await self._query(snapshot, task_vector, config, policy)

        candidates: dict[str, CodeChunk] = {chunk.chunk_id: chunk for chunk, _ in hits}
        explicit, unresolved = self._resolve_references(snapshot, task)
        if config.expand_dependencies:
            self._expand_dependencies(snapshot, candidates, explicit)

        selected = {cid: c for cid, c in candidates.items() if _kind_allowed(c, config)}
        # Explicit targets bypass the kind toggles
        selected.update(explicit)

        scorer = RelevanceScorer(config.weights)
        scoring_context = self._scoring_context(snapshot, task)
        ranked = scorer.score(
            [Candidate(chunk, snapshot.vector_for(chunk.chunk_id)) for chunk in selected.values()],
            task_vector,
            scoring_context,
        )

        assembler = ContextAssembler(
            self._tokenizer,
            self._summarizer,
            self._compressor,
            mandatory_threshold=config.mandatory_threshold,
            minimum_threshold=config.minimum_threshold,
        )
        context = assembler.assemble(
            ranked, task, config.budget, snapshot.file_paths(), include_types=config.include_types
        )

        tokens_before = context.total_tokens
        if (
            config.compression_level > CompressionLevel.NONE
            and context.utilization > config.compression_trigger
        ):
            context = self._compressor.compress(context, config.compression_level)
            logger.debug(
                f"Compressed context at {config.compression_level.name}: "
                f"{tokens_before} -> {context.total_tokens} tokens"
            )
        context = self._ordered(context)

        report = self._report(snapshot, ranked, context, unresolved, tokens_before, start_time)
        result = RetrievalResult(context=context, report=report)
        if self._cache is not None:
            self._cache.put(cache_key, result)

        logger.info(
            f"Retrieved context: {context.included_chunks} chunk(s), "
            f"{context.total_tokens}/{context.budget} tokens",
            extra={"task_hash": task.task_hash, "generation": snapshot.generation},
        )
        return result

    async def _embed_task(
        self, task: TransformationTask, config: ContextConfig, policy: RetryPolicy
    ) -> list[float]:
        text = "\n".join([task.description, *task.target_symbols, *task.referenced_types])
        try:
            return await with_retry(
                lambda: self._embedding_client.embed(text),
                policy,
                retry_on=(RetryableError,),
                call_timeout=config.call_timeout_seconds,
                description="Task embedding",
            )
        except (EmbeddingClientError, asyncio.TimeoutError) as e:
            raise EmbeddingServiceError(f"Failed to embed task: {e!r}") from e

    async def _query(
        self,
        snapshot: IndexSnapshot,
        task_vector: list[float],
        config: ContextConfig,
        policy: RetryPolicy,
    ) -> list[tuple[CodeChunk, float]]:
        try:
            return await with_retry(
                lambda: snapshot.query(task_vector, config.top_k),
                policy,
                retry_on=(VectorStoreError,),
                call_timeout=config.call_timeout_seconds,
                description="Index query",
            )
        except (VectorStoreError, asyncio.TimeoutError) as e:
            raise IndexUnavailable(f"Failed to query the chunk index: {e!r}") from e

    def _resolve_references(
        self, snapshot: IndexSnapshot, task: TransformationTask
    ) -> tuple[dict[str, CodeChunk], list[UnresolvedReference]]:
        """Chunks the task names explicitly, plus the references that matched nothing."""
        explicit: dict[str, CodeChunk] = {}
        unresolved: list[UnresolvedReference] = []

        lookups = (
            ("file", task.target_files, snapshot.find_by_file),
            ("symbol", task.target_symbols, snapshot.find_by_symbol),
            ("type", task.referenced_types, snapshot.find_by_symbol),
        )
        for reference_type, references, find in lookups:
            for reference in references:
                found = find(reference)
                if reference_type == "type":
                    found = [c for c in found if c.kind == ChunkKind.INTERFACE]
                if not found:
                    unresolved.append(UnresolvedReference(reference, reference_type))
                    logger.warning(f"Unresolved {reference_type} reference: {reference}")
                    continue
                for chunk in found:
                    explicit[chunk.chunk_id] = chunk
        return explicit, unresolved

    def _expand_dependencies(
        self,
        snapshot: IndexSnapshot,
        candidates: dict[str, CodeChunk],
        explicit: dict[str, CodeChunk],
    ) -> None:
        """Add chunks exporting a symbol that a candidate depends on (one hop)."""
        seeds = list(candidates.values()) + [c for c in explicit.values() if c.chunk_id not in candidates]
        for chunk in seeds:
            for symbol in chunk.dependencies:
                for dependency in snapshot.find_by_export(symbol):
                    if dependency.chunk_id not in explicit:
                        candidates.setdefault(dependency.chunk_id, dependency)

    def _scoring_context(
        self, snapshot: IndexSnapshot, task: TransformationTask
    ) -> ScoringContext:
        """Direct imports come from targeted code, indirect ones from what those imports resolve to."""
        sources = [c for path in task.target_files for c in snapshot.find_by_file(path)]
        sources += [c for symbol in task.target_symbols for c in snapshot.find_by_symbol(symbol)]
        direct = frozenset(dep for chunk in sources for dep in chunk.dependencies)
        indirect = frozenset(
            dep
            for symbol in direct
            for exporter in snapshot.find_by_export(symbol)
            for dep in exporter.dependencies
        )
        return ScoringContext.from_task(task, direct_imports=direct, indirect_imports=indirect - direct)

    def _ordered(self, context: OptimizedContext) -> OptimizedContext:
        return OptimizedContext.from_sections(
            order_sections(context.sections),
            budget=context.budget,
            included_chunks=context.included_chunks,
            excluded_chunks=context.excluded_chunks,
            compression_level=context.compression_level,
        )

    def _report(
        self,
        snapshot: IndexSnapshot,
        ranked: list[ScoredChunk],
        context: OptimizedContext,
        unresolved: list[UnresolvedReference],
        tokens_before: int,
        start_time: float,
    ) -> RetrievalReport:
        return RetrievalReport(
            generation=snapshot.generation,
            candidates=len(ranked),
            included_chunks=context.included_chunks,
            excluded_chunks=context.excluded_chunks,
            summarized_chunks=len(context.summarized_chunk_ids),
            tokens_before_compression=tokens_before,
            tokens_after_compression=context.total_tokens,
            compression_ratio=(context.total_tokens / tokens_before) if tokens_before else 1.0,
            top_scores=[
                ScoreEntry(s.chunk_id, s.chunk.file_path, s.chunk.qualified_name, s.score)
                for s in ranked[:TOP_SCORES_REPORTED]
            ],
            unresolved_references=unresolved,
            duration_seconds=time.monotonic() - start_time,
        )
