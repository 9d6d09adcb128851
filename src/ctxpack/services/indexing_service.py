"""
Indexing Service for ctxpack.

Coordinates the write path: chunking source files, detecting which chunks
changed, embedding only those, and committing everything as one new index
generation.

Chunking runs in a ProcessPoolExecutor when more than one worker is
configured (parsing is CPU-bound); embedding and storage are async.
"""

import asyncio
import logging
import time
from concurrent.futures import ProcessPoolExecutor
from pathlib import Path
from typing import Callable, Iterable, Optional, Sequence

from ctxpack.core.chunker import (
    ChunkerInterface,
    ChunkingResult,
    CodeChunk,
    compute_chunk_delta,
    create_chunker,
)
from ctxpack.core.errors import EmbeddingServiceError, SourceParseError
from ctxpack.core.source_files import SourceFile, SourceScanner
from ctxpack.infrastructure.chunk_index import ChunkIndex, FileRecord, GenerationBuilder, IndexSnapshot
from ctxpack.infrastructure.embedding import EmbeddingClientError, EmbeddingClientInterface
from ctxpack.services.indexing_models import IndexingResult
from ctxpack.services.indexing_worker import chunk_file_worker, init_worker

logger = logging.getLogger(__name__)


def embedding_text(chunk: CodeChunk) -> str:
    """Text embedded for a chunk: its location and name, then its content."""
    header = chunk.file_path
    if chunk.qualified_name:
        header = f"{header} {chunk.qualified_name}"
    return f"{header}\n{chunk.content}"


class IndexingService:
    """
    Service for indexing source files into a ChunkIndex.

    Parse failures are isolated per file: the file is skipped, listed in
    ``IndexingResult.failed_files`` and any previously indexed version of it
    stays in place.
    """

    def __init__(
        self,
        chunk_index: ChunkIndex,
        embedding_client: EmbeddingClientInterface,
        chunker: Optional[ChunkerInterface] = None,
        scanner: Optional[SourceScanner] = None,
        batch_size: int = 100,
        max_workers: int = 1,
        progress_callback: Optional[Callable[[int, int, str], None]] = None,
    ):
        """
        Args:
            chunk_index: Index to write to
            embedding_client: Client for chunk embeddings
            chunker: Chunker for the sequential path (default: create_chunker())
            scanner: Directory scanner for index_directory
            batch_size: Chunks per embedding request
            max_workers: Worker processes for chunking (1 = in-process)
            progress_callback: Optional callback(current, total, message)
        """
        self._index = chunk_index
        self._embedding_client = embedding_client
        self._chunker = chunker or create_chunker()
        self._scanner = scanner or SourceScanner()
        self._batch_size = max(1, batch_size)
        self._max_workers = max_workers
        self.progress_callback = progress_callback

    @property
    def chunk_index(self) -> ChunkIndex:
        return self._index

    def _report_progress(self, current: int, total: int, message: str) -> None:
        if self.progress_callback:
            self.progress_callback(current, total, message)
        logger.debug(f"Progress: {current}/{total} - {message}")

    def chunk_file(self, source: SourceFile) -> ChunkingResult:
        """
        Chunk a single file in-process.

        Raises:
            SourceParseError: If the file does not parse cleanly
        """
        return self._chunker.chunk(source)

    async def chunk_repository(self, files: Iterable[SourceFile]) -> list[ChunkingResult]:
        """Chunk many files; files that fail to parse are logged and skipped."""
        results, _ = await self._chunk_all(list(files))
        return results

    async def _chunk_all(self, files: list[SourceFile]) -> tuple[list[ChunkingResult], dict[str, str]]:
        if self._max_workers > 1 and len(files) > 1:
            outcomes = await self._chunk_parallel(files)
        else:
            outcomes = self._chunk_sequential(files)

        results: list[ChunkingResult] = []
        failures: dict[str, str] = {}
        for path, result, error in outcomes:
            if error is not None:
                logger.warning(f"Skipping {path}: {error}", extra={"file_path": path})
                failures[path] = error
            else:
                results.append(result)
        return results, failures

    def _chunk_sequential(self, files: list[SourceFile]) -> list[tuple[str, Optional[ChunkingResult], Optional[str]]]:
        outcomes = []
        for i, source in enumerate(files, start=1):
            try:
                outcomes.append((source.path, self._chunker.chunk(source), None))
            except SourceParseError as e:
                outcomes.append((source.path, None, e.message))
            self._report_progress(i, len(files), f"Chunked {source.path}")
        return outcomes

    async def _chunk_parallel(self, files: list[SourceFile]) -> list[tuple[str, Optional[ChunkingResult], Optional[str]]]:
        loop = asyncio.get_running_loop()
        with ProcessPoolExecutor(
            max_workers=self._max_workers,
            initializer=init_worker,
            initargs=(self._chunker.get_config(),),
        ) as executor:
            futures = [loop.run_in_executor(executor, chunk_file_worker, source) for source in files]
            outcomes = []
            for i, future in enumerate(futures, start=1):
                outcome = await future
                outcomes.append(outcome)
                self._report_progress(i, len(files), f"Chunked {outcome[0]}")
        return outcomes

    async def index_files(self, files: Iterable[SourceFile]) -> IndexingResult:
        """
        Chunk, embed and commit files as one new generation.

        Only new or invalidated chunks are embedded; relocated chunks keep
        their vectors and vanished chunks are deleted.

        Raises:
            EmbeddingServiceError: If the embedding service fails; nothing is committed
            IndexUnavailable: If the vector store rejects the new generation
        """
        return await self._index_files(list(files), removed_paths=())

    async def remove_files(self, paths: Iterable[str]) -> IndexingResult:
        """Delete every chunk of the given files in one new generation."""
        return await self._index_files([], removed_paths=list(paths))

    async def index_directory(self, root_path: Path | str) -> IndexingResult:
        """
        Scan a directory and bring the index in line with it.

        Indexed files that are no longer present under the directory are
        removed in the same generation.
        """
        files = list(self._scanner.scan(root_path))
        present = {source.path for source in files}
        snapshot = self._index.snapshot()
        missing = [path for path in snapshot.file_paths() if path not in present]
        logger.info(f"Scanned {root_path}: {len(files)} file(s), {len(missing)} removed")
        return await self._index_files(files, removed_paths=missing)

    async def _index_files(self, files: list[SourceFile], removed_paths: Sequence[str]) -> IndexingResult:
        start_time = time.time()
        result = IndexingResult()

        results, result.failed_files = await self._chunk_all(files)
        sources = {source.path: source for source in files}
        snapshot = self._index.snapshot()
        builder = self._index.builder()
        to_embed: list[CodeChunk] = []

        for chunking in results:
            result.total_files += 1
            result.total_chunks += len(chunking.chunks)
            to_embed.extend(self._stage_file(snapshot, builder, sources[chunking.file_path], chunking, result))

        for path in removed_paths:
            if snapshot.file_record(path) is None and not snapshot.find_by_file(path):
                continue
            result.deleted_files += 1
            result.removed_chunks += len(snapshot.find_by_file(path))
            builder.delete_file(path)

        if to_embed:
            await self._embed_into(builder, to_embed)
            result.embedded_chunks = len(to_embed)

        if len(builder):
            generation = await builder.commit()
            result.generation = generation.number

        result.duration_seconds = time.time() - start_time
        logger.info(
            "Indexing completed",
            extra={
                "total_files": result.total_files,
                "total_chunks": result.total_chunks,
                "embedded_chunks": result.embedded_chunks,
                "failed_files": len(result.failed_files),
                "duration_seconds": result.duration_seconds,
            },
        )
        return result

    def _stage_file(
        self,
        snapshot: IndexSnapshot,
        builder: GenerationBuilder,
        source: SourceFile,
        chunking: ChunkingResult,
        result: IndexingResult,
    ) -> list[CodeChunk]:
        """Stage one file's changes; return the chunks that need embedding."""
        record = snapshot.file_record(source.path)
        old_chunks = snapshot.find_by_file(source.path)
        new_record = FileRecord(
            file_path=source.path,
            file_hash=chunking.file_hash,
            content=source.content,
            language=source.language,
            modified_time=source.modified_time,
        )

        if record is None:
            result.new_files += 1
            for chunk in old_chunks:
                builder.delete(chunk.chunk_id)
            result.removed_chunks += len(old_chunks)
            builder.set_file(new_record)
            return list(chunking.chunks)

        if record.file_hash == chunking.file_hash:
            result.unchanged_files += 1
            return []

        result.modified_files += 1
        delta = compute_chunk_delta(record.content, old_chunks, source.content, chunking.chunks)
        for chunk in delta.relocated:
            builder.relocate(chunk)
        for chunk_id in delta.removed:
            builder.delete(chunk_id)
        builder.set_file(new_record)
        result.relocated_chunks += len(delta.relocated)
        result.removed_chunks += len(delta.removed)
        logger.debug(
            f"{source.path}: {len(delta.added)} added, {len(delta.invalidated)} invalidated, "
            f"{len(delta.relocated)} relocated, {len(delta.removed)} removed"
        )
        return delta.needs_embedding

    async def _embed_into(self, builder: GenerationBuilder, chunks: list[CodeChunk]) -> None:
        total = len(chunks)
        for start in range(0, total, self._batch_size):
            batch = chunks[start : start + self._batch_size]
            try:
                vectors = await self._embedding_client.embed_batch([embedding_text(c) for c in batch])
            except EmbeddingClientError as e:
                raise EmbeddingServiceError(f"Failed to embed chunks: {e}") from e
            if len(vectors) != len(batch):
                raise EmbeddingServiceError(
                    f"Embedding count mismatch: expected {len(batch)}, got {len(vectors)}"
                )
            for chunk, vector in zip(batch, vectors):
                builder.upsert(chunk, vector)
            self._report_progress(min(start + len(batch), total), total, "Embedded chunks")
