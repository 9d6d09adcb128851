"""
Versioned chunk index.

The index is a sequence of immutable generations. Writers stage operations
in a GenerationBuilder; ``ChunkIndex.commit`` replays them onto the latest
generation under a lock and publishes the result as a new generation, so
concurrent writers never lose each other's updates and readers holding a
snapshot of generation N keep seeing N.

Vectors live in a VectorStoreInterface backend. A point id is derived from
(chunk id, content hash), so a chunk whose content changes gets a new point
while older generations keep theirs; points no longer referenced by any
retained generation are pruned.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Sequence

from ctxpack.core.chunker.models import ChunkKind, CodeChunk
from ctxpack.core.errors import IndexUnavailable
from ctxpack.infrastructure.vector_store import VectorStoreError, VectorStoreInterface

logger = logging.getLogger(__name__)

_POINT_NAMESPACE = uuid.UUID("0b7d4e59-8c2f-4d16-a3e1-5f9a6c2d7b48")

DEFAULT_RETAINED_GENERATIONS = 4


def point_id_for(chunk: CodeChunk) -> str:
    return str(uuid.uuid5(_POINT_NAMESPACE, f"{chunk.chunk_id}:{chunk.content_hash}"))


@dataclass(frozen=True)
class FileRecord:
    """Indexed state of one source file, used for incremental re-chunking."""

    file_path: str
    file_hash: str
    content: str
    language: str
    modified_time: float = 0.0


def _freeze(mapping: dict) -> Mapping:
    return MappingProxyType(mapping)


def _index_by(chunks: Iterable[CodeChunk], keys) -> dict[str, tuple[str, ...]]:
    index: dict[str, list[str]] = {}
    for chunk in chunks:
        for key in keys(chunk):
            index.setdefault(key, []).append(chunk.chunk_id)
    return {key: tuple(sorted(ids)) for key, ids in index.items()}


def _lookup_names(chunk: CodeChunk) -> set[str]:
    names = chunk.symbols
    if chunk.parent_name:
        names.add(chunk.qualified_name)
    return names


class Generation:
    """
    One immutable version of the index.

    All mappings are read-only views; a new generation always gets new dicts.
    """

    def __init__(
        self,
        number: int,
        chunks: dict[str, CodeChunk],
        points: dict[str, str],
        vectors: dict[str, tuple[float, ...]],
        files: dict[str, FileRecord],
    ):
        self.number = number
        self.chunks: Mapping[str, CodeChunk] = _freeze(chunks)
        # chunk id -> point id
        self.points: Mapping[str, str] = _freeze(points)
        # point id -> vector
        self.vectors: Mapping[str, tuple[float, ...]] = _freeze(vectors)
        self.files: Mapping[str, FileRecord] = _freeze(files)
        self.point_to_chunk: Mapping[str, str] = _freeze({p: c for c, p in points.items()})

        values = chunks.values()
        self.by_file: Mapping[str, tuple[str, ...]] = _freeze(_index_by(values, lambda c: [c.file_path]))
        self.by_export: Mapping[str, tuple[str, ...]] = _freeze(_index_by(values, lambda c: c.exports))
        self.by_name: Mapping[str, tuple[str, ...]] = _freeze(_index_by(values, _lookup_names))

    @classmethod
    def empty(cls) -> "Generation":
        return cls(0, {}, {}, {}, {})

    def __len__(self) -> int:
        return len(self.chunks)


class IndexSnapshot:
    """
    Read-only view of one generation.

    Passed explicitly into every retrieval; commits made after the snapshot
    was taken are invisible to it.
    """

    def __init__(self, generation: Generation, vector_store: VectorStoreInterface):
        self._generation = generation
        self._vector_store = vector_store

    @property
    def generation(self) -> int:
        return self._generation.number

    def __len__(self) -> int:
        return len(self._generation)

    def get(self, chunk_id: str) -> Optional[CodeChunk]:
        return self._generation.chunks.get(chunk_id)

    def _resolve(self, ids: Iterable[str]) -> list[CodeChunk]:
        chunks = self._generation.chunks
        return [chunks[i] for i in ids if i in chunks]

    def find_by_file(self, file_path: str) -> list[CodeChunk]:
        """Chunks of a file in source order."""
        chunks = self._resolve(self._generation.by_file.get(file_path, ()))
        return sorted(chunks, key=lambda c: (c.start_line, c.chunk_id))

    def find_by_export(self, symbol: str) -> list[CodeChunk]:
        return self._resolve(self._generation.by_export.get(symbol, ()))

    def find_by_symbol(self, symbol: str) -> list[CodeChunk]:
        """Chunks declaring ``symbol`` as name, qualified name or export."""
        return self._resolve(self._generation.by_name.get(symbol, ()))

    def file_paths(self) -> list[str]:
        return sorted(self._generation.by_file)

    def file_record(self, file_path: str) -> Optional[FileRecord]:
        return self._generation.files.get(file_path)

    def all_chunks(self) -> list[CodeChunk]:
        return sorted(self._generation.chunks.values(), key=lambda c: (c.file_path, c.start_line, c.chunk_id))

    def vector_for(self, chunk_id: str) -> Optional[list[float]]:
        point_id = self._generation.points.get(chunk_id)
        if point_id is None:
            return None
        vector = self._generation.vectors.get(point_id)
        return list(vector) if vector is not None else None

    async def query(
        self,
        vector: list[float],
        top_k: int,
        kinds: Optional[Sequence[ChunkKind]] = None,
    ) -> list[tuple[CodeChunk, float]]:
        """
        Nearest chunks of this generation.

        The store may hold points of other retained generations, so results
        are filtered to this generation and the search widens until ``top_k``
        members are found or the store is exhausted.

        Raises:
            VectorStoreError: If the backend fails
        """
        if top_k <= 0 or not self._generation.chunks:
            return []

        filter = {"kind": [k.value for k in kinds]} if kinds is not None else None
        point_to_chunk = self._generation.point_to_chunk
        fetch = top_k
        while True:
            hits = await self._vector_store.query(vector, top_k=fetch, filter=filter)
            results = [
                (self._generation.chunks[point_to_chunk[point_id]], score)
                for point_id, score in hits
                if point_id in point_to_chunk
            ]
            if len(results) >= top_k or len(hits) < fetch:
                return results[:top_k]
            fetch *= 2


class GenerationBuilder:
    """
    Staged write operations for one commit.

    Operations are recorded, not applied; they are replayed in order onto
    whatever generation is latest when ``commit`` runs.
    """

    def __init__(self, index: "ChunkIndex"):
        self._index = index
        self._ops: list[tuple] = []

    def __len__(self) -> int:
        return len(self._ops)

    def upsert(self, chunk: CodeChunk, vector: Sequence[float]) -> "GenerationBuilder":
        """Add or replace a chunk with a freshly computed vector."""
        self._ops.append(("upsert", chunk, tuple(vector)))
        return self

    def relocate(self, chunk: CodeChunk) -> "GenerationBuilder":
        """Replace a chunk's metadata while reusing its stored vector."""
        self._ops.append(("relocate", chunk))
        return self

    def delete(self, chunk_id: str) -> "GenerationBuilder":
        self._ops.append(("delete", chunk_id))
        return self

    def delete_file(self, file_path: str) -> "GenerationBuilder":
        """Remove every chunk of a file and its file record."""
        self._ops.append(("delete_file", file_path))
        return self

    def set_file(self, record: FileRecord) -> "GenerationBuilder":
        self._ops.append(("set_file", record))
        return self

    @property
    def operations(self) -> list[tuple]:
        return list(self._ops)

    async def commit(self) -> Generation:
        return await self._index.commit(self)


class ChunkIndex:
    """
    Versioned store of chunks and their embeddings.

    Example:
        index = ChunkIndex(InMemoryVectorStore(vector_size=8))
        builder = index.builder()
        builder.upsert(chunk, vector)
        await builder.commit()
        snapshot = index.snapshot()
    """

    def __init__(
        self,
        vector_store: VectorStoreInterface,
        retained_generations: int = DEFAULT_RETAINED_GENERATIONS,
    ):
        if retained_generations < 1:
            raise ValueError("retained_generations must be at least 1")
        self._vector_store = vector_store
        self._retained = retained_generations
        self._generations: dict[int, Generation] = {0: Generation.empty()}
        self._latest = 0
        self._lock = asyncio.Lock()
        self._pending_prune: set[str] = set()

    @property
    def vector_store(self) -> VectorStoreInterface:
        return self._vector_store

    @property
    def latest_generation(self) -> int:
        return self._latest

    @property
    def retained_generations(self) -> list[int]:
        return sorted(self._generations)

    def builder(self) -> GenerationBuilder:
        return GenerationBuilder(self)

    def snapshot(self, generation: Optional[int] = None) -> IndexSnapshot:
        """
        Snapshot a retained generation (latest when None).

        Raises:
            IndexUnavailable: If the generation was never committed or was pruned
        """
        number = self._latest if generation is None else generation
        found = self._generations.get(number)
        if found is None:
            raise IndexUnavailable(
                f"Generation {number} is not available (retained: {self.retained_generations})"
            )
        return IndexSnapshot(found, self._vector_store)

    async def commit(self, builder: GenerationBuilder) -> Generation:
        """
        Replay staged operations onto the latest generation and publish it.

        Raises:
            IndexUnavailable: If the vector store rejects the new points
        """
        async with self._lock:
            base = self._generations[self._latest]
            chunks = dict(base.chunks)
            points = dict(base.points)
            vectors = dict(base.vectors)
            files = dict(base.files)
            new_points: dict[str, tuple[list[float], dict]] = {}

            def drop(chunk_id: str) -> None:
                chunks.pop(chunk_id, None)
                points.pop(chunk_id, None)

            for op in builder.operations:
                action = op[0]
                if action == "upsert":
                    chunk, vector = op[1], op[2]
                    point_id = point_id_for(chunk)
                    chunks[chunk.chunk_id] = chunk
                    points[chunk.chunk_id] = point_id
                    vectors[point_id] = vector
                    new_points[point_id] = (list(vector), self._payload(chunk))
                elif action == "relocate":
                    chunk = op[1]
                    point_id = point_id_for(chunk)
                    if point_id not in vectors:
                        logger.warning(
                            f"Cannot relocate {chunk.chunk_id}: no stored vector for its content",
                            extra={"chunk_id": chunk.chunk_id, "file_path": chunk.file_path},
                        )
                        continue
                    chunks[chunk.chunk_id] = chunk
                    points[chunk.chunk_id] = point_id
                elif action == "delete":
                    drop(op[1])
                elif action == "delete_file":
                    for chunk_id in [cid for cid, c in chunks.items() if c.file_path == op[1]]:
                        drop(chunk_id)
                    files.pop(op[1], None)
                elif action == "set_file":
                    files[op[1].file_path] = op[1]
                else:
                    raise ValueError(f"Unknown index operation: {action}")

            # Vectors not referenced by this generation stay reachable only through older ones
            live_points = set(points.values())
            vectors = {p: v for p, v in vectors.items() if p in live_points}

            if new_points:
                try:
                    await self._vector_store.upsert_batch(
                        [(p, v, payload) for p, (v, payload) in new_points.items() if p in live_points]
                    )
                except VectorStoreError as e:
                    raise IndexUnavailable(f"Failed to store vectors: {e}") from e

            number = self._latest + 1
            generation = Generation(number, chunks, points, vectors, files)
            self._generations[number] = generation
            self._latest = number
            await self._prune()

        logger.info(
            f"Committed generation {number}: {len(generation)} chunks, "
            f"{len(builder)} staged operation(s)",
            extra={"generation": number},
        )
        return generation

    def _payload(self, chunk: CodeChunk) -> dict:
        return {
            "chunk_id": chunk.chunk_id,
            "content_hash": chunk.content_hash,
            "file_path": chunk.file_path,
            "kind": chunk.kind.value,
        }

    async def _prune(self) -> None:
        """Drop generations beyond the retention window and their orphaned points."""
        while len(self._generations) > self._retained:
            oldest = min(self._generations)
            dropped = self._generations.pop(oldest)
            self._pending_prune.update(dropped.points.values())

        if not self._pending_prune:
            return
        referenced: set[str] = set()
        for generation in self._generations.values():
            referenced.update(generation.points.values())
        orphaned = sorted(self._pending_prune - referenced)
        # Still-referenced points come back here when their generations are dropped
        self._pending_prune.clear()
        if not orphaned:
            return
        try:
            await self._vector_store.delete(orphaned)
            logger.debug(f"Pruned {len(orphaned)} orphaned point(s)")
        except VectorStoreError as e:
            # Retried on the next commit
            self._pending_prune.update(orphaned)
            logger.warning(f"Failed to prune {len(orphaned)} point(s): {e}")
