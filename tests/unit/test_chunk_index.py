"""
Tests for the versioned chunk index.
"""

import asyncio
from dataclasses import replace

import pytest

from ctxpack.core.chunker import ChunkKind
from ctxpack.core.errors import IndexUnavailable
from ctxpack.infrastructure import (
    ChunkIndex,
    FileRecord,
    FlakyVectorStore,
    InMemoryVectorStore,
    LocalEmbeddingClient,
)
from tests.support.context_builders import DIMENSION, make_chunk, make_index, run

embedder = LocalEmbeddingClient(dimension=DIMENSION)


def _vector(chunk):
    return embedder.vector_for(chunk.content)


async def _commit(index, *chunks):
    builder = index.builder()
    for chunk in chunks:
        builder.upsert(chunk, _vector(chunk))
    return await builder.commit()


ALPHA = make_chunk("alpha", file_path="src/ops.py")
ALPHA_V2 = make_chunk("alpha", content="def alpha(value):\n    return value * 2", file_path="src/ops.py")
BETA = make_chunk("beta", file_path="src/ops.py", start_line=5)


class TestSnapshots:
    def test_snapshot_does_not_see_later_commits(self):
        async def scenario():
            index = make_index()
            await _commit(index, ALPHA)
            before = index.snapshot()
            await _commit(index, ALPHA_V2, BETA)
            return before, index.snapshot()

        before, after = run(scenario())

        assert before.generation == 1
        assert before.get(ALPHA.chunk_id).content == ALPHA.content
        assert before.get(BETA.chunk_id) is None
        assert after.generation == 2
        assert after.get(ALPHA.chunk_id).content == ALPHA_V2.content

    def test_query_is_restricted_to_the_snapshot_generation(self):
        async def scenario():
            index = make_index()
            await _commit(index, ALPHA)
            old = index.snapshot()
            await _commit(index, ALPHA_V2)
            # The newer point is the closest match, but belongs to generation 2
            return await old.query(_vector(ALPHA_V2), top_k=1)

        hits = run(scenario())

        assert len(hits) == 1
        assert hits[0][0].content == ALPHA.content

    def test_query_filters_by_kind(self):
        interface = make_chunk("Invoice", content="class Invoice(Protocol): ...", kind=ChunkKind.INTERFACE)

        async def scenario():
            index = make_index()
            await _commit(index, ALPHA, interface)
            return await index.snapshot().query(_vector(ALPHA), top_k=5, kinds=[ChunkKind.INTERFACE])

        hits = run(scenario())

        assert [chunk.chunk_id for chunk, _ in hits] == [interface.chunk_id]

    def test_empty_index_returns_no_hits(self):
        index = make_index()
        assert run(index.snapshot().query([1.0] * DIMENSION, top_k=3)) == []


class TestLookups:
    def test_file_export_and_symbol_lookups(self):
        method = replace(
            make_chunk("run", file_path="src/pipeline.py", exports=[]),
            parent_name="Pipeline",
        )

        async def scenario():
            index = make_index()
            await _commit(index, BETA, ALPHA, method)
            return index.snapshot()

        snapshot = run(scenario())

        assert [c.name for c in snapshot.find_by_file("src/ops.py")] == ["alpha", "beta"]
        assert [c.chunk_id for c in snapshot.find_by_export("beta")] == [BETA.chunk_id]
        assert [c.chunk_id for c in snapshot.find_by_symbol("Pipeline.run")] == [method.chunk_id]
        assert snapshot.find_by_export("run") == []
        assert snapshot.file_paths() == ["src/ops.py", "src/pipeline.py"]

    def test_delete_file_drops_chunks_and_record(self):
        async def scenario():
            index = make_index()
            builder = index.builder()
            builder.upsert(ALPHA, _vector(ALPHA)).set_file(
                FileRecord(file_path="src/ops.py", file_hash="h", content=ALPHA.content, language="python")
            )
            await builder.commit()
            await index.builder().delete_file("src/ops.py").commit()
            return index.snapshot()

        snapshot = run(scenario())

        assert len(snapshot) == 0
        assert snapshot.file_record("src/ops.py") is None


class TestWrites:
    def test_concurrent_commits_keep_both_updates(self):
        async def scenario():
            index = make_index()
            await asyncio.gather(_commit(index, ALPHA), _commit(index, BETA))
            return index

        index = run(scenario())
        snapshot = index.snapshot()

        assert index.latest_generation == 2
        assert snapshot.get(ALPHA.chunk_id) is not None
        assert snapshot.get(BETA.chunk_id) is not None

    def test_relocate_reuses_stored_vector(self):
        moved = ALPHA.relocated(10, 11, modified_time=5.0)

        async def scenario():
            index = make_index()
            await _commit(index, ALPHA)
            store_size = await index.vector_store.count()
            await index.builder().relocate(moved).commit()
            return index.snapshot(), store_size, await index.vector_store.count()

        snapshot, before, after = run(scenario())

        assert snapshot.get(ALPHA.chunk_id).start_line == 10
        assert snapshot.vector_for(ALPHA.chunk_id) == pytest.approx(_vector(ALPHA))
        assert before == after == 1

    def test_relocate_without_matching_vector_is_skipped(self):
        async def scenario():
            index = make_index()
            await _commit(index, ALPHA)
            await index.builder().relocate(ALPHA_V2).commit()
            return index.snapshot()

        assert run(scenario()).get(ALPHA.chunk_id).content == ALPHA.content

    def test_write_failure_publishes_nothing(self):
        store = FlakyVectorStore(InMemoryVectorStore(vector_size=DIMENSION), fail_writes=True)
        index = ChunkIndex(store)

        with pytest.raises(IndexUnavailable):
            run(_commit(index, ALPHA))

        assert index.latest_generation == 0
        assert len(index.snapshot()) == 0


class TestRetention:
    def test_pruned_generation_is_unavailable(self):
        async def scenario():
            index = make_index(retained_generations=2)
            for chunk in (ALPHA, ALPHA_V2, BETA):
                await _commit(index, chunk)
            return index

        index = run(scenario())

        assert index.retained_generations == [2, 3]
        with pytest.raises(IndexUnavailable):
            index.snapshot(1)
        with pytest.raises(IndexUnavailable):
            index.snapshot(42)

    def test_orphaned_points_are_deleted(self):
        async def scenario():
            index = make_index(retained_generations=1)
            await _commit(index, ALPHA)
            await _commit(index, ALPHA_V2)
            return await index.vector_store.count()

        assert run(scenario()) == 1

    def test_points_shared_with_retained_generations_survive(self):
        async def scenario():
            index = make_index(retained_generations=2)
            await _commit(index, ALPHA)
            await _commit(index, ALPHA_V2)
            return index, await index.vector_store.count()

        index, count = run(scenario())

        # Generation 1 is still retained and owns the original point
        assert count == 2
        assert index.snapshot(1).vector_for(ALPHA.chunk_id) == pytest.approx(_vector(ALPHA))

    def test_retention_must_be_positive(self):
        with pytest.raises(ValueError):
            ChunkIndex(InMemoryVectorStore(vector_size=DIMENSION), retained_generations=0)
