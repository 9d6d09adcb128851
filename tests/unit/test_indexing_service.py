"""
Tests for IndexingService: incremental indexing into the chunk index.
"""

import math

import pytest

from ctxpack.core.chunker import create_chunker
from ctxpack.core.errors import EmbeddingServiceError
from ctxpack.core.source_files import SourceFile
from ctxpack.infrastructure import FlakyEmbeddingClient, LocalEmbeddingClient
from ctxpack.services import IndexingService
from tests.support.context_builders import (
    DIMENSION,
    SAMPLE_REPO,
    make_index,
    make_indexing_service,
    run,
    sample_files,
)


def _with(path, content):
    repo = dict(SAMPLE_REPO)
    repo[path] = content
    return sample_files(repo)


@pytest.fixture
def client():
    return LocalEmbeddingClient(dimension=DIMENSION)


@pytest.fixture
def service(client):
    return make_indexing_service(embedding_client=client)


class TestInitialIndexing:
    def test_indexes_every_file(self, service, client):
        result = run(service.index_files(sample_files()))
        snapshot = service.chunk_index.snapshot()

        assert result.new_files == len(SAMPLE_REPO)
        assert result.generation == 1
        assert result.embedded_chunks == result.total_chunks == len(snapshot)
        assert [c.name for c in snapshot.find_by_symbol("compute_total")] == ["compute_total"]
        assert snapshot.file_record("src/billing/totals.py") is not None
        assert len(client.embedded_texts) == result.total_chunks

    def test_embedded_text_carries_location(self, service, client):
        run(service.index_files(sample_files()))
        assert any(t.startswith("src/billing/totals.py compute_total\n") for t in client.embedded_texts)

    def test_batches_follow_batch_size(self, client):
        service = IndexingService(
            make_index(),
            client,
            chunker=create_chunker(max_tokens=512),
            batch_size=2,
        )

        result = run(service.index_files(sample_files()))

        assert client.calls == math.ceil(result.embedded_chunks / 2)

    def test_progress_callback_is_called(self, service):
        events = []
        service.progress_callback = lambda current, total, message: events.append((current, total, message))

        run(service.index_files(sample_files()))

        assert events[0] == (1, len(SAMPLE_REPO), "Chunked config/settings.yaml")
        assert events[-1][2] == "Embedded chunks"


class TestIncrementalIndexing:
    def test_unchanged_files_are_not_reembedded(self, service, client):
        run(service.index_files(sample_files()))
        calls = client.calls

        result = run(service.index_files(sample_files()))

        assert result.unchanged_files == len(SAMPLE_REPO)
        assert result.generation is None
        assert client.calls == calls

    def test_only_the_edited_chunk_is_reembedded(self, service, client):
        run(service.index_files(sample_files()))
        client.embedded_texts.clear()
        edited = SAMPLE_REPO["src/billing/totals.py"].replace("subtotal = 0.0", "subtotal = 0")

        result = run(service.index_files(_with("src/billing/totals.py", edited)))

        assert result.modified_files == 1
        assert result.embedded_chunks == 1
        assert client.embedded_texts[0].startswith("src/billing/totals.py compute_total")
        snapshot = service.chunk_index.snapshot()
        assert "subtotal = 0\n" in snapshot.find_by_symbol("compute_total")[0].content

    def test_shifted_chunks_keep_their_vectors(self, service, client):
        run(service.index_files(sample_files()))
        before = service.chunk_index.snapshot()
        chunk_id = before.find_by_symbol("format_total")[0].chunk_id
        client.embedded_texts.clear()
        shifted = SAMPLE_REPO["src/billing/totals.py"].replace(
            "import Invoice, TAX_RATE\n", "import Invoice, TAX_RATE\nimport math\n"
        )

        result = run(service.index_files(_with("src/billing/totals.py", shifted)))
        after = service.chunk_index.snapshot()

        assert result.relocated_chunks == 2
        assert result.embedded_chunks == 0
        assert client.embedded_texts == []
        assert after.get(chunk_id).start_line == before.get(chunk_id).start_line + 1
        assert after.vector_for(chunk_id) == before.vector_for(chunk_id)

    def test_removed_files_are_deleted(self, service):
        run(service.index_files(sample_files()))

        result = run(service.remove_files(["src/web/handlers.js", "src/never_indexed.py"]))
        snapshot = service.chunk_index.snapshot()

        assert result.deleted_files == 1
        assert snapshot.find_by_file("src/web/handlers.js") == []
        assert snapshot.file_record("src/web/handlers.js") is None

    def test_index_directory_removes_vanished_files(self, service, tmp_path):
        (tmp_path / "pkg").mkdir()
        (tmp_path / "pkg" / "a.py").write_text("def a():\n    return 1\n")
        (tmp_path / "pkg" / "b.py").write_text("def b():\n    return 2\n")
        run(service.index_directory(tmp_path))

        (tmp_path / "pkg" / "b.py").unlink()
        result = run(service.index_directory(tmp_path))

        assert result.deleted_files == 1
        assert service.chunk_index.snapshot().file_paths() == ["pkg/a.py"]


class TestFailures:
    def test_parse_failure_is_isolated(self, service):
        files = sample_files() + [SourceFile(path="src/broken.py", content="def broken(:\n    pass\n")]

        result = run(service.index_files(files))

        assert list(result.failed_files) == ["src/broken.py"]
        assert result.total_files == len(SAMPLE_REPO)
        assert service.chunk_index.snapshot().find_by_file("src/broken.py") == []

    def test_parse_failure_keeps_previous_version(self, service):
        run(service.index_files(sample_files()))

        result = run(service.index_files(_with("src/billing/report.py", "def render_report(:\n")))

        assert "src/billing/report.py" in result.failed_files
        assert service.chunk_index.snapshot().find_by_symbol("render_report")

    def test_embedding_failure_commits_nothing(self):
        flaky = FlakyEmbeddingClient(LocalEmbeddingClient(dimension=DIMENSION), failures=1)
        service = make_indexing_service(embedding_client=flaky)

        with pytest.raises(EmbeddingServiceError):
            run(service.index_files(sample_files()))

        assert service.chunk_index.latest_generation == 0
