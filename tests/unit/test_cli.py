"""
Integration tests for CLI commands.
"""

import pytest
from typer.testing import CliRunner

from ctxpack.cli import app
from tests.support.context_builders import SAMPLE_REPO

runner = CliRunner()


@pytest.fixture(autouse=True)
def local_environment(monkeypatch):
    """Keep CLI runs in-process and off the network."""
    monkeypatch.delenv("CTXPACK_EMBEDDING_API_KEY", raising=False)
    monkeypatch.setenv("CTXPACK_VECTOR_STORE_BACKEND", "memory")
    monkeypatch.setenv("CTXPACK_INDEXING_MAX_WORKERS", "1")
    monkeypatch.setenv("CTXPACK_LOGGING_LEVEL", "WARNING")


@pytest.fixture
def repo(tmp_path):
    for path, content in SAMPLE_REPO.items():
        target = tmp_path / path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
    return tmp_path


class TestCLIHelp:
    def test_main_help(self):
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        for command in ("chunk", "index", "context"):
            assert command in result.stdout

    def test_context_help(self):
        result = runner.invoke(app, ["context", "--help"])

        assert result.exit_code == 0
        assert "--budget" in result.stdout
        assert "--target-symbol" in result.stdout


class TestChunkCommand:
    def test_lists_chunks(self, repo):
        result = runner.invoke(app, ["chunk", str(repo / "src/billing/totals.py")])

        assert result.exit_code == 0
        assert "compute_total" in result.stdout
        assert "format_total" in result.stdout

    def test_missing_file(self, tmp_path):
        result = runner.invoke(app, ["chunk", str(tmp_path / "missing.py")])

        assert result.exit_code == 1
        assert "Not a file" in result.stdout


class TestIndexCommand:
    def test_indexes_directory(self, repo):
        result = runner.invoke(app, ["index", str(repo)])

        assert result.exit_code == 0
        assert "Indexing Complete" in result.stdout

    def test_rejects_files(self, repo):
        result = runner.invoke(app, ["index", str(repo / "src/billing/totals.py")])
        assert result.exit_code == 1


class TestContextCommand:
    def test_prints_context_and_report(self, repo):
        result = runner.invoke(
            app,
            ["context", str(repo), "Refactor compute_total", "-s", "compute_total", "--report"],
        )

        assert result.exit_code == 0
        assert "## Task" in result.stdout
        assert "Top Scores" in result.stdout

    def test_budget_too_small_exits_with_reason(self, repo):
        result = runner.invoke(app, ["context", str(repo), "Refactor compute_total", "--budget", "5"])

        assert result.exit_code == 2
        assert "CTX_3001" in result.stdout

    def test_unknown_compression_level(self, repo):
        result = runner.invoke(app, ["context", str(repo), "Tidy", "--compression", "extreme"])

        assert result.exit_code == 1
        assert "Unknown compression level" in result.stdout
