"""
Tests for chunk summaries and the repository structure overview.
"""

from ctxpack.core.chunker import ChunkKind
from ctxpack.core.context import ChunkSummarizer, build_structure_overview
from ctxpack.core.tokenizer import get_default_tokenizer
from tests.support.context_builders import function_body, make_chunk


class TestChunkSummarizer:
    def test_summary_keeps_signature_docstring_and_exports(self):
        content = (
            "@cached\n"
            "def compute_total(invoice: Invoice) -> float:\n"
            '    """Sum invoice lines and apply tax."""\n'
            "    return 1.0"
        )
        chunk = make_chunk(
            "compute_total",
            content=content,
            start_line=10,
            metadata={"docstring": "Sum invoice lines and apply tax."},
        )

        summary = ChunkSummarizer().summarize(chunk)

        assert summary.split("\n") == [
            "def compute_total(invoice: Invoice) -> float:",
            "# Sum invoice lines and apply tax.",
            "# exports: compute_total",
            f"# summarized: {chunk.token_count} tokens, lines 10-13",
        ]

    def test_multiline_signature_stops_at_opening_brace(self):
        content = (
            "export function render(\n"
            "  view,\n"
            "  options\n"
            ") {\n"
            "  return view(options);\n"
            "}"
        )
        chunk = make_chunk("render", content=content, language="javascript", file_path="src/view.js")

        lines = ChunkSummarizer().summarize(chunk).split("\n")

        assert lines[:4] == ["export function render(", "  view,", "  options", ") {"]
        assert lines[-1].startswith("// summarized:")

    def test_class_summary_lists_methods(self):
        chunk = make_chunk(
            "Pipeline",
            content="class Pipeline:\n    def run(self): ...",
            kind=ChunkKind.CLASS,
            metadata={"methods": ["run", "stop"]},
        )
        assert "# methods: run, stop" in ChunkSummarizer().summarize(chunk)

    def test_summary_is_capped(self):
        tokenizer = get_default_tokenizer()
        chunk = make_chunk("big", content=function_body("big", 40), exports=[f"name_{i}" for i in range(200)])

        summary = ChunkSummarizer(tokenizer, max_summary_tokens=40).summarize(chunk)

        assert tokenizer.count_tokens(summary) <= 40

    def test_summary_is_much_smaller_than_large_chunk(self):
        tokenizer = get_default_tokenizer()
        chunk = make_chunk("big", content=function_body("big", 40))

        assert tokenizer.count_tokens(ChunkSummarizer().summarize(chunk)) < chunk.token_count / 4


class TestStructureOverview:
    def test_directories_first_then_files(self):
        overview = build_structure_overview(
            ["src/app/main.py", "README.md", "src/util.py", "src/app/main.py"]
        )

        assert overview.split("\n") == [
            "src/",
            "  app/",
            "    main.py",
            "  util.py",
            "README.md",
        ]

    def test_windows_separators_are_normalized(self):
        assert build_structure_overview(["pkg\\mod.py"]) == "pkg/\n  mod.py"

    def test_empty_file_list(self):
        assert build_structure_overview([]) == ""
