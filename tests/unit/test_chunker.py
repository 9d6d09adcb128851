"""
Tests for the Chunker.
"""

import pytest

from ctxpack.core.chunker import ChunkKind, create_chunker, is_test_file
from ctxpack.core.errors import SourceParseError
from ctxpack.core.source_files import SourceFile
from tests.support.context_builders import SAMPLE_REPO, function_body


@pytest.fixture
def chunker():
    return create_chunker(max_tokens=512, class_split_tokens=256)


def _chunk(chunker, path, content=None, **kwargs):
    content = SAMPLE_REPO[path] if content is None else content
    return chunker.chunk(SourceFile(path=path, content=content, **kwargs))


class TestPythonDeclarations:
    def test_functions_with_dependencies_and_exports(self, chunker):
        result = _chunk(chunker, "src/billing/totals.py")
        by_name = {c.name: c for c in result.chunks}

        assert set(by_name) == {"compute_total", "format_total"}
        compute = by_name["compute_total"]
        assert compute.kind == ChunkKind.FUNCTION
        assert (compute.start_line, compute.end_line) == (4, 10)
        assert compute.dependencies == ["Invoice", "TAX_RATE"]
        assert compute.exports == ["compute_total"]
        assert compute.metadata["docstring"] == "Sum invoice lines and apply tax."
        assert compute.complexity == 3
        assert by_name["format_total"].dependencies == []

    def test_protocol_is_interface_and_upper_case_name_is_constant(self, chunker):
        result = _chunk(chunker, "src/billing/models.py")
        kinds = {c.name: c.kind for c in result.chunks}

        assert kinds == {"Invoice": ChunkKind.INTERFACE, "TAX_RATE": ChunkKind.CONSTANT}

    def test_dunder_all_limits_exports(self, chunker):
        content = "__all__ = ['public']\n\n\ndef public():\n    pass\n\n\ndef helper():\n    pass\n"
        result = _chunk(chunker, "src/mod.py", content)
        exports = {c.name: c.exports for c in result.chunks}

        assert exports == {"public": ["public"], "helper": []}

    def test_private_names_are_not_exported(self, chunker):
        result = _chunk(chunker, "src/mod.py", "def _hidden():\n    pass\n")
        assert result.chunks[0].exports == []

    def test_chunk_content_matches_line_range(self, chunker):
        content = SAMPLE_REPO["src/billing/totals.py"]
        lines = content.split("\n")
        for chunk in _chunk(chunker, "src/billing/totals.py").chunks:
            assert chunk.content == "\n".join(lines[chunk.start_line - 1 : chunk.end_line])

    def test_module_without_declarations_is_one_module_chunk(self, chunker):
        result = _chunk(chunker, "scripts/run.py", "import sys\n\nprint(sys.argv)\n")

        assert len(result.chunks) == 1
        assert result.chunks[0].kind == ChunkKind.MODULE
        assert (result.chunks[0].start_line, result.chunks[0].end_line) == (1, 3)


class TestKinds:
    def test_test_file_functions_are_tests(self, chunker):
        result = _chunk(chunker, "tests/test_totals.py")
        assert [c.kind for c in result.chunks] == [ChunkKind.TEST]

    def test_config_file_is_single_config_chunk(self, chunker):
        result = _chunk(chunker, "config/settings.yaml")

        assert len(result.chunks) == 1
        assert result.chunks[0].kind == ChunkKind.CONFIG
        assert result.chunks[0].dependencies == []

    def test_markdown_is_documentation_module(self, chunker):
        result = _chunk(chunker, "docs/guide.md", "# Guide\n\nUse compute_total.\n")

        assert result.chunks[0].kind == ChunkKind.MODULE
        assert result.chunks[0].metadata == {"doc": True}

    def test_exported_javascript_function(self, chunker):
        result = _chunk(chunker, "src/web/handlers.js")
        chunk = result.chunks[0]

        assert chunk.name == "handleRequest"
        assert chunk.exports == ["handleRequest"]
        assert chunk.dependencies == ["renderPage"]
        assert chunk.complexity == 2

    @pytest.mark.parametrize(
        "path,expected",
        [
            ("tests/test_api.py", True),
            ("pkg/api_test.py", True),
            ("web/__tests__/view.js", True),
            ("web/view.spec.ts", True),
            ("pkg/api.py", False),
        ],
    )
    def test_is_test_file(self, path, expected):
        assert is_test_file(path) is expected


class TestSplitting:
    def test_large_class_splits_into_summary_and_methods(self):
        chunker = create_chunker(max_tokens=1024, class_split_tokens=64)
        methods = "\n\n".join(
            "\n".join("    " + line for line in function_body(f"step_{i}", 6).split("\n")).replace(
                "(items, factor)", "(self, items, factor)"
            )
            for i in range(3)
        )
        content = f"class Pipeline:\n    def __init__(self):\n        self.ready = True\n\n{methods}\n"
        result = chunker.chunk(SourceFile(path="src/pipeline.py", content=content))

        summary = result.chunks[0]
        assert summary.name == "Pipeline"
        assert summary.metadata["class_summary"] is True
        assert summary.metadata["methods"] == ["step_0", "step_1", "step_2"]
        assert "self.ready = True" in summary.content
        assert "def step_0(self, items, factor): ..." in summary.content

        method_chunks = result.chunks[1:]
        assert [c.qualified_name for c in method_chunks] == [
            "Pipeline.step_0",
            "Pipeline.step_1",
            "Pipeline.step_2",
        ]
        assert all(c.exports == [] for c in method_chunks)

    def test_oversized_function_splits_into_contiguous_parts(self):
        chunker = create_chunker(max_tokens=120, class_split_tokens=64)
        content = function_body("crunch", 60)
        result = chunker.chunk(SourceFile(path="src/crunch.py", content=content))

        assert len(result.chunks) > 1
        assert result.chunks[0].start_line == 1
        assert result.chunks[-1].end_line == content.count("\n") + 1
        for previous, current in zip(result.chunks, result.chunks[1:]):
            assert current.start_line == previous.end_line + 1
        assert len({c.chunk_id for c in result.chunks}) == len(result.chunks)
        assert all(c.metadata["is_partial"] for c in result.chunks)
        assert result.chunks[0].exports == ["crunch"]
        assert all(c.exports == [] for c in result.chunks[1:])


class TestErrorsAndIdentity:
    def test_syntax_error_raises_source_parse_error(self, chunker):
        with pytest.raises(SourceParseError) as exc_info:
            _chunk(chunker, "src/broken.py", "def broken(:\n    pass\n")
        assert exc_info.value.file_path == "src/broken.py"

    def test_empty_file_has_no_chunks(self, chunker):
        assert _chunk(chunker, "src/empty.py", "\n\n").chunks == []

    def test_chunking_is_idempotent(self, chunker):
        first = _chunk(chunker, "src/billing/totals.py")
        second = _chunk(chunker, "src/billing/totals.py")

        assert first.file_hash == second.file_hash
        assert [(c.chunk_id, c.content_hash) for c in first.chunks] == [
            (c.chunk_id, c.content_hash) for c in second.chunks
        ]

    def test_moving_a_declaration_keeps_its_id(self, chunker):
        original = _chunk(chunker, "src/billing/totals.py")
        shifted = _chunk(
            chunker, "src/billing/totals.py", "# header\n\n" + SAMPLE_REPO["src/billing/totals.py"]
        )

        assert [c.chunk_id for c in original.chunks] == [c.chunk_id for c in shifted.chunks]
        assert [c.start_line + 2 for c in original.chunks] == [c.start_line for c in shifted.chunks]

    def test_coverage_ratio_from_covered_lines(self, chunker):
        result = _chunk(
            chunker,
            "src/billing/totals.py",
            covered_lines=frozenset({13, 14}),
        )
        coverage = {c.name: c.coverage for c in result.chunks}

        assert coverage == {"compute_total": 0.0, "format_total": 1.0}


class TestTopLevelCode:
    EXPRESS = (
        "import express from 'express';\n"
        "const app = express();\n"
        "export function handler(req, res) { res.send('ok'); }\n"
        "app.get('/', handler);\n"
        "app.listen(8080);\n"
        "export default function () { return app; }\n"
    )

    SCRIPT = (
        "import logging\n"
        "\n"
        "logger = logging.getLogger(__name__)\n"
        "\n"
        "\n"
        "def main():\n"
        "    logger.info('starting')\n"
        "\n"
        "\n"
        "if __name__ == '__main__':\n"
        "    main()\n"
    )

    def test_statements_between_declarations_become_module_chunks(self, chunker):
        result = _chunk(chunker, "src/web/server.js", self.EXPRESS)

        assert [(c.kind, c.name, c.start_line, c.end_line) for c in result.chunks] == [
            (ChunkKind.FUNCTION, "handler", 3, 3),
            (ChunkKind.FUNCTION, "default", 6, 6),
            (ChunkKind.MODULE, "", 2, 2),
            (ChunkKind.MODULE, "", 4, 5),
        ]
        assert result.chunks[-1].content == "app.get('/', handler);\napp.listen(8080);"
        assert result.chunks[-1].metadata == {"top_level": True}

    def test_anonymous_default_export_is_named_default(self, chunker):
        result = _chunk(chunker, "src/web/server.js", self.EXPRESS)
        default = next(c for c in result.chunks if c.name == "default")

        assert default.exports == ["default"]
        assert default.content == "export default function () { return app; }"

    def test_python_entry_point_guard_is_indexed(self, chunker):
        result = _chunk(chunker, "scripts/run.py", self.SCRIPT)
        modules = [c for c in result.chunks if c.kind == ChunkKind.MODULE]

        assert [c.name for c in result.chunks if c.name] == ["main"]
        assert [m.content for m in modules] == [
            "logger = logging.getLogger(__name__)",
            "if __name__ == '__main__':\n    main()",
        ]

    def test_imports_docstrings_and_export_lists_do_not_form_module_chunks(self, chunker):
        content = '"""Helpers."""\n\n__all__ = ["run"]\n\nimport os\n\n\ndef run():\n    return os.getcwd()\n'
        result = _chunk(chunker, "src/helpers.py", content)

        assert [c.name for c in result.chunks] == ["run"]

    def test_module_chunk_ids_survive_edits_to_declarations(self, chunker):
        original = _chunk(chunker, "scripts/run.py", self.SCRIPT)
        edited = _chunk(
            chunker,
            "scripts/run.py",
            self.SCRIPT.replace("    logger.info('starting')\n", "    logger.info('starting')\n    return 0\n"),
        )

        def module_ids(result):
            return [c.chunk_id for c in result.chunks if c.kind == ChunkKind.MODULE]

        assert module_ids(original) == module_ids(edited)
        assert len(set(module_ids(original))) == 2
