"""
Tests for code section compression.
"""

import pytest

from ctxpack.core.context import (
    CompressionLevel,
    ContextCompressor,
    ContextSection,
    OptimizedContext,
    SectionKind,
    SectionPriority,
)
from ctxpack.core.tokenizer import get_default_tokenizer
from tests.support.context_builders import make_chunk, scored


@pytest.fixture
def compressor():
    return ContextCompressor()


COMMENTED = (
    "def total(items):\n"
    "    # sum everything\n"
    "    result = 0  # running total\n"
    '    label = "# not a comment"\n'
    "    # TODO: handle refunds\n"
    "    return result  # type: ignore\n"
)


class TestStripComments:
    def test_plain_comments_are_removed(self, compressor):
        result = compressor.strip_comments(COMMENTED, "python")

        assert "sum everything" not in result
        assert "running total" not in result
        assert "    result = 0\n" in result

    def test_markers_pragmas_and_strings_survive(self, compressor):
        result = compressor.strip_comments(COMMENTED, "python")

        assert "# TODO: handle refunds" in result
        assert "# type: ignore" in result
        assert '"# not a comment"' in result

    def test_javascript_doc_comments_are_kept(self, compressor):
        source = (
            "/** Adds two numbers. */\n"
            "function add(a, b) {\n"
            "  // plain note\n"
            "  return a + b; /* inline */\n"
            "}"
        )

        result = compressor.strip_comments(source, "javascript")

        assert result.startswith("/** Adds two numbers. */")
        assert "plain note" not in result
        assert "inline" not in result
        assert "return a + b;" in result

    def test_text_without_comments_is_returned_as_is(self, compressor):
        source = "x = 1\n"
        assert compressor.strip_comments(source, "python") is source


class TestNormalizeWhitespace:
    def test_python_indentation_is_kept(self, compressor):
        source = (
            "def total(items):\n"
            "\n"
            "    result  =  0   \n"
            '    label = "a   b"\n'
            "    return result\n"
        )

        assert compressor.normalize_whitespace(source, "python") == (
            "def total(items):\n"
            "    result = 0\n"
            '    label = "a   b"\n'
            "    return result"
        )

    def test_brace_languages_are_dedented(self, compressor):
        source = (
            "function add(a, b) {\n"
            "    const sum = a + b;\n"
            "\n"
            "    return sum;\n"
            "}"
        )

        assert compressor.normalize_whitespace(source, "javascript") == (
            "function add(a, b) {\n"
            "const sum = a + b;\n"
            "return sum;\n"
            "}"
        )


class TestShortenLocals:
    def test_locals_are_renamed_in_order_of_appearance(self, compressor):
        source = (
            "def compute_total(items, factor):\n"
            "    running_total = 0\n"
            "    for current_item in items:\n"
            "        running_total += current_item * factor\n"
            '    label = "running_total"\n'
            "    return running_total"
        )

        assert compressor.shorten_locals(source, "python") == (
            "def compute_total(items, factor):\n"
            "    a = 0\n"
            "    for b in items:\n"
            "        a += b * factor\n"
            '    c = "running_total"\n'
            "    return a"
        )

    def test_attributes_and_keywords_keep_their_names(self, compressor):
        source = (
            "def build(config):\n"
            "    request = config.request\n"
            "    request.timeout = 5\n"
            "    return send(request, timeout=request.timeout)"
        )

        assert compressor.shorten_locals(source, "python") == (
            "def build(config):\n"
            "    a = config.request\n"
            "    a.timeout = 5\n"
            "    return send(a, timeout=a.timeout)"
        )

    def test_scope_using_locals_is_left_alone(self, compressor):
        source = (
            "def render(template):\n"
            "    context_value = 1\n"
            "    return template.format(**locals())"
        )
        assert compressor.shorten_locals(source, "python") == source

    def test_global_names_are_not_renamed(self, compressor):
        source = (
            "def bump():\n"
            "    global counter_value\n"
            "    counter_value = counter_value + 1\n"
            "    return counter_value"
        )
        assert compressor.shorten_locals(source, "python") == source

    def test_javascript_parameters_are_preserved(self, compressor):
        source = (
            "function scale(values, factor) {\n"
            "  const scaledValues = values.map((v) => v * factor);\n"
            "  let resultTotal = 0;\n"
            "  for (const entry of scaledValues) {\n"
            "    resultTotal += entry;\n"
            "  }\n"
            "  return resultTotal;\n"
            "}"
        )

        result = compressor.shorten_locals(source, "javascript")

        assert "const a = values.map((v) => v * factor);" in result
        assert "return b;" in result
        assert "scaledValues" not in result

    def test_unparseable_fragment_is_unchanged(self, compressor):
        source = "def broken(:\n    value = ("
        assert compressor.shorten_locals(source, "python") == source

    def test_nested_local_does_not_capture_outer_global_read(self, compressor):
        source = (
            "def outer():\n"
            "    offset_value = 2\n"
            "    def inner():\n"
            "        setting = 1\n"
            "        return setting\n"
            "    return inner() + setting + offset_value"
        )

        result = compressor.shorten_locals(source, "python")

        assert result == (
            "def outer():\n"
            "    a = 2\n"
            "    def inner():\n"
            "        setting = 1\n"
            "        return setting\n"
            "    return inner() + setting + a"
        )
        namespace = {"setting": 10}
        exec(result, namespace)
        assert namespace["outer"]() == 13

    def test_class_body_attributes_keep_their_names(self, compressor):
        source = (
            "def build():\n"
            "    counter = 0\n"
            "    class Box:\n"
            "        counter = 5\n"
            "    return Box().counter + counter"
        )

        result = compressor.shorten_locals(source, "python")

        assert result == (
            "def build():\n"
            "    a = 0\n"
            "    class Box:\n"
            "        counter = 5\n"
            "    return Box().counter + a"
        )
        namespace = {}
        exec(result, namespace)
        assert namespace["build"]() == 5

    def test_names_read_by_a_closure_are_kept(self, compressor):
        source = (
            "function outer() {\n"
            "  const total = 1;\n"
            "  function inner() { return total; }\n"
            "  return inner();\n"
            "}"
        )
        assert compressor.shorten_locals(source, "javascript") == source


class TestCompressText:
    def test_data_files_only_lose_trailing_whitespace(self, compressor):
        source = "key:   value   \nother: 1\n"

        assert compressor.compress_text(source, "yaml", CompressionLevel.AGGRESSIVE) == "key:   value\nother: 1\n"
        assert compressor.compress_text(source, "yaml", CompressionLevel.LIGHT) == source

    def test_levels_are_cumulative(self, compressor):
        tokenizer = get_default_tokenizer()
        counts = [
            tokenizer.count_tokens(compressor.compress_text(COMMENTED, "python", level))
            for level in CompressionLevel
        ]
        assert counts == sorted(counts, reverse=True)
        assert counts[-1] < counts[0]


class TestCompressContext:
    def _context(self, content, budget=1000):
        tokenizer = get_default_tokenizer()
        chunk = make_chunk("total", content=content)
        task = ContextSection.create(tokenizer, SectionKind.TASK, SectionPriority.PRIMARY, "Tidy  up   total")
        code = ContextSection.for_chunk(tokenizer, scored(chunk, 0.95), SectionPriority.PRIMARY)
        return OptimizedContext.from_sections([task, code], budget=budget, included_chunks=1, excluded_chunks=0)

    def test_only_code_sections_change(self, compressor):
        context = self._context(COMMENTED)

        compressed = compressor.compress(context, CompressionLevel.MEDIUM)

        assert compressed.sections[0] is context.sections[0]
        assert compressed.sections[1].token_count < context.sections[1].token_count
        assert compressed.total_tokens == sum(s.token_count for s in compressed.sections)
        assert compressed.compression_level == CompressionLevel.MEDIUM

    def test_none_level_returns_same_context(self, compressor):
        context = self._context(COMMENTED)
        assert compressor.compress(context, "none") is context

    def test_summary_sections_are_untouched(self, compressor):
        tokenizer = get_default_tokenizer()
        chunk = make_chunk("total", content=COMMENTED)
        summary = ContextSection.for_chunk(
            tokenizer, scored(chunk, 0.9), SectionPriority.PRIMARY, content=COMMENTED, summarized=True
        )

        assert compressor.compress_section(summary, CompressionLevel.AGGRESSIVE) is summary
