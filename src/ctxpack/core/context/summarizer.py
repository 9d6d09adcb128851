"""
Chunk summaries used when a chunk's full content does not fit the budget.

A summary keeps the signature, the first docstring line, the export list and
a size note, so the model still knows the declaration exists.
"""

import logging
from typing import Optional

from ctxpack.core.chunker.models import ChunkKind, CodeChunk
from ctxpack.core.tokenizer import TokenizerInterface, get_default_tokenizer

logger = logging.getLogger(__name__)

DEFAULT_MAX_SUMMARY_TOKENS = 160

_MAX_SIGNATURE_LINES = 4
_MAX_LINE_CHARS = 200
_HASH_COMMENT_LANGUAGES = frozenset({"python", "yaml", "toml", "ini"})
_COMMENT_PREFIXES = ("#", "//", "/*", "*", "*/")
_SINGLE_LINE_KINDS = frozenset({ChunkKind.CONSTANT, ChunkKind.CONFIG, ChunkKind.MODULE})


def comment_marker(language: str) -> str:
    return "#" if language in _HASH_COMMENT_LANGUAGES else "//"


class ChunkSummarizer:
    """
    Generates compact summaries of code chunks.

    Summary format:
        def compute_total(items: list[Item], tax: float) -> float:
        # Sum item prices and apply tax.
        # exports: compute_total
        # summarized: 512 tokens, lines 10-58
    """

    def __init__(
        self,
        tokenizer: Optional[TokenizerInterface] = None,
        max_summary_tokens: int = DEFAULT_MAX_SUMMARY_TOKENS,
    ):
        self._tokenizer = tokenizer or get_default_tokenizer()
        self._max_summary_tokens = max_summary_tokens

    def summarize(self, chunk: CodeChunk) -> str:
        marker = comment_marker(chunk.language)
        lines = self._signature_lines(chunk)

        docstring = chunk.metadata.get("docstring")
        if docstring:
            first_line = docstring.strip().split("\n", 1)[0][:_MAX_LINE_CHARS]
            lines.append(f"{marker} {first_line}")
        if chunk.exports:
            lines.append(f"{marker} exports: {', '.join(chunk.exports)}")
        methods = chunk.metadata.get("methods")
        if methods:
            lines.append(f"{marker} methods: {', '.join(methods)}")
        lines.append(
            f"{marker} summarized: {chunk.token_count} tokens, "
            f"lines {chunk.start_line}-{chunk.end_line}"
        )

        summary = "\n".join(lines)
        if self._tokenizer.count_tokens(summary) > self._max_summary_tokens:
            summary = self._tokenizer.truncate_to_tokens(summary, self._max_summary_tokens)
        return summary

    def _signature_lines(self, chunk: CodeChunk) -> list[str]:
        """First declaration line(s), skipping decorators, comments and blanks."""
        content_lines = chunk.content.split("\n")
        start = None
        for idx, line in enumerate(content_lines):
            stripped = line.strip()
            if not stripped or stripped.startswith("@") or stripped.startswith(_COMMENT_PREFIXES):
                continue
            start = idx
            break
        if start is None:
            return []

        limit = 1 if chunk.kind in _SINGLE_LINE_KINDS else _MAX_SIGNATURE_LINES
        signature = []
        for line in content_lines[start:start + limit]:
            stripped = line.rstrip()
            signature.append(stripped[:_MAX_LINE_CHARS])
            if stripped.endswith((":", "{", "=>", ";")):
                break
        return signature
