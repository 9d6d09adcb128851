"""
Smart chunk splitter for oversized declarations and modules.

Provides code splitting that avoids breaking syntax structures.
"""

import logging
import re
from dataclasses import dataclass

from ctxpack.core.tokenizer import TokenizerInterface

logger = logging.getLogger(__name__)

# Prefixes narrower than this leave too little room for content
_MIN_CONTENT_TOKENS = 50


@dataclass(frozen=True)
class SplitPart:
    """A contiguous line range of an oversized fragment."""

    start_line: int  # 1-based, inclusive
    end_line: int  # 1-based, inclusive
    content: str


class SmartChunkSplitter:
    """
    Splits oversized code at statement boundaries.

    Split strategy (by priority):
    1. Split at blank lines
    2. Split at statement boundaries (indentation and syntax patterns)
    3. Split at lines with lower indentation (block boundaries)
    4. Last resort: split at any complete line (logs a warning for single
       lines that exceed the limit)

    Continuation parts receive a context prefix (the enclosing class or
    function) so that each part stays meaningful on its own.
    """

    STATEMENT_BOUNDARY_PATTERNS = [
        re.compile(r"^\s*(?:async\s+)?def\s+"),
        re.compile(r"^\s*class\s+"),
        re.compile(r"^\s*(?:if|elif|for|while|with|try|switch)\b"),
        re.compile(r"^\s*(?:else|except|finally|catch)\b"),
        re.compile(r"^\s*(?:\}\s*)?(?:else|catch|finally)\b"),
        re.compile(r"^\s*(?:return|yield|raise|throw)\b"),
        re.compile(r"^\s*(?:const|let|var|function|export)\b"),
        re.compile(r"^\s*@"),
    ]

    def __init__(self, tokenizer: TokenizerInterface):
        self._tokenizer = tokenizer

    def split(
        self,
        content: str,
        start_line: int,
        max_tokens: int,
        context_prefix: str = "",
    ) -> list[SplitPart]:
        """
        Split ``content`` (starting at ``start_line``) into parts of at most
        ``max_tokens`` tokens each, context prefix included.

        Returns:
            Parts in order; whitespace-only parts are dropped.
        """
        lines = content.split("\n")

        prefix_tokens = self._tokenizer.count_tokens(context_prefix) if context_prefix else 0
        effective_max_tokens = max_tokens - prefix_tokens
        if effective_max_tokens < _MIN_CONTENT_TOKENS:
            context_prefix = ""
            effective_max_tokens = max_tokens

        split_points = self._find_split_points(lines, effective_max_tokens)

        parts = []
        for i, start_idx in enumerate(split_points):
            end_idx = split_points[i + 1] if i + 1 < len(split_points) else len(lines)
            if start_idx >= end_idx:
                continue
            part_lines = lines[start_idx:end_idx]
            part_content = "\n".join(part_lines)
            if not part_content.strip():
                continue
            if parts and context_prefix:
                part_content = context_prefix + part_content
            if self._tokenizer.count_tokens(part_content) > max_tokens:
                logger.warning(
                    f"Split part at line {start_line + start_idx} exceeds token limit "
                    f"({max_tokens}), this may indicate a very long single line"
                )
            parts.append(
                SplitPart(
                    start_line=start_line + start_idx,
                    end_line=start_line + end_idx - 1,
                    content=part_content,
                )
            )
        return parts

    def _find_split_points(self, lines: list[str], max_tokens: int) -> list[int]:
        split_points = [0]
        current_start = 0

        while current_start < len(lines):
            end_idx = self._find_max_end_index(lines, current_start, max_tokens)

            if end_idx <= current_start:
                logger.warning(f"Line {current_start + 1} exceeds token limit, forcing split")
                end_idx = current_start + 1

            if end_idx >= len(lines):
                break

            best_split = self._find_best_split_point(lines, current_start, end_idx)
            current_start = best_split if best_split > current_start else end_idx
            split_points.append(current_start)

        return split_points

    def _find_max_end_index(self, lines: list[str], start_idx: int, max_tokens: int) -> int:
        """Find the maximum end index that fits within the token limit (binary search)."""
        left = start_idx
        right = len(lines)

        while left < right:
            mid = (left + right + 1) // 2
            tokens = self._tokenizer.count_tokens("\n".join(lines[start_idx:mid]))
            if tokens <= max_tokens:
                left = mid
            else:
                right = mid - 1

        return left

    def _find_best_split_point(self, lines: list[str], start_idx: int, end_idx: int) -> int:
        empty_line_candidates = []
        statement_boundary_candidates = []
        low_indent_candidates = []

        base_indent = self._get_indentation(lines[start_idx])

        for i in range(end_idx - 1, start_idx, -1):
            line = lines[i]
            if not line.strip():
                empty_line_candidates.append(i + 1)
                continue
            if self._is_statement_boundary(line):
                statement_boundary_candidates.append(i)
            if self._get_indentation(line) <= base_indent:
                low_indent_candidates.append(i)

        for candidates in (empty_line_candidates, statement_boundary_candidates, low_indent_candidates):
            valid = [c for c in candidates if start_idx < c <= end_idx]
            if valid:
                return valid[0]
        return end_idx

    def _is_statement_boundary(self, line: str) -> bool:
        return any(pattern.match(line) for pattern in self.STATEMENT_BOUNDARY_PATTERNS)

    def _get_indentation(self, line: str) -> int:
        return len(line) - len(line.lstrip())
