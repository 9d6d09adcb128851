"""
Tokenizer module for token counting and budget-aware truncation.

Uses tiktoken so that counts match what the downstream model will be billed for.
"""

from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Optional

import tiktoken


class TokenizerInterface(ABC):
    """Abstract interface for tokenization operations."""

    @abstractmethod
    def count_tokens(self, text: str) -> int:
        """
        Count the number of tokens in the given text.

        Args:
            text: The text to tokenize.

        Returns:
            The number of tokens in the text.
        """
        pass

    @abstractmethod
    def truncate_to_tokens(self, text: str, max_tokens: int) -> str:
        """
        Truncate text to at most ``max_tokens`` tokens without cutting a line.

        Args:
            text: The text to truncate.
            max_tokens: The maximum number of tokens allowed.

        Returns:
            A prefix of ``text`` made of complete lines only.
        """
        pass

    def fits(self, text: str, budget: int) -> bool:
        """Return True if ``text`` fits within ``budget`` tokens."""
        return self.count_tokens(text) <= budget


class TiktokenTokenizer(TokenizerInterface):
    """
    Tokenizer backed by tiktoken.

    Token counts are memoized per text because the assembler and the
    compressor count the same section bodies several times per request.
    """

    def __init__(self, encoding_name: str = "cl100k_base", cache_size: int = 4096):
        """
        Args:
            encoding_name: tiktoken encoding name ('cl100k_base', 'o200k_base', ...)
            cache_size: Maximum number of memoized counts (0 disables memoization)
        """
        self._encoding_name = encoding_name
        self._encoding: Optional[tiktoken.Encoding] = None
        self._cache_size = cache_size
        self._cache: OrderedDict[str, int] = OrderedDict()

    @property
    def encoding_name(self) -> str:
        return self._encoding_name

    @property
    def encoding(self) -> tiktoken.Encoding:
        """Lazy-load the encoding to avoid initialization overhead."""
        if self._encoding is None:
            self._encoding = tiktoken.get_encoding(self._encoding_name)
        return self._encoding

    def count_tokens(self, text: str) -> int:
        if not text:
            return 0

        cached = self._cache.get(text)
        if cached is not None:
            self._cache.move_to_end(text)
            return cached

        count = len(self.encoding.encode(text, disallowed_special=()))
        if self._cache_size > 0:
            self._cache[text] = count
            if len(self._cache) > self._cache_size:
                self._cache.popitem(last=False)
        return count

    def truncate_to_tokens(self, text: str, max_tokens: int) -> str:
        """
        Truncate text to fit within the token limit while preserving line integrity.

        Lines are accumulated in order; the first line that would push the
        total past ``max_tokens`` ends the result. The returned text is
        re-counted as a whole, because BPE merges across line joins can make
        the sum of per-line counts differ from the count of the joined text.
        """
        if not text or max_tokens <= 0:
            return ""

        if self.count_tokens(text) <= max_tokens:
            return text

        result_lines: list[str] = []
        current_tokens = 0

        for line in text.split("\n"):
            piece = "\n" + line if result_lines else line
            line_tokens = self.count_tokens(piece)
            if current_tokens + line_tokens > max_tokens:
                break
            result_lines.append(line)
            current_tokens += line_tokens

        while result_lines and self.count_tokens("\n".join(result_lines)) > max_tokens:
            result_lines.pop()

        return "\n".join(result_lines)


_default_tokenizer: Optional[TokenizerInterface] = None


def get_default_tokenizer() -> TokenizerInterface:
    """
    Get the shared default tokenizer (cl100k_base).

    The tokenizer holds no per-request state beyond its count memo, so one
    instance is shared per process.
    """
    global _default_tokenizer
    if _default_tokenizer is None:
        _default_tokenizer = TiktokenTokenizer(encoding_name="cl100k_base")
    return _default_tokenizer
