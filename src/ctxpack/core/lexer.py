"""
Lightweight lexical scanning of source fragments.

Splits text into code, string and comment segments so that callers can
transform or measure code without touching string literals. Works on
fragments that would not parse on their own (method bodies, split parts).
"""

import re
from dataclasses import dataclass

CODE = "code"
STRING = "string"
COMMENT = "comment"

_PY_STRING_START = re.compile(r"[rRbBuUfF]{0,2}('''|\"\"\"|'|\")")
_WORD = re.compile(r"[A-Za-z_$][A-Za-z0-9_$]*")


@dataclass(frozen=True)
class Segment:
    kind: str  # CODE, STRING or COMMENT
    text: str


def is_python(language: str) -> bool:
    return language == "python"


def split_segments(text: str, language: str) -> list[Segment]:
    """
    Split ``text`` into alternating code, string and comment segments.

    Joining the segment texts reproduces ``text`` exactly. Unterminated
    strings and block comments extend to the end of the text.
    """
    segments: list[Segment] = []
    code_start = 0
    i = 0
    n = len(text)
    python = is_python(language)

    def flush(end: int) -> None:
        if end > code_start:
            segments.append(Segment(CODE, text[code_start:end]))

    while i < n:
        ch = text[i]

        if python and ch == "#":
            end = text.find("\n", i)
            end = n if end == -1 else end
            flush(i)
            segments.append(Segment(COMMENT, text[i:end]))
            i = code_start = end
            continue

        if not python and text.startswith("//", i):
            end = text.find("\n", i)
            end = n if end == -1 else end
            flush(i)
            segments.append(Segment(COMMENT, text[i:end]))
            i = code_start = end
            continue

        if not python and text.startswith("/*", i):
            end = text.find("*/", i + 2)
            end = n if end == -1 else end + 2
            flush(i)
            segments.append(Segment(COMMENT, text[i:end]))
            i = code_start = end
            continue

        if python:
            # A string prefix must not be the tail of an identifier
            if ch in "rRbBuUfF'\"" and (i == 0 or not (text[i - 1].isalnum() or text[i - 1] == "_")):
                match = _PY_STRING_START.match(text, i)
                if match:
                    end = _scan_string(text, match.end(), match.group(1))
                    flush(i)
                    segments.append(Segment(STRING, text[i:end]))
                    i = code_start = end
                    continue
        elif ch in "'\"`":
            end = _scan_string(text, i + 1, ch)
            flush(i)
            segments.append(Segment(STRING, text[i:end]))
            i = code_start = end
            continue

        i += 1

    flush(n)
    return segments


def _scan_string(text: str, start: int, quote: str) -> int:
    """Return the index just past the closing ``quote``."""
    i = start
    n = len(text)
    single_line = len(quote) == 1 and quote != "`"
    while i < n:
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if single_line and ch == "\n":
            return i
        if text.startswith(quote, i):
            return i + len(quote)
        i += 1
    return n


def code_only(text: str, language: str) -> str:
    """
    Return ``text`` with string literals replaced by empty quotes and
    comments removed, for keyword and identifier matching.
    """
    parts = []
    for segment in split_segments(text, language):
        if segment.kind == CODE:
            parts.append(segment.text)
        elif segment.kind == STRING:
            parts.append('""')
    return "".join(parts)


def identifiers(text: str, language: str) -> set[str]:
    """All identifier-like words appearing in code (not strings or comments)."""
    return set(_WORD.findall(code_only(text, language)))
