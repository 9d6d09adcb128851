"""
Incremental change detection between two chunkings of the same file.

Uses difflib line opcodes to find changed regions, then classifies each
chunk so that only chunks touching a changed region are re-embedded.
"""

import difflib
from typing import Sequence

from .models import ChunkDelta, CodeChunk

# (start, end) of a changed line span, 1-based inclusive; an empty span
# (end == start - 1) marks an insertion or deletion point after line 'end'
_Span = tuple[int, int]


def _changed_spans(old_lines: list[str], new_lines: list[str]) -> tuple[list[_Span], list[_Span]]:
    matcher = difflib.SequenceMatcher(None, old_lines, new_lines, autojunk=False)
    old_spans: list[_Span] = []
    new_spans: list[_Span] = []
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            continue
        old_spans.append((i1 + 1, i2))
        new_spans.append((j1 + 1, j2))
    return old_spans, new_spans


def _touches(start: int, end: int, spans: list[_Span]) -> bool:
    for span_start, span_end in spans:
        if span_end >= span_start:
            if span_start <= end and span_end >= start:
                return True
        elif start <= span_end < end:
            # Pure insertion/deletion strictly inside the chunk
            return True
    return False


def compute_chunk_delta(
    old_content: str,
    old_chunks: Sequence[CodeChunk],
    new_content: str,
    new_chunks: Sequence[CodeChunk],
) -> ChunkDelta:
    """
    Classify the chunks of a re-chunked file.

    Args:
        old_content: Previous file content
        old_chunks: Chunks of the previous content
        new_content: Current file content
        new_chunks: Chunks of the current content

    Returns:
        ChunkDelta where every current chunk is exactly one of added,
        invalidated, relocated or unchanged, and ``removed`` lists previous
        ids that no longer exist.
    """
    old_spans, new_spans = _changed_spans(old_content.split("\n"), new_content.split("\n"))
    old_by_id = {chunk.chunk_id: chunk for chunk in old_chunks}
    delta = ChunkDelta()

    for chunk in new_chunks:
        previous = old_by_id.get(chunk.chunk_id)
        if previous is None:
            delta.added.append(chunk)
        elif (
            previous.content_hash != chunk.content_hash
            or _touches(previous.start_line, previous.end_line, old_spans)
            or _touches(chunk.start_line, chunk.end_line, new_spans)
        ):
            delta.invalidated.append(chunk)
        elif (previous.start_line, previous.end_line) != (chunk.start_line, chunk.end_line):
            delta.relocated.append(chunk)
        else:
            delta.unchanged.append(chunk)

    new_ids = {chunk.chunk_id for chunk in new_chunks}
    delta.removed = [chunk.chunk_id for chunk in old_chunks if chunk.chunk_id not in new_ids]
    return delta
