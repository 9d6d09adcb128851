"""
Tests for incremental change detection between chunkings.
"""

import pytest

from ctxpack.core.chunker import compute_chunk_delta, create_chunker
from ctxpack.core.source_files import SourceFile

BEFORE = (
    "def alpha(x):\n"
    "    return x + 1\n"
    "\n"
    "\n"
    "def beta(x):\n"
    "    return x * 2\n"
    "\n"
    "\n"
    "def gamma(x):\n"
    "    return x - 3\n"
)


@pytest.fixture
def chunker():
    return create_chunker(max_tokens=512)


def _delta(chunker, before, after):
    old = chunker.chunk(SourceFile(path="src/ops.py", content=before)).chunks
    new = chunker.chunk(SourceFile(path="src/ops.py", content=after)).chunks
    return compute_chunk_delta(before, old, after, new), old, new


def _names(chunks):
    return sorted(c.name for c in chunks)


def test_identical_content_is_all_unchanged(chunker):
    delta, _, _ = _delta(chunker, BEFORE, BEFORE)

    assert delta.is_empty
    assert _names(delta.unchanged) == ["alpha", "beta", "gamma"]


def test_editing_one_body_invalidates_only_that_chunk(chunker):
    after = BEFORE.replace("return x * 2", "return x * 4")
    delta, _, _ = _delta(chunker, BEFORE, after)

    assert _names(delta.invalidated) == ["beta"]
    assert _names(delta.unchanged) == ["alpha", "gamma"]
    assert delta.relocated == []
    assert _names(delta.needs_embedding) == ["beta"]


def test_inserting_lines_above_relocates_following_chunks(chunker):
    after = BEFORE.replace("def beta", "def inserted(x):\n    return x\n\n\ndef beta")
    delta, _, _ = _delta(chunker, BEFORE, after)

    assert _names(delta.added) == ["inserted"]
    assert _names(delta.relocated) == ["beta", "gamma"]
    assert _names(delta.unchanged) == ["alpha"]
    assert delta.invalidated == []


def test_removed_declaration_is_reported_by_id(chunker):
    after = BEFORE.replace("def gamma(x):\n    return x - 3\n", "")
    delta, old, _ = _delta(chunker, BEFORE, after)
    gamma_id = next(c.chunk_id for c in old if c.name == "gamma")

    assert delta.removed == [gamma_id]
    assert _names(delta.unchanged) == ["alpha", "beta"]


def test_every_new_chunk_is_classified_exactly_once(chunker):
    after = BEFORE.replace("return x + 1", "return x + 10").replace("def gamma", "def delta(x):\n    pass\n\n\ndef gamma")
    delta, _, new = _delta(chunker, BEFORE, after)
    classified = delta.added + delta.invalidated + delta.relocated + delta.unchanged

    assert sorted(c.chunk_id for c in classified) == sorted(c.chunk_id for c in new)
