"""
Fake implementations for testing.

Provides a deterministic local embedding client and failure-injecting
wrappers, so pipeline behavior can be exercised without network services.
"""

from __future__ import annotations

import asyncio
import hashlib
import math
import re
from typing import Optional, Sequence

from ctxpack.infrastructure.embedding import EmbeddingClientInterface, RetryableError
from ctxpack.infrastructure.vector_store import (
    PayloadFilter,
    VectorStoreError,
    VectorStoreInterface,
)

_WORD = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


class LocalEmbeddingClient(EmbeddingClientInterface):
    """
    Local embedding client for testing.

    Each identifier-like word of the text is hashed onto the vector (feature
    hashing), so texts sharing words get similar vectors and identical texts
    always get identical vectors. No API calls are made.
    """

    def __init__(self, dimension: int = 64):
        self._dimension = dimension
        self.calls = 0
        self.embedded_texts: list[str] = []

    def get_dimension(self) -> int:
        return self._dimension

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        self.calls += 1
        self.embedded_texts.extend(texts)
        return [self.vector_for(text) for text in texts]

    def vector_for(self, text: str) -> list[float]:
        vector = [0.0] * self._dimension
        words = [w.lower() for w in _WORD.findall(text)] or [text]
        for word in words:
            digest = hashlib.sha256(word.encode("utf-8")).digest()
            slot = int.from_bytes(digest[:4], "big") % self._dimension
            sign = 1.0 if digest[4] & 1 else -1.0
            vector[slot] += sign

        norm = math.sqrt(sum(v * v for v in vector))
        if norm == 0:
            # Keep every vector non-zero so cosine similarity is defined
            vector[0] = 1.0
            return vector
        return [v / norm for v in vector]


class FlakyEmbeddingClient(EmbeddingClientInterface):
    """
    Wraps an embedding client and fails the first ``failures`` calls.

    With ``delay`` set, every call sleeps first, to exercise timeouts.
    """

    def __init__(
        self,
        inner: EmbeddingClientInterface,
        failures: int = 1,
        delay: float = 0.0,
        error: Optional[Exception] = None,
    ):
        self._inner = inner
        self._remaining_failures = failures
        self._delay = delay
        self._error = error
        self.calls = 0

    def get_dimension(self) -> int:
        return self._inner.get_dimension()

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        self.calls += 1
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._remaining_failures > 0:
            self._remaining_failures -= 1
            raise self._error or RetryableError("Injected embedding failure")
        return await self._inner.embed_batch(texts)


class FlakyVectorStore(VectorStoreInterface):
    """
    Wraps a vector store; queries fail ``query_failures`` times, writes fail
    while ``fail_writes`` is set.
    """

    def __init__(
        self,
        inner: VectorStoreInterface,
        query_failures: int = 0,
        fail_writes: bool = False,
        query_delay: float = 0.0,
    ):
        self._inner = inner
        self.query_failures = query_failures
        self.fail_writes = fail_writes
        self.query_delay = query_delay
        self.query_calls = 0

    async def upsert(self, point_id: str, vector: list[float], payload: dict) -> None:
        if self.fail_writes:
            raise VectorStoreError("Injected write failure")
        await self._inner.upsert(point_id, vector, payload)

    async def upsert_batch(self, points: Sequence[tuple[str, list[float], dict]]) -> None:
        if self.fail_writes:
            raise VectorStoreError("Injected write failure")
        await self._inner.upsert_batch(points)

    async def query(
        self,
        vector: list[float],
        top_k: int = 10,
        filter: Optional[PayloadFilter] = None,
    ) -> list[tuple[str, float]]:
        self.query_calls += 1
        if self.query_delay:
            await asyncio.sleep(self.query_delay)
        if self.query_failures > 0:
            self.query_failures -= 1
            raise VectorStoreError("Injected query failure")
        return await self._inner.query(vector, top_k, filter)

    async def delete(self, point_ids: Sequence[str]) -> int:
        if self.fail_writes:
            raise VectorStoreError("Injected write failure")
        return await self._inner.delete(point_ids)

    async def count(self) -> int:
        return await self._inner.count()
