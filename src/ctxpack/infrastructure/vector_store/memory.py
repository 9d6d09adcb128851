"""In-process vector store with exact cosine search."""

import math
from typing import Optional, Sequence

from .base import PayloadFilter, VectorStoreError, VectorStoreInterface, payload_matches


def _norm(vector: Sequence[float]) -> float:
    return math.sqrt(sum(v * v for v in vector))


class InMemoryVectorStore(VectorStoreInterface):
    """
    Vector store backed by a dict.

    Search is a linear scan, which is fine for single-repository indexes and
    makes results exact and deterministic (ties break by point id).
    """

    def __init__(self, vector_size: int = 1536):
        self._vector_size = vector_size
        self._points: dict[str, tuple[list[float], float, dict]] = {}

    @property
    def vector_size(self) -> int:
        return self._vector_size

    def _check_size(self, vector: Sequence[float]) -> None:
        if len(vector) != self._vector_size:
            raise VectorStoreError(
                f"Vector has dimension {len(vector)}, store expects {self._vector_size}"
            )

    async def upsert(self, point_id: str, vector: list[float], payload: dict) -> None:
        self._check_size(vector)
        self._points[point_id] = (list(vector), _norm(vector), dict(payload))

    async def upsert_batch(self, points: Sequence[tuple[str, list[float], dict]]) -> None:
        for _, vector, _ in points:
            self._check_size(vector)
        for point_id, vector, payload in points:
            self._points[point_id] = (list(vector), _norm(vector), dict(payload))

    async def query(
        self,
        vector: list[float],
        top_k: int = 10,
        filter: Optional[PayloadFilter] = None,
    ) -> list[tuple[str, float]]:
        self._check_size(vector)
        if top_k <= 0:
            return []
        query_norm = _norm(vector)

        results = []
        for point_id, (stored, stored_norm, payload) in self._points.items():
            if not payload_matches(payload, filter):
                continue
            if query_norm == 0 or stored_norm == 0:
                score = 0.0
            else:
                score = sum(a * b for a, b in zip(vector, stored)) / (query_norm * stored_norm)
            results.append((point_id, score))

        results.sort(key=lambda r: (-r[1], r[0]))
        return results[:top_k]

    async def delete(self, point_ids: Sequence[str]) -> int:
        deleted = 0
        for point_id in point_ids:
            if self._points.pop(point_id, None) is not None:
                deleted += 1
        return deleted

    async def count(self) -> int:
        return len(self._points)

    def get_payload(self, point_id: str) -> Optional[dict]:
        entry = self._points.get(point_id)
        return dict(entry[2]) if entry else None
