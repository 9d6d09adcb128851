"""
Vector store base types and interfaces.

Points are addressed by string ids and carry a flat payload dict. Filters
are payload equality conditions: a scalar value must match exactly, a list
or tuple value matches any of its members.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence

PayloadFilter = dict[str, Any]


class VectorStoreError(Exception):
    """Base exception for vector store errors."""

    pass


def payload_matches(payload: dict, filter: Optional[PayloadFilter]) -> bool:
    """Evaluate a payload filter against one payload."""
    if not filter:
        return True
    for key, expected in filter.items():
        value = payload.get(key)
        if isinstance(expected, (list, tuple, set, frozenset)):
            if value not in expected:
                return False
        elif value != expected:
            return False
    return True


class VectorStoreInterface(ABC):
    """Abstract interface for vector stores."""

    @abstractmethod
    async def upsert(self, point_id: str, vector: list[float], payload: dict) -> None:
        """Insert or update a vector with its payload."""
        pass

    @abstractmethod
    async def upsert_batch(self, points: Sequence[tuple[str, list[float], dict]]) -> None:
        """Insert or update many ``(point_id, vector, payload)`` points."""
        pass

    @abstractmethod
    async def query(
        self,
        vector: list[float],
        top_k: int = 10,
        filter: Optional[PayloadFilter] = None,
    ) -> list[tuple[str, float]]:
        """
        Nearest-neighbour search by cosine similarity.

        Returns:
            ``(point_id, score)`` pairs, best first, at most ``top_k``
        """
        pass

    @abstractmethod
    async def delete(self, point_ids: Sequence[str]) -> int:
        """Delete points by id; return how many existed."""
        pass

    @abstractmethod
    async def count(self) -> int:
        """Number of stored points."""
        pass

    async def close(self) -> None:
        """Release any held connections."""
        pass
