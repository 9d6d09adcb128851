"""
LRU cache of retrieval results keyed by (task hash, index generation).

Cached results are immutable contexts, so they are shared between callers
without copying.
"""

import logging
from collections import OrderedDict
from typing import Optional

from ctxpack.services.retrieval_models import RetrievalResult

logger = logging.getLogger(__name__)

CacheKey = tuple[str, int, str]


class ContextCache:
    """Bounded LRU mapping from (task hash, generation, config key) to results."""

    def __init__(self, max_entries: int = 128):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._max_entries = max_entries
        self._entries: OrderedDict[CacheKey, RetrievalResult] = OrderedDict()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: CacheKey) -> Optional[RetrievalResult]:
        result = self._entries.get(key)
        if result is None:
            self.misses += 1
            return None
        self._entries.move_to_end(key)
        self.hits += 1
        return result

    def put(self, key: CacheKey, result: RetrievalResult) -> None:
        self._entries[key] = result
        self._entries.move_to_end(key)
        while len(self._entries) > self._max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"Evicted cached context for task {evicted[0][:12]}")

    def clear(self) -> None:
        self._entries.clear()
