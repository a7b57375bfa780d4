"""Bounded cache of decoded TTS replies.

Entries own their decoded audio: eviction and ``close()`` call
``release()`` on the evicted value. Reads refresh recency (LRU).
"""

from __future__ import annotations

import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Generic, Protocol, TypeVar

from talkloop.logging_config import get_logger, truncate_for_log
from talkloop.observability.metrics import TTS_CACHE_SIZE, record_cache_lookup

logger: Any = get_logger(__name__)


class Releasable(Protocol):
    """Anything holding a resource that must be freed on eviction."""

    def release(self) -> None: ...


V = TypeVar("V", bound=Releasable)


@dataclass
class CacheEntry(Generic[V]):
    """A cached value plus the time it was stored."""

    key: str
    audio: V
    inserted_at: float = field(default_factory=time.monotonic)


class ResponseCache(Generic[V]):
    """Key to decoded-audio cache holding at most ``max_size`` entries."""

    def __init__(self, max_size: int = 50) -> None:
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self._max_size = max_size
        self._entries: OrderedDict[str, CacheEntry[V]] = OrderedDict()
        self.hits = 0
        self.misses = 0

    @property
    def max_size(self) -> int:
        return self._max_size

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def get(self, key: str) -> V | None:
        """Return the cached audio for ``key`` or None."""
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            record_cache_lookup(hit=False)
            return None

        self._entries.move_to_end(key)
        self.hits += 1
        record_cache_lookup(hit=True)
        return entry.audio

    def put(self, key: str, audio: V) -> None:
        """Store ``audio`` under ``key``, evicting the least recently used entry if full."""
        existing = self._entries.pop(key, None)
        if existing is not None and existing.audio is not audio:
            existing.audio.release()
        elif existing is None and len(self._entries) >= self._max_size:
            _, evicted = self._entries.popitem(last=False)
            evicted.audio.release()
            logger.debug(f"Evicted cached reply: {truncate_for_log(evicted.key)}")

        self._entries[key] = CacheEntry(key=key, audio=audio)
        TTS_CACHE_SIZE.set(len(self._entries))

    def clear(self) -> None:
        """Release and drop every entry."""
        while self._entries:
            _, entry = self._entries.popitem(last=False)
            entry.audio.release()
        TTS_CACHE_SIZE.set(0)

    def close(self) -> None:
        """Release every entry. The cache stays usable afterwards."""
        count = len(self._entries)
        self.clear()
        if count:
            logger.debug(f"Released {count} cached replies")

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0
