"""
Single-slot cache of the last known UI root.

The platform's event thread replaces the slot on every window-state or
window-content change; the command thread reads it when the live root is
momentarily unavailable. Entries are only returned while strictly younger
than the TTL.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

from node_agent.utils.time_utils import monotonic_ms

NODE_CACHE_TTL_MS = 5000.0

T = TypeVar("T")


@dataclass(frozen=True)
class NodeCacheEntry(Generic[T]):
    node: T
    captured_at: float


class NodeCache(Generic[T]):
    def __init__(self, ttl_ms: float = NODE_CACHE_TTL_MS, clock: Callable[[], float] = monotonic_ms) -> None:
        self.ttl_ms = float(ttl_ms)
        self._clock = clock
        self._lock = threading.Lock()
        self._entry: Optional[NodeCacheEntry[T]] = None

    def update(self, node: T) -> None:
        entry = NodeCacheEntry(node=node, captured_at=self._clock())
        with self._lock:
            self._entry = entry

    def get(self) -> Optional[T]:
        with self._lock:
            entry = self._entry
        if entry is None:
            return None
        if self._clock() - entry.captured_at < self.ttl_ms:
            return entry.node
        return None

    def age_ms(self) -> Optional[float]:
        with self._lock:
            entry = self._entry
        if entry is None:
            return None
        return self._clock() - entry.captured_at


__all__ = ["NODE_CACHE_TTL_MS", "NodeCacheEntry", "NodeCache"]
