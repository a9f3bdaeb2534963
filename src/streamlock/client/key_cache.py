"""TTL cache for released segment keys, owned by one key loader."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional


@dataclass(frozen=True)
class SegmentKey:
    """Verified key material for one segment."""

    segment_index: int
    key: bytes
    iv: bytes


@dataclass(frozen=True)
class _Entry:
    value: SegmentKey
    expires_at: float


class KeyCache:
    """Per-instance key cache. Expired entries are evicted on lookup."""

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[int, _Entry] = {}

    def get(self, segment_index: int) -> Optional[SegmentKey]:
        entry = self._entries.get(segment_index)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            del self._entries[segment_index]
            return None
        return entry.value

    def put(self, value: SegmentKey) -> None:
        self._entries[value.segment_index] = _Entry(
            value=value, expires_at=self._clock() + self._ttl
        )

    def invalidate(self, segment_index: int) -> None:
        self._entries.pop(segment_index, None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, segment_index: int) -> bool:
        return self.get(segment_index) is not None

    def __len__(self) -> int:
        return len(self._entries)
