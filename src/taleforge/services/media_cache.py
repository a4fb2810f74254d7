"""Per-session cache of generated media URLs.

Image and audio URLs arrive asynchronously after a segment is written. The
cache keeps the latest URLs per segment so readers do not go back to the
store for every lookup. One instance lives per session; clear() it on logout.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass


@dataclass
class MediaUrls:
    image_url: str | None = None
    audio_url: str | None = None


class MediaUrlCache:
    """LRU cache with a time-to-live, keyed by segment id."""

    def __init__(
        self,
        ttl_seconds: float = 3600,
        max_entries: int = 500,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, MediaUrls]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, segment_id: str) -> MediaUrls | None:
        entry = self._entries.get(segment_id)
        if entry is None:
            return None
        stored_at, urls = entry
        if self._clock() - stored_at > self.ttl_seconds:
            del self._entries[segment_id]
            return None
        self._entries.move_to_end(segment_id)
        return urls

    def put(self, segment_id: str, urls: MediaUrls) -> None:
        self._entries[segment_id] = (self._clock(), urls)
        self._entries.move_to_end(segment_id)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def invalidate(self, segment_id: str) -> None:
        self._entries.pop(segment_id, None)

    def clear(self) -> None:
        self._entries.clear()
