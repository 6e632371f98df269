"""In-memory TTL cache for annotation results, keyed by transcript prefix."""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional

from models import AnnotationResult

CACHE_TTL_S = 10 * 60
CACHE_KEY_CHARS = 500


def cache_key(text: str) -> str:
    return text[:CACHE_KEY_CHARS]


class AnnotationCache:
    """Maps a transcript prefix to ``(result, stored_at)``.

    Expired entries are swept on every get/set rather than by a timer, so the
    cost of expiry is paid on the request path.
    """

    def __init__(self, ttl_s: float = CACHE_TTL_S, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_s = ttl_s
        self._clock = clock
        self._entries: dict[str, tuple[AnnotationResult, float]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, text: str) -> Optional[AnnotationResult]:
        with self._lock:
            now = self._clock()
            self._sweep(now)
            entry = self._entries.get(cache_key(text))
            if entry is None:
                return None
            return entry[0]

    def set(self, text: str, result: AnnotationResult) -> None:
        with self._lock:
            now = self._clock()
            self._sweep(now)
            self._entries[cache_key(text)] = (result, now)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _sweep(self, now: float) -> None:
        expired = [key for key, (_, stored_at) in self._entries.items() if now - stored_at >= self.ttl_s]
        for key in expired:
            del self._entries[key]
