from __future__ import annotations

import hashlib
import json
import threading
import time
from typing import Any, Callable

_DEFAULT_TTL = 300  # 5 minutes


def make_key(request_dict: dict) -> str:
    normalized = json.dumps(request_dict, sort_keys=True, default=str)
    return hashlib.sha256(normalized.encode()).hexdigest()[:16]


class TTLCache:
    """Small in-process cache with per-entry expiry.

    Entries are replaced wholesale on refresh, so a concurrent reader sees
    either the old or the new value. Two racing refreshes just cost an extra
    load.
    """

    def __init__(self, ttl: float = _DEFAULT_TTL, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry and self._clock() < entry["expires_at"]:
                self.hits += 1
                return entry["value"]
            if entry:
                del self._entries[key]
            self.misses += 1
            return None

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        expires_at = self._clock() + (self.ttl if ttl is None else ttl)
        with self._lock:
            self._entries[key] = {"value": value, "expires_at": expires_at}

    def get_or_refresh(self, key: str, loader: Callable[[], Any], ttl: float | None = None) -> Any:
        """Return the cached value for *key*, calling *loader* on a miss or expiry."""
        value = self.get(key)
        if value is not None:
            return value
        value = loader()
        self.set(key, value, ttl)
        return value

    def invalidate(self, key: str | None = None) -> None:
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)

    def stats(self) -> dict:
        total = self.hits + self.misses
        return {
            "size": len(self._entries),
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": round(self.hits / total * 100, 1) if total > 0 else 0.0,
        }

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        self.hits = 0
        self.misses = 0
