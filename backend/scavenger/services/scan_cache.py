"""In-process identification cache keyed by image fingerprint."""

import time
from collections import OrderedDict
from dataclasses import dataclass
from threading import Lock
from typing import Any, Optional

_MAX_ENTRIES = 5_000
_DEFAULT_TTL_SECONDS = 7 * 24 * 60 * 60


@dataclass
class _Entry:
    payload: dict[str, Any]
    expires_at: float
    hit_count: int = 0


class ScanCache:
    def __init__(
        self,
        *,
        ttl_seconds: int = _DEFAULT_TTL_SECONDS,
        max_entries: int = _MAX_ENTRIES,
    ) -> None:
        self._entries: "OrderedDict[str, _Entry]" = OrderedDict()
        self._lock = Lock()
        self._ttl_seconds = max(1, int(ttl_seconds))
        self._max_entries = max(1, int(max_entries))

    def get(self, fingerprint: str) -> Optional[dict[str, Any]]:
        now = time.monotonic()
        with self._lock:
            entry = self._entries.get(fingerprint)
            if entry is None:
                return None
            if entry.expires_at <= now:
                del self._entries[fingerprint]
                return None
            entry.hit_count += 1
            self._entries.move_to_end(fingerprint)
            return dict(entry.payload)

    def put(self, fingerprint: str, payload: dict[str, Any]) -> bool:
        """Store *payload*; results without items are never cached."""
        if not fingerprint or not payload.get("items"):
            return False
        now = time.monotonic()
        with self._lock:
            self._entries[fingerprint] = _Entry(
                payload=dict(payload), expires_at=now + self._ttl_seconds
            )
            self._entries.move_to_end(fingerprint)
            if len(self._entries) > self._max_entries:
                self._prune(now)
        return True

    def hit_count(self, fingerprint: str) -> int:
        with self._lock:
            entry = self._entries.get(fingerprint)
            return entry.hit_count if entry else 0

    def _prune(self, now: float) -> None:
        """Drop expired entries, then oldest ones over the cap (called under lock)."""
        for key in [k for k, e in self._entries.items() if e.expires_at <= now]:
            del self._entries[key]
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)

    def reset(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
