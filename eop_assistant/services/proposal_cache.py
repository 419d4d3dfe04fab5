import copy
import threading
import time
from typing import Any


class ProposalCache:
    """
    In-memory, per-session proposal snapshots with:
    - absolute TTL: an entry expires ttl_seconds after its last put(), reads never extend it
    - write-through: every successful proposal write calls put()
    - thread-safe operations

    Owned by the application instance; the database stays the source of truth.
    """

    def __init__(self, ttl_seconds: float):
        self.ttl_seconds = ttl_seconds
        self._lock = threading.Lock()
        # session_id -> {"snapshot": dict, "expires_at": float}
        self._items: dict[str, dict[str, Any]] = {}

    def get(self, session_id: str) -> dict | None:
        """Return a COPY of the cached snapshot, or None if absent/expired."""
        now = time.monotonic()
        with self._lock:
            item = self._items.get(session_id)
            if item is None:
                return None
            if item["expires_at"] <= now:
                del self._items[session_id]
                return None
            return copy.deepcopy(item["snapshot"])

    def put(self, session_id: str, snapshot: dict) -> None:
        with self._lock:
            self._items[session_id] = {
                "snapshot": copy.deepcopy(snapshot),
                "expires_at": time.monotonic() + self.ttl_seconds,
            }

    def invalidate(self, session_id: str) -> None:
        with self._lock:
            self._items.pop(session_id, None)

    def sweep_expired(self) -> int:
        """
        Delete expired snapshots.
        Returns how many entries were removed.
        """
        now = time.monotonic()
        removed = 0
        with self._lock:
            expired = [k for k, v in self._items.items() if v["expires_at"] <= now]
            for k in expired:
                del self._items[k]
                removed += 1
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
