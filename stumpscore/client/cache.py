"""Small TTL cache owned and injected by its user, never a module global."""

import threading
import time
from typing import Any, Callable, Dict, Hashable, Optional, Tuple

# Freshness window for server-derived data.
DEFAULT_TTL_SEC = 5 * 60


class TTLCache:
    """Maps key -> (value, expiry). Expired entries read as missing."""

    def __init__(self, ttl: float = DEFAULT_TTL_SEC, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self.clock = clock
        self._entries: Dict[Hashable, Tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expiry = entry
            if self.clock() >= expiry:
                del self._entries[key]
                return None
            return value

    def set(self, key: Hashable, value: Any, ttl: Optional[float] = None) -> None:
        with self._lock:
            self._entries[key] = (value, self.clock() + (self.ttl if ttl is None else ttl))

    def get_or_load(self, key: Hashable, loader: Callable[[], Any]) -> Any:
        value = self.get(key)
        if value is None:
            value = loader()
            self.set(key, value)
        return value

    def invalidate(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
