# module cashu_gateway.utils.cache
"""
Cache mémoire à durée de vie (TTL) partagé par les collaborateurs HTTP:
- prix spot (30 s par source et par devise)
- input_fee_ppk max par mint (1 h)
- devis melt créés (jusqu'à leur expiry)
Horloge injectable pour les tests.
"""
import threading
import time
from typing import Any, Callable, Dict, Hashable, Optional, Tuple

_MISSING = object()


class TTLCache:
    def __init__(self, ttl: float, clock: Optional[Callable[[], float]] = None):
        self.ttl = float(ttl)
        self._clock = clock or time.time
        self._store: Dict[Hashable, Tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: Hashable, default: Any = None) -> Any:
        now = self._clock()
        with self._lock:
            hit = self._store.get(key, _MISSING)
            if hit is _MISSING:
                return default
            expires_at, value = hit
            if expires_at <= now:
                self._store.pop(key, None)
                return default
            return value

    def set(self, key: Hashable, value: Any, ttl: Optional[float] = None) -> None:
        """ttl explicite possible (ex: expiry absolue d'un devis melt convertie en durée)."""
        lifetime = self.ttl if ttl is None else float(ttl)
        if lifetime <= 0:
            return
        with self._lock:
            self._store[key] = (self._clock() + lifetime, value)

    def pop(self, key: Hashable) -> None:
        with self._lock:
            self._store.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        return len(self._store)
