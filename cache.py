# cache.py
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Optional, Tuple

from loguru import logger


class TTLCache:
    """In-process TTL cache with weighted, LRU-ordered compaction.

    Every entry carries its own expiry and a size weight. Reads treat an expired
    entry as absent; writes purge expired entries and, when the weighted usage
    goes over ``max_size``, evict least-recently-read entries until usage is at
    most ``(1 - compaction) * max_size``.

    Access is guarded by a plain lock; no operation suspends while holding it.
    """

    def __init__(
        self,
        ttl_seconds: float = 300,
        max_size: int = 1000,
        compaction: float = 0.25,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        if not 0 < compaction < 1:
            raise ValueError("compaction must be between 0 and 1")
        self.ttl = ttl_seconds
        self.max = max_size
        self.compaction = compaction
        self._clock = clock
        # key -> (expires_at, size, value); order is least-recently-read first
        self._store: "OrderedDict[str, Tuple[float, int, Any]]" = OrderedDict()
        self._usage = 0
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        now = self._clock()
        with self._lock:
            item = self._store.get(key)
            if item is None:
                return None
            exp, _, val = item
            if now >= exp:
                return None
            self._store.move_to_end(key)
            return val

    def set(self, key: str, value: Any, ttl: Optional[float] = None, size: int = 1) -> bool:
        """Insert or overwrite ``key``. Returns False if the entry can never fit."""
        if size < 1:
            raise ValueError("size must be >= 1")
        if size > self.max:
            logger.debug(f"cache skip key={key} size={size} limit={self.max}")
            with self._lock:
                self._pop(key)
            return False
        exp = self._clock() + (ttl if ttl is not None else self.ttl)
        with self._lock:
            self._pop(key)
            if self._usage + size > self.max:
                self._compact(incoming=size)
            self._store[key] = (exp, size, value)
            self._usage += size
        return True

    def delete(self, key: str) -> None:
        with self._lock:
            self._pop(key)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()
            self._usage = 0

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {"entries": len(self._store), "usage": self._usage, "limit": self.max}

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    # caller holds the lock
    def _pop(self, key: str) -> None:
        item = self._store.pop(key, None)
        if item is not None:
            self._usage -= item[1]

    def _compact(self, incoming: int) -> None:
        now = self._clock()
        evicted = 0
        for k in [k for k, (exp, _, _) in self._store.items() if now >= exp]:
            self._pop(k)
            evicted += 1
        target = int((1 - self.compaction) * self.max)
        while self._store and self._usage + incoming > target:
            _, (_, size, _) = self._store.popitem(last=False)
            self._usage -= size
            evicted += 1
        logger.debug(f"cache compaction evicted={evicted} usage={self._usage} limit={self.max}")
