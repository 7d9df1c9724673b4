"""
In-memory keyed state with one writer per key at a time
"""

import threading
from contextlib import contextmanager
from typing import Any, Dict, Hashable, Iterator, Optional


class KeyedStateStore:
    """Map of independent keys, each guarded by its own lock

    Components mutate a key only inside `with store.locked(key):`, which
    serializes operations on that key without any cross-key locking.
    """

    def __init__(self, name: str = 'state'):
        self.name = name
        self._items: Dict[Hashable, Any] = {}
        self._locks: Dict[Hashable, threading.RLock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, key: Hashable) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def locked(self, key: Hashable) -> Iterator[None]:
        lock = self._lock_for(key)
        with lock:
            yield

    def get(self, key: Hashable, default: Optional[Any] = None) -> Any:
        return self._items.get(key, default)

    def put(self, key: Hashable, value: Any) -> None:
        self._items[key] = value

    def pop(self, key: Hashable) -> Any:
        """Remove and return the value; KeyError when absent"""
        return self._items.pop(key)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._items

    def __len__(self) -> int:
        return len(self._items)

    def keys(self):
        return list(self._items.keys())

    def values(self):
        return list(self._items.values())

    def items(self):
        return list(self._items.items())
