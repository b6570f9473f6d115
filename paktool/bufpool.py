from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List

from .constants import DEFAULT_CHUNK_SIZE


class BufferPool:
    """Keeps released bytearrays around so copy loops can reuse them.

    Buffers are handed out by `borrow()` and returned when the `with`
    block exits, whether it exits normally or by an exception.
    """

    def __init__(self, max_per_size: int = 4):
        self.max_per_size = max_per_size
        self._free: Dict[int, List[bytearray]] = {}
        self._lock = threading.Lock()

    @contextmanager
    def borrow(self, size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytearray]:
        if size <= 0:
            raise ValueError("Buffer size must be positive")
        with self._lock:
            free = self._free.get(size)
            buf = free.pop() if free else None
        if buf is None:
            buf = bytearray(size)
        try:
            yield buf
        finally:
            with self._lock:
                free = self._free.setdefault(size, [])
                if len(free) < self.max_per_size:
                    free.append(buf)

    def idle_count(self, size: int = DEFAULT_CHUNK_SIZE) -> int:
        with self._lock:
            return len(self._free.get(size, []))


_shared = BufferPool()


def borrow(size: int = DEFAULT_CHUNK_SIZE):
    return _shared.borrow(size)
