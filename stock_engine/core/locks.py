"""In-process keyed locks for per-product critical sections.

These serialize writers inside one worker process. Across processes the
services additionally take database row locks (SELECT ... FOR UPDATE).
"""

import logging
import threading
from collections import defaultdict
from contextlib import contextmanager
from typing import Hashable, Iterator

logger = logging.getLogger(__name__)


class KeyedLockRegistry:
    """Hands out one lock per key, created on first use."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[Hashable, threading.Lock] = defaultdict(threading.Lock)

    def _get(self, key: Hashable) -> threading.Lock:
        with self._guard:
            return self._locks[key]

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        lock = self._get(key)
        if not lock.acquire(blocking=False):
            logger.debug(f"Waiting for lock {key!r}")
            lock.acquire()
        try:
            yield
        finally:
            lock.release()


product_locks = KeyedLockRegistry()
unit_code_locks = KeyedLockRegistry()
