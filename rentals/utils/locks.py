import logging
import threading
from contextlib import contextmanager
from typing import Dict, List

from rentals.utils.exceptions import ConcurrencyConflict

logger = logging.getLogger(__name__)


class KeyedLock:
    """
    One mutex per key (vehicle id, rental id), created on first use and
    dropped once nobody holds or waits for it.

    Usage:
        locks = KeyedLock("vehicle")
        with locks.hold(vehicle_id, timeout=5.0):
            ...  # check-then-write for this vehicle only
    """

    def __init__(self, name: str = "key"):
        self.name = name
        self._guard = threading.Lock()
        self._locks: Dict[str, List] = {}   # key -> [Lock, holders + waiters]

    @contextmanager
    def hold(self, key: str, timeout: float | None = None):
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1

        acquired = entry[0].acquire(timeout=-1 if timeout is None else timeout)
        try:
            if not acquired:
                logger.warning(f"Timed out after {timeout}s waiting for {self.name} lock {key}")
                raise ConcurrencyConflict(f"Timed out waiting for {self.name} {key}, please retry")
            yield
        finally:
            if acquired:
                entry[0].release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self):
        with self._guard:
            return len(self._locks)
