import threading
import time

import pytest

from rentals.utils.exceptions import ConcurrencyConflict
from rentals.utils.locks import KeyedLock


def test_same_key_is_serialized():
    locks = KeyedLock("vehicle")
    inside, overlaps = [], []

    def work():
        with locks.hold("v1"):
            if inside:
                overlaps.append(True)
            inside.append(True)
            time.sleep(0.01)
            inside.pop()

    threads = [threading.Thread(target=work) for _ in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert overlaps == []


def test_different_keys_are_independent():
    locks = KeyedLock("vehicle")
    with locks.hold("v1"):
        with locks.hold("v2", timeout=0.05):
            assert len(locks) == 2


def test_timeout_raises_conflict():
    locks = KeyedLock("vehicle")
    with locks.hold("v1"):
        with pytest.raises(ConcurrencyConflict):
            with locks.hold("v1", timeout=0.05):
                pass


def test_idle_locks_are_dropped():
    locks = KeyedLock("rental")
    with locks.hold("r1"):
        assert len(locks) == 1
    assert len(locks) == 0

    with pytest.raises(RuntimeError):
        with locks.hold("r2"):
            raise RuntimeError("boom")
    assert len(locks) == 0
