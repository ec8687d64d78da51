# tests/unit/test_locks.py

import threading

import pytest

from tableside.domain.exceptions import RESOURCE_BUSY, ConflictError
from tableside.infrastructure.locks import KeyedLocks


def test_lock_is_released_after_block():
    locks = KeyedLocks(timeout_seconds=0.1)

    with locks.hold("table:1"):
        assert locks.active_keys() == ["table:1"]

    assert locks.active_keys() == []


def test_busy_key_times_out_with_conflict():
    locks = KeyedLocks(timeout_seconds=0.05)
    held = threading.Event()
    release = threading.Event()

    def holder():
        with locks.hold("table:1"):
            held.set()
            release.wait(timeout=2)

    thread = threading.Thread(target=holder)
    thread.start()
    held.wait(timeout=2)
    try:
        with pytest.raises(ConflictError) as exc_info:
            with locks.hold("customer:a", "table:1"):
                pass
        assert exc_info.value.code == RESOURCE_BUSY
    finally:
        release.set()
        thread.join()

    # partially acquired keys were given back
    assert locks.active_keys() == []


def test_different_keys_do_not_block():
    locks = KeyedLocks(timeout_seconds=0.05)

    with locks.hold("table:1"):
        with locks.hold("table:2"):
            assert locks.active_keys() == ["table:1", "table:2"]


def test_overlapping_key_sets_do_not_deadlock():
    locks = KeyedLocks(timeout_seconds=2)
    counter = {"value": 0}

    def worker(keys):
        for _ in range(50):
            with locks.hold(*keys):
                counter["value"] += 1

    threads = [
        threading.Thread(target=worker, args=(("a", "b"),)),
        threading.Thread(target=worker, args=(("b", "a"),)),
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert counter["value"] == 100
