from __future__ import annotations

import threading
import time

import pytest

from catalog_merge.fingerprint import fingerprint
from catalog_merge.locks import KeyedLock


def test_shard_index_uses_hex_prefix() -> None:
    lock = KeyedLock(shards=16)
    assert lock.shard_index("0000000a" + "0" * 56) == 10
    assert lock.shard_index("") == 0


def test_single_shard_is_global() -> None:
    lock = KeyedLock(shards=1)
    assert lock.shard_index(fingerprint("a", "b")) == lock.shard_index(fingerprint("c", "d")) == 0


def test_requires_at_least_one_shard() -> None:
    with pytest.raises(ValueError, match="at least 1 shard"):
        KeyedLock(shards=0)


def test_same_key_is_mutually_exclusive() -> None:
    lock = KeyedLock(shards=8)
    key = fingerprint("x100", "acme")
    inside = 0
    overlaps = 0
    guard = threading.Lock()

    def worker() -> None:
        nonlocal inside, overlaps
        for _ in range(50):
            with lock.hold(key):
                with guard:
                    inside += 1
                    if inside > 1:
                        overlaps += 1
                time.sleep(0.0001)
                with guard:
                    inside -= 1

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert overlaps == 0


def test_different_shards_do_not_block_each_other() -> None:
    lock = KeyedLock(shards=16)
    key_a = "00000000" + "0" * 56
    key_b = "00000001" + "0" * 56
    acquired = threading.Event()

    def other() -> None:
        with lock.hold(key_b):
            acquired.set()

    with lock.hold(key_a):
        t = threading.Thread(target=other)
        t.start()
        assert acquired.wait(2)
        t.join()
