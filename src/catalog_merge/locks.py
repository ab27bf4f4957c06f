from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class KeyedLock:
    """Mutual exclusion per fingerprint, spread over a fixed set of shards.

    Keys are hex digests; the shard is taken from the first 8 hex digits the
    same way partitioned dedupe indices pick a partition. Two keys may share a
    shard, which only costs concurrency. ``shards=1`` is a single global lock.
    """

    def __init__(self, shards: int = 64) -> None:
        if shards < 1:
            raise ValueError("KeyedLock requires at least 1 shard.")
        self.shards = shards
        self._locks = [threading.Lock() for _ in range(shards)]

    def shard_index(self, key: str) -> int:
        if not key or self.shards == 1:
            return 0
        return int(key[:8], 16) % self.shards

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        lock = self._locks[self.shard_index(key)]
        with lock:
            yield
