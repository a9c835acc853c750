"""
Shared fixtures: a controllable clock and stores.
"""

from datetime import datetime, timezone

import pytest

from quota_guard.storage.repository import InMemorySnapshotStore, StoreError

# 2024-01-15 12:00:00 UTC
START = datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc).timestamp()


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start: float = START):
        self.now = start

    def time(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSleep:
    """Async sleep that advances a FakeClock instead of waiting."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.calls = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        self.clock.advance(seconds)


class FailingStore:
    """Store whose reads and/or writes fail."""

    def __init__(self, fail_get: bool = True, fail_set: bool = True, refuse_set: bool = False):
        self.fail_get = fail_get
        self.fail_set = fail_set
        self.refuse_set = refuse_set
        self.data = {}

    def get(self, key):
        if self.fail_get:
            raise StoreError("read failed")
        return self.data.get(key)

    def set(self, key, value):
        if self.fail_set:
            raise StoreError("write failed")
        if self.refuse_set:
            return False
        self.data[key] = value
        return True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_sleep(clock):
    return FakeSleep(clock)


@pytest.fixture
def store():
    return InMemorySnapshotStore()
