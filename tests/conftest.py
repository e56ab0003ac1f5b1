"""
Shared test fixtures.

Provides:
- clock: controllable replacement for the engine's time source
- refreshes / async_refreshes: record background refreshes the engine dispatches
"""

import pytest

from cachified import engine


class FakeClock:
    """Controllable clock for deterministic freshness tests."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingCache:
    """InMemCache-like storage that can be told to fail."""

    def __init__(self, fail_get=False, fail_set=False):
        self.data = {}
        self.fail_get = fail_get
        self.fail_set = fail_set
        self.set_calls = 0

    def get(self, key):
        if self.fail_get:
            raise RuntimeError("storage down")
        return self.data.get(key)

    def set(self, key, entry):
        self.set_calls += 1
        if self.fail_set:
            raise RuntimeError("storage full")
        self.data[key] = entry

    def remove(self, key):
        self.data.pop(key, None)

    def clear(self):
        self.data.clear()

    def count(self):
        return len(self.data)


@pytest.fixture
def clock(monkeypatch):
    """Freeze the engine clock; advance it with clock.advance(seconds)."""
    fake = FakeClock()
    monkeypatch.setattr(engine, "current_time", fake)
    return fake


@pytest.fixture
def refreshes(monkeypatch):
    """Threads started by the engine for background refreshes."""
    threads = []
    original = engine.spawn_refresh

    def recording_spawn(*args, **kwargs):
        thread = original(*args, **kwargs)
        threads.append(thread)
        return thread

    monkeypatch.setattr(engine, "spawn_refresh", recording_spawn)
    return threads


@pytest.fixture
def async_refreshes(monkeypatch):
    """Tasks created by the engine for background refreshes."""
    tasks = []
    original = engine.aspawn_refresh

    def recording_spawn(*args, **kwargs):
        task = original(*args, **kwargs)
        tasks.append(task)
        return task

    monkeypatch.setattr(engine, "aspawn_refresh", recording_spawn)
    return tasks


@pytest.fixture
def recording_cache():
    """Factory for storages that count writes and can fail on demand."""
    return RecordingCache
