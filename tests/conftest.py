"""Shared test fixtures."""

import asyncio
import os
import sys

# Ensure project root is on sys.path so the 'studymate' package is importable
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from studymate.storage import LocalFallbackStore


@pytest.fixture
def tmp_store(tmp_path):
    """Provide a LocalFallbackStore on a temporary SQLite file."""
    store = LocalFallbackStore(str(tmp_path / "storage.db"))
    yield store
    store.close()


class FakeProbe:
    """Scripted stand-in for HealthProbe.

    ``results`` are returned in order (the last one repeats). An item may be
    an exception instance, which is raised instead. When ``gated`` is set,
    every call waits until ``release()`` is called.
    """

    def __init__(self, *results, gated=False):
        self.results = list(results) or [True]
        self.calls = 0
        self.gated = gated
        self._gate = asyncio.Event()
        self.closed = False

    def release(self):
        self._gate.set()

    async def __call__(self):
        index = min(self.calls, len(self.results) - 1)
        self.calls += 1
        await asyncio.sleep(0)  # a real probe always suspends on I/O
        if self.gated:
            await self._gate.wait()
        result = self.results[index]
        if isinstance(result, BaseException):
            raise result
        return result

    async def aclose(self):
        self.closed = True


@pytest.fixture
def fake_probe_cls():
    return FakeProbe
