"""Test harness configuration.

This repo uses a `src/` layout. Ensure tests always import the in-repo code
rather than an older installed `device_relay` package.
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest

DEFAULT_NON_INTEGRATION_TIMEOUT_SECONDS = 60


def pytest_configure() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    src_path = str(repo_root / "src")
    if sys.path[:1] != [src_path] and src_path not in sys.path:
        sys.path.insert(0, src_path)


def pytest_collection_modifyitems(
    session: pytest.Session, config: pytest.Config, items: list[pytest.Item]
) -> None:
    """
    Apply a default per-test timeout to non-integration tests.

    This relies on `pytest-timeout`; without it the marker is inert.
    """
    _ = session, config
    for item in items:
        if item.get_closest_marker("integration") is not None:
            continue
        item.add_marker(pytest.mark.timeout(DEFAULT_NON_INTEGRATION_TIMEOUT_SECONDS))


@pytest.fixture()
def kv_store():
    from device_relay.core.kv_store import InMemoryKeyValueStore

    return InMemoryKeyValueStore()


class _YieldingKeyValueStore:
    """In-memory store that yields to the loop on every call, like a real backend."""

    def __init__(self) -> None:
        from device_relay.core.kv_store import InMemoryKeyValueStore

        self._inner = InMemoryKeyValueStore()

    async def get(self, key):
        await asyncio.sleep(0)
        return await self._inner.get(key)

    async def put(self, key, value):
        await asyncio.sleep(0)
        await self._inner.put(key, value)

    async def delete(self, key):
        await asyncio.sleep(0)
        await self._inner.delete(key)

    async def list_keys(self, prefix):
        await asyncio.sleep(0)
        return await self._inner.list_keys(prefix)

    def snapshot(self):
        return self._inner.snapshot()


@pytest.fixture()
def yielding_kv_store():
    return _YieldingKeyValueStore()


@pytest.fixture()
def anyio_backend():
    # The code under test is built on asyncio primitives.
    return "asyncio"
