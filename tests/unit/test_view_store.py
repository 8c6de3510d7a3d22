"""
Unit tests for ViewStore.

Run: pytest tests/unit/test_view_store.py -v
"""

import asyncio

import pytest

from models.views import ResourceKind, ViewKey, ViewKind, match_views
from services.view_store import ViewStore

LIST_KEY = ViewKey.list(ResourceKind.PRODUCTS)
SESSION_KEY = ViewKey.session(ResourceKind.PRODUCTS)


class Loader:
    """Loader returning queued values, optionally held open by a gate."""

    def __init__(self, *values):
        self.values = list(values)
        self.calls = 0
        self.gate = None

    async def __call__(self):
        self.calls += 1
        value = self.values.pop(0)
        if self.gate is not None:
            await self.gate.wait()
        if isinstance(value, Exception):
            raise value
        return value


async def loader_started(loader: Loader, calls: int = 1) -> None:
    for _ in range(100):
        if loader.calls >= calls:
            return
        await asyncio.sleep(0)
    raise AssertionError("loader was not called")


class TestViewStoreSync:
    """Tests for set/get/restore/remove/subscribe"""

    def test_get_missing_is_none(self, store):
        assert store.get(LIST_KEY) is None
        assert not store.has(LIST_KEY)

    def test_set_applies_updater_to_current(self, store):
        store.set(SESSION_KEY, lambda current: ("a", *(current or ())))
        store.set(SESSION_KEY, lambda current: ("b", *(current or ())))
        assert store.get(SESSION_KEY) == ("b", "a")

    def test_restore_puts_back_same_object(self, store):
        snapshot = ("a",)
        store.set(SESSION_KEY, lambda _: snapshot)
        store.set(SESSION_KEY, lambda current: ("x", *current))

        store.restore(SESSION_KEY, snapshot)

        assert store.get(SESSION_KEY) is snapshot

    def test_restore_none_forgets_value(self, store):
        store.set(SESSION_KEY, lambda _: ("a",))
        store.restore(SESSION_KEY, None)
        assert not store.has(SESSION_KEY)
        assert store.get(SESSION_KEY) is None

    def test_subscribe_and_unsubscribe(self, store):
        seen = []
        unsubscribe = store.subscribe(SESSION_KEY, lambda key, value: seen.append(value))

        store.set(SESSION_KEY, lambda _: ("a",))
        unsubscribe()
        store.set(SESSION_KEY, lambda _: ("b",))

        assert seen == [("a",)]

    def test_failing_listener_does_not_break_writes(self, store):
        def broken(key, value):
            raise RuntimeError("boom")

        store.subscribe(SESSION_KEY, broken)
        store.set(SESSION_KEY, lambda _: ("a",))

        assert store.get(SESSION_KEY) == ("a",)

    def test_remove_notifies_none(self, store):
        seen = []
        store.set(LIST_KEY, lambda _: "page")
        store.subscribe(LIST_KEY, lambda key, value: seen.append(value))

        store.remove(LIST_KEY)

        assert seen == [None]
        assert not store.has(LIST_KEY)


class TestViewStoreRead:
    """Tests for read()"""

    @pytest.mark.asyncio
    async def test_read_fetches_and_caches(self):
        store = ViewStore(stale_seconds=60, retry_count=0)
        loader = Loader("page-1")

        assert await store.read(LIST_KEY, loader) == "page-1"
        assert await store.read(LIST_KEY, loader) == "page-1"
        assert loader.calls == 1

    @pytest.mark.asyncio
    async def test_stale_value_refetches(self, store):
        loader = Loader("page-1", "page-2")

        await store.read(LIST_KEY, loader)

        assert await store.read(LIST_KEY) == "page-2"
        assert loader.calls == 2

    @pytest.mark.asyncio
    async def test_concurrent_reads_share_one_fetch(self, store):
        loader = Loader("page-1")
        loader.gate = asyncio.Event()

        first = asyncio.create_task(store.read(LIST_KEY, loader))
        second = asyncio.create_task(store.read(LIST_KEY, loader))
        await asyncio.sleep(0)
        loader.gate.set()

        assert await first == "page-1"
        assert await second == "page-1"
        assert loader.calls == 1

    @pytest.mark.asyncio
    async def test_loader_error_is_raised_and_recorded(self, store):
        loader = Loader(RuntimeError("down"))

        with pytest.raises(RuntimeError, match="down"):
            await store.read(LIST_KEY, loader)

        assert isinstance(store.error(LIST_KEY), RuntimeError)
        assert not store.has(LIST_KEY)

    @pytest.mark.asyncio
    async def test_retries_before_failing(self):
        store = ViewStore(stale_seconds=0, retry_count=2, retry_base_delay=0)
        loader = Loader(RuntimeError("1"), RuntimeError("2"), "page")

        assert await store.read(LIST_KEY, loader) == "page"
        assert loader.calls == 3
        assert store.error(LIST_KEY) is None

    @pytest.mark.asyncio
    async def test_read_without_loader_returns_cached(self, store):
        assert await store.read(SESSION_KEY) is None
        store.set(SESSION_KEY, lambda _: ("a",))
        assert await store.read(SESSION_KEY) == ("a",)


class TestViewStoreFencing:
    """Fetches never overwrite a write that happened after they started"""

    @pytest.mark.asyncio
    async def test_write_during_fetch_wins(self, store):
        loader = Loader("server-page")
        loader.gate = asyncio.Event()
        reader = asyncio.create_task(store.read(LIST_KEY, loader))
        await asyncio.sleep(0)

        store.set(LIST_KEY, lambda _: "optimistic-page")
        loader.gate.set()
        await reader

        assert store.get(LIST_KEY) == "optimistic-page"

    @pytest.mark.asyncio
    async def test_cancel_stops_in_flight_fetch(self, store):
        loader = Loader("server-page")
        loader.gate = asyncio.Event()
        reader = asyncio.create_task(store.read(LIST_KEY, loader))
        await asyncio.sleep(0)
        assert store.is_fetching(LIST_KEY)

        cancelled = await store.cancel(match_views(ResourceKind.PRODUCTS, ViewKind.LIST))

        assert cancelled == 1
        assert not store.is_fetching(LIST_KEY)
        assert await reader is None
        assert not store.has(LIST_KEY)

    @pytest.mark.asyncio
    async def test_cancel_ignores_other_resources(self, store):
        categories_key = ViewKey.list(ResourceKind.CATEGORIES)
        loader = Loader("categories")
        loader.gate = asyncio.Event()
        reader = asyncio.create_task(store.read(categories_key, loader))
        await asyncio.sleep(0)

        assert await store.cancel(match_views(ResourceKind.PRODUCTS)) == 0

        loader.gate.set()
        assert await reader == "categories"


class TestViewStoreInvalidate:
    """Tests for invalidate()"""

    @pytest.mark.asyncio
    async def test_invalidate_refetches_with_remembered_loader(self):
        store = ViewStore(stale_seconds=60, retry_count=0)
        loader = Loader("page-1", "page-2")
        await store.read(LIST_KEY, loader)

        tasks = store.invalidate(match_views(ResourceKind.PRODUCTS, ViewKind.LIST))
        await store.wait_idle()

        assert len(tasks) == 1
        assert store.get(LIST_KEY) == "page-2"

    @pytest.mark.asyncio
    async def test_invalidate_without_refetch_marks_stale(self):
        store = ViewStore(stale_seconds=60, retry_count=0)
        loader = Loader("page-1", "page-2")
        await store.read(LIST_KEY, loader)

        assert store.invalidate(match_views(ResourceKind.PRODUCTS), refetch=False) == []
        assert store.get(LIST_KEY) == "page-1"
        assert await store.read(LIST_KEY) == "page-2"

    @pytest.mark.asyncio
    async def test_invalidate_supersedes_running_fetch(self, store):
        loader = Loader("old", "new")
        loader.gate = asyncio.Event()
        reader = asyncio.create_task(store.read(LIST_KEY, loader))
        await loader_started(loader)

        loader.gate = None
        store.invalidate(match_views(ResourceKind.PRODUCTS, ViewKind.LIST))

        assert await reader == "new"
        assert store.get(LIST_KEY) == "new"
