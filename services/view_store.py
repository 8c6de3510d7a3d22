"""
Key-addressed store of cached view values.

Each view is a single cell holding one immutable value. Writes replace the
whole value. Fetches run as asyncio tasks and only commit if no write
happened since they started (generation fence), so a slow read can never
overwrite an optimistic change.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Optional

import structlog

from config import settings
from models.views import KeyPredicate, ViewKey

logger = structlog.get_logger(__name__)

Loader = Callable[[], Awaitable[Any]]
Listener = Callable[[ViewKey, Any], None]

MAX_RETRY_DELAY_SECONDS = 30.0


class _Cell:
    """Mutable bookkeeping for one view key."""

    __slots__ = (
        "value", "has_value", "updated_at", "stale", "loader",
        "stale_seconds", "generation", "task", "error", "listeners",
    )

    def __init__(self):
        self.value: Any = None
        self.has_value = False
        self.updated_at: Optional[float] = None
        self.stale = False
        self.loader: Optional[Loader] = None
        self.stale_seconds: Optional[float] = None
        self.generation = 0
        self.task: Optional[asyncio.Task] = None
        self.error: Optional[BaseException] = None
        self.listeners: list[Listener] = []


class ViewStore:
    """
    Async view cache.

    Usage:
        store = ViewStore()
        page = await store.read(ViewKey.list(ResourceKind.PRODUCTS), load_products)
        store.set(key, lambda current: (placeholder, *(current or ())))
        await store.cancel(match_views(ResourceKind.PRODUCTS))
        store.invalidate(match_views(ResourceKind.PRODUCTS, ViewKind.LIST))
    """

    def __init__(
        self,
        stale_seconds: Optional[float] = None,
        retry_count: Optional[int] = None,
        retry_base_delay: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.stale_seconds = settings.view_stale_seconds if stale_seconds is None else stale_seconds
        self.retry_count = settings.query_retry_count if retry_count is None else retry_count
        self.retry_base_delay = (
            settings.query_retry_base_delay_seconds if retry_base_delay is None else retry_base_delay
        )
        self._clock = clock
        self._cells: dict[ViewKey, _Cell] = {}

    # ===================
    # SYNC ACCESS
    # ===================

    def has(self, key: ViewKey) -> bool:
        cell = self._cells.get(key)
        return cell is not None and cell.has_value

    def get(self, key: ViewKey) -> Any:
        """Current value for key, or None if nothing is cached."""
        cell = self._cells.get(key)
        return cell.value if cell is not None else None

    def error(self, key: ViewKey) -> Optional[BaseException]:
        """Last fetch error for key, cleared by the next successful fetch."""
        cell = self._cells.get(key)
        return cell.error if cell is not None else None

    def is_fetching(self, key: ViewKey) -> bool:
        cell = self._cells.get(key)
        return cell is not None and cell.task is not None and not cell.task.done()

    def set(self, key: ViewKey, updater: Callable[[Any], Any]) -> Any:
        """
        Replace the value of key with updater(current).

        The updater must return a new value rather than mutate current.
        """
        cell = self._cell(key)
        value = updater(cell.value)
        self._commit(key, cell, value)
        return value

    def restore(self, key: ViewKey, snapshot: Any) -> None:
        """Put back a value previously returned by get(), as the same object."""
        cell = self._cell(key)
        self._commit(key, cell, snapshot)
        if snapshot is None:
            cell.has_value = False

    def remove(self, key: ViewKey) -> None:
        """Drop key entirely, cancelling any fetch."""
        cell = self._cells.pop(key, None)
        if cell is None:
            return
        cell.generation += 1
        if cell.task is not None and not cell.task.done():
            cell.task.cancel()
        self._notify(key, cell, None)

    def subscribe(self, key: ViewKey, listener: Listener) -> Callable[[], None]:
        """
        Call listener(key, value) after every committed change of key.

        Returns:
            Function that removes the listener
        """
        cell = self._cell(key)
        cell.listeners.append(listener)

        def unsubscribe() -> None:
            if listener in cell.listeners:
                cell.listeners.remove(listener)

        return unsubscribe

    # ===================
    # ASYNC ACCESS
    # ===================

    async def read(
        self,
        key: ViewKey,
        loader: Optional[Loader] = None,
        stale_seconds: Optional[float] = None
    ) -> Any:
        """
        Read key, fetching with loader when missing or stale.

        Joins a fetch already in flight instead of starting another. The
        loader is remembered for later refetches on invalidation.

        Raises:
            Exception: The loader's error once retries are exhausted
        """
        cell = self._cell(key)
        if loader is not None:
            cell.loader = loader
        if stale_seconds is not None:
            cell.stale_seconds = stale_seconds

        if cell.has_value and not self._is_stale(cell):
            return cell.value
        if cell.loader is None:
            return cell.value

        while True:
            task = cell.task or self._start_fetch(key, cell)
            await asyncio.wait({task})
            if task.cancelled():
                # Superseded by a newer fetch: follow it
                if cell.task is not None and cell.task is not task:
                    continue
                return cell.value
            exc = task.exception()
            if exc is not None:
                raise exc
            return cell.value

    async def cancel(self, predicate: KeyPredicate) -> int:
        """
        Cancel in-flight fetches for matching keys.

        Returns only once every cancelled task has finished, so no
        cancelled fetch can commit afterwards.

        Returns:
            Number of fetches cancelled
        """
        tasks = []
        for key, cell in list(self._cells.items()):
            if not predicate(key) or cell.task is None or cell.task.done():
                continue
            cell.generation += 1
            cell.task.cancel()
            tasks.append(cell.task)

        if tasks:
            await asyncio.wait(tasks)
            logger.debug("view_fetches_cancelled", count=len(tasks))
        return len(tasks)

    def invalidate(self, predicate: KeyPredicate, refetch: bool = True) -> list[asyncio.Task]:
        """
        Mark matching keys stale and refetch those with a known loader.

        Must be called from a running event loop when refetch is True.

        Returns:
            The refetch tasks started
        """
        tasks = []
        for key, cell in list(self._cells.items()):
            if not predicate(key):
                continue
            cell.stale = True
            if not refetch or cell.loader is None:
                continue
            if cell.task is not None and not cell.task.done():
                cell.generation += 1
                cell.task.cancel()
            tasks.append(self._start_fetch(key, cell))

        if tasks:
            logger.debug("views_invalidated", refetching=len(tasks))
        return tasks

    async def wait_idle(self) -> None:
        """Wait until no fetch is in flight."""
        while True:
            tasks = [
                cell.task for cell in self._cells.values()
                if cell.task is not None and not cell.task.done()
            ]
            if not tasks:
                return
            await asyncio.wait(tasks)

    # ===================
    # INTERNALS
    # ===================

    def _cell(self, key: ViewKey) -> _Cell:
        cell = self._cells.get(key)
        if cell is None:
            cell = self._cells[key] = _Cell()
        return cell

    def _is_stale(self, cell: _Cell) -> bool:
        if cell.stale or cell.updated_at is None:
            return True
        limit = self.stale_seconds if cell.stale_seconds is None else cell.stale_seconds
        return self._clock() - cell.updated_at >= limit

    def _commit(self, key: ViewKey, cell: _Cell, value: Any) -> None:
        cell.generation += 1
        cell.value = value
        cell.has_value = True
        cell.stale = False
        cell.updated_at = self._clock()
        self._notify(key, cell, value)

    def _notify(self, key: ViewKey, cell: _Cell, value: Any) -> None:
        for listener in list(cell.listeners):
            try:
                listener(key, value)
            except Exception:
                logger.exception("view_listener_failed", key=str(key))

    def _start_fetch(self, key: ViewKey, cell: _Cell) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(
            self._fetch(key, cell, cell.generation, cell.loader)
        )
        cell.task = task

        def done(finished: asyncio.Task) -> None:
            if cell.task is finished:
                cell.task = None
            if not finished.cancelled():
                finished.exception()  # mark retrieved; readers re-raise it

        task.add_done_callback(done)
        return task

    async def _fetch(self, key: ViewKey, cell: _Cell, generation: int, loader: Loader) -> None:
        attempt = 0
        while True:
            try:
                value = await loader()
                break
            except Exception as e:
                if attempt >= self.retry_count:
                    cell.error = e
                    logger.warning(
                        "view_fetch_failed",
                        key=str(key),
                        attempts=attempt + 1,
                        error=str(e)
                    )
                    raise
                delay = min(self.retry_base_delay * 2 ** attempt, MAX_RETRY_DELAY_SECONDS)
                attempt += 1
                logger.debug("view_fetch_retrying", key=str(key), attempt=attempt, delay=delay)
                await asyncio.sleep(delay)

        if cell.generation != generation:
            logger.info(
                "view_fetch_fenced",
                key=str(key),
                started_at_generation=generation,
                current_generation=cell.generation
            )
            return

        cell.error = None
        self._commit(key, cell, value)
