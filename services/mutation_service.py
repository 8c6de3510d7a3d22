"""
Optimistic mutations across every view of a resource.

Each operation runs Snapshot -> Optimistic Apply -> Await -> Reconcile or
Rollback. Failures never escape as exceptions: they roll every touched
view back to the exact snapshot object and come back as a MutationResult.
A view another mutation has written to in the meantime keeps that write,
and only the failed mutation's own change is undone on it.
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Generic, Optional, TypeVar

import structlog
from pydantic import ValidationError as PydanticValidationError

from exceptions import AppError, TransportError
from integrations.catalog_api import CatalogTransport
from integrations.notifier import LogNotifier, Notifier
from models.base import BaseSchema, Page, RecordSchema
from models.identifiers import CorrelationClock
from models.views import ResourceKind, ViewKey, ViewKind, match_views
from services.view_store import ViewStore

logger = structlog.get_logger(__name__)

RecordT = TypeVar("RecordT", bound=RecordSchema)


@dataclass(frozen=True)
class MutationResult(Generic[RecordT]):
    """
    Outcome of a mutation.

    Attributes:
        ok: True if the server accepted the change
        entity: Server-confirmed record (create/update)
        error: The failure, when ok is False
        message: User-facing message for the failure
    """
    ok: bool
    entity: Optional[RecordT] = None
    error: Optional[AppError] = None
    message: Optional[str] = None


def replace_pending(records: Optional[tuple], token: int, confirmed: RecordSchema) -> Optional[tuple]:
    """Swap the placeholder with this correlation token for confirmed, in place."""
    if records is None:
        return None
    return tuple(
        confirmed if record.correlation_token == token else record
        for record in records
    )


def _find_record(records: Any, entity_id: str) -> Optional[RecordSchema]:
    """Record with entity_id in a Page or a session tuple."""
    items = records.items if isinstance(records, Page) else records or ()
    return next((r for r in items if r.has_id(entity_id)), None)


def _map_records(records: Any, fn: Callable) -> Any:
    if isinstance(records, Page):
        return records.with_items(lambda items: map(fn, items))
    return tuple(map(fn, records))


def _reinsert(before: Any, current: Any, entity_id: str) -> Any:
    """Put the record with entity_id from before back into current at its old position."""
    if _find_record(current, entity_id) is not None:
        return current
    items = before.items if isinstance(before, Page) else before
    index = next((i for i, r in enumerate(items) if r.has_id(entity_id)), None)
    if index is None:
        return current

    if isinstance(current, Page):
        restored = list(current.items)
        restored.insert(min(index, len(restored)), items[index])
        return current.model_copy(update={"items": tuple(restored), "total": current.total + 1})
    restored = list(current)
    restored.insert(min(index, len(restored)), items[index])
    return tuple(restored)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class MutationService(Generic[RecordT]):
    """
    Base for per-resource mutation services.

    Subclasses set resource, model and label, and implement
    build_placeholder() and optimistic_changes().
    """

    resource: ResourceKind
    model: type
    label: str

    def __init__(
        self,
        store: ViewStore,
        transport: CatalogTransport,
        notifier: Optional[Notifier] = None,
        clock: Optional[CorrelationClock] = None
    ):
        self.store = store
        self.transport = transport
        self.notifier = notifier or LogNotifier()
        self.clock = clock or CorrelationClock()
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    # ===================
    # RESOURCE HOOKS
    # ===================

    def build_placeholder(self, payload: BaseSchema, token: int) -> RecordT:
        raise NotImplementedError

    def optimistic_changes(self, payload: BaseSchema) -> dict[str, Any]:
        raise NotImplementedError

    # ===================
    # KEYS
    # ===================

    @property
    def session_key(self) -> ViewKey:
        return ViewKey.session(self.resource)

    @property
    def list_key(self) -> ViewKey:
        return ViewKey.list(self.resource)

    def detail_key(self, entity_id: str) -> ViewKey:
        return ViewKey.detail(self.resource, entity_id)

    @asynccontextmanager
    async def _entity_lock(self, entity_id: str):
        """Hold the lock for entity_id. The lock is dropped once nobody holds or waits on it."""
        lock = self._locks.setdefault(entity_id, asyncio.Lock())
        self._lock_users[entity_id] = self._lock_users.get(entity_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[entity_id] -= 1
            if not self._lock_users[entity_id]:
                del self._lock_users[entity_id]
                del self._locks[entity_id]

    # ===================
    # CREATE
    # ===================

    async def create(self, form) -> MutationResult[RecordT]:
        """
        Create an entity, showing a placeholder at the head of the session view.

        Args:
            form: Resource form with to_create()

        Returns:
            MutationResult with the server entity on success
        """
        payload = form.to_create()

        await self.store.cancel(match_views(self.resource, ViewKind.SESSION, ViewKind.LIST))
        previous = self.store.get(self.session_key)

        token = self.clock.next_token()
        placeholder = self.build_placeholder(payload, token)
        written = {
            self.session_key: self.store.set(self.session_key, lambda current: (placeholder, *(current or ())))
        }
        snapshots = {self.session_key: previous}

        def undo(key, current):
            return tuple(r for r in current if r.correlation_token != token)

        logger.info(
            "optimistic_create_applied",
            resource=self.resource.value,
            token=token,
            name=placeholder.name
        )

        try:
            data = await self.transport.create(self.resource.value, self._body(payload))
            confirmed = self._parse(data)
        except asyncio.CancelledError:
            self._rollback(snapshots, written, undo)
            raise
        except Exception as e:
            self._rollback(snapshots, written, undo)
            return self._failed("create", e)

        self.store.set(self.session_key, self._confirm_placeholder(token, confirmed))
        self.store.invalidate(match_views(self.resource, ViewKind.LIST))

        logger.info(
            "create_confirmed",
            resource=self.resource.value,
            token=token,
            entity_id=str(confirmed.id)
        )
        self.notifier.success(f"{self.label} created successfully!")
        return MutationResult(ok=True, entity=confirmed)

    def _confirm_placeholder(self, token: int, confirmed: RecordT):
        def updater(current):
            if current is None or not any(r.correlation_token == token for r in current):
                logger.warning(
                    "placeholder_missing",
                    resource=self.resource.value,
                    token=token
                )
                return current
            return replace_pending(current, token, confirmed)
        return updater

    # ===================
    # UPDATE
    # ===================

    async def update(self, entity_id: str, form) -> MutationResult[RecordT]:
        """
        Update an entity in place in every view that holds it.

        Overlapping updates/deletes for the same id run one after another.

        Args:
            entity_id: Server id of the entity
            form: Resource form with to_update()

        Returns:
            MutationResult with the server entity on success
        """
        payload = form.to_update()
        changes = self.optimistic_changes(payload)
        detail_key = self.detail_key(entity_id)

        async with self._entity_lock(entity_id):
            await self.store.cancel(match_views(self.resource))
            snapshots = self._snapshot(self.list_key, self.session_key, detail_key)

            def apply(marked: bool):
                update = {**changes, "is_updating": True} if marked else changes

                def patch(record):
                    return record.model_copy(update=update) if record.has_id(entity_id) else record
                return patch

            written = self._map_views(apply(False), apply(True), entity_id)
            if self.store.get(detail_key) is not None:
                written[detail_key] = self.store.set(detail_key, lambda current: current.model_copy(update=changes))

            def undo(key, current):
                before = snapshots[key]
                if key == detail_key:
                    return before
                original = _find_record(before, entity_id)
                if original is None:
                    return current
                return _map_records(current, lambda r: original if r.has_id(entity_id) else r)

            logger.info(
                "optimistic_update_applied",
                resource=self.resource.value,
                entity_id=entity_id,
                fields=sorted(changes)
            )

            try:
                data = await self.transport.update(self.resource.value, entity_id, self._body(payload))
                confirmed = self._parse(data)
            except asyncio.CancelledError:
                self._rollback(snapshots, written, undo)
                raise
            except Exception as e:
                self._rollback(snapshots, written, undo)
                return self._failed("update", e, entity_id=entity_id)

            def reconcile(record):
                return confirmed if record.has_id(entity_id) else record

            self._map_views(reconcile, reconcile, entity_id)
            self.store.set(detail_key, lambda _: confirmed)
            self.store.invalidate(match_views(self.resource, ViewKind.LIST, ViewKind.DETAIL, entity_id=entity_id))

        logger.info("update_confirmed", resource=self.resource.value, entity_id=entity_id)
        self.notifier.success(f"{self.label} updated successfully!")
        return MutationResult(ok=True, entity=confirmed)

    # ===================
    # DELETE
    # ===================

    async def delete(self, entity_id: str) -> MutationResult[RecordT]:
        """
        Delete an entity, removing it from the list and session views at once.

        Args:
            entity_id: Server id of the entity

        Returns:
            MutationResult; on refusal, message carries the server's reason
        """
        detail_key = self.detail_key(entity_id)

        async with self._entity_lock(entity_id):
            await self.store.cancel(match_views(self.resource))
            snapshots = self._snapshot(self.list_key, self.session_key)

            written = {}
            if self.store.has(self.list_key):
                written[self.list_key] = self.store.set(self.list_key, lambda page: self._without(page, entity_id))
            if self.store.has(self.session_key):
                written[self.session_key] = self.store.set(
                    self.session_key,
                    lambda records: tuple(r for r in records if not r.has_id(entity_id))
                )

            def undo(key, current):
                return _reinsert(snapshots[key], current, entity_id)

            logger.info("optimistic_delete_applied", resource=self.resource.value, entity_id=entity_id)

            try:
                await self.transport.delete(self.resource.value, entity_id)
            except asyncio.CancelledError:
                self._rollback(snapshots, written, undo)
                raise
            except Exception as e:
                self._rollback(snapshots, written, undo)
                return self._failed("delete", e, entity_id=entity_id)

            self.store.invalidate(match_views(self.resource, ViewKind.LIST))
            self.store.remove(detail_key)

        logger.info("delete_confirmed", resource=self.resource.value, entity_id=entity_id)
        self.notifier.success(f"{self.label} deleted successfully!")
        return MutationResult(ok=True)

    # ===================
    # HELPERS
    # ===================

    def _body(self, payload: BaseSchema) -> dict:
        return payload.model_dump(by_alias=True, exclude_unset=True, mode="json")

    def _parse(self, data: Any) -> RecordT:
        try:
            return self.model.model_validate(data)
        except PydanticValidationError as e:
            raise TransportError(f"Catalog API returned an invalid {self.label.lower()}") from e

    def _snapshot(self, *keys: ViewKey) -> dict[ViewKey, Any]:
        """Current values of the cached keys among keys."""
        return {key: self.store.get(key) for key in keys if self.store.has(key)}

    def _rollback(
        self,
        snapshots: dict[ViewKey, Any],
        written: dict[ViewKey, Any],
        undo: Callable[[ViewKey, Any], Any]
    ) -> None:
        """
        Undo this mutation's optimistic writes.

        A view still holding exactly what this mutation wrote goes back to its
        snapshot object. A view written since (another mutation settling, a
        refetch) keeps the newer value and gets undo(key, current) instead.
        """
        merged = []
        for key, value in written.items():
            if self.store.get(key) is value:
                self.store.restore(key, snapshots.get(key))
            elif self.store.get(key) is not None:
                self.store.set(key, lambda current, key=key: undo(key, current))
                merged.append(str(key))
        logger.info(
            "mutation_rolled_back",
            resource=self.resource.value,
            views=[str(key) for key in written],
            merged=merged
        )

    def _map_views(self, list_fn, session_fn, entity_id: str) -> dict[ViewKey, Any]:
        """
        Apply per-record functions to the list and session views if they hold entity_id.

        Returns:
            The new value of each view written
        """
        written = {}
        page = self.store.get(self.list_key)
        if isinstance(page, Page) and page.find(entity_id) is not None:
            written[self.list_key] = self.store.set(
                self.list_key,
                lambda current: current.with_items(lambda items: map(list_fn, items))
            )

        records = self.store.get(self.session_key)
        if records and any(r.has_id(entity_id) for r in records):
            written[self.session_key] = self.store.set(
                self.session_key,
                lambda current: tuple(map(session_fn, current))
            )
        return written

    @staticmethod
    def _without(page: Optional[Page], entity_id: str) -> Optional[Page]:
        if page is None or page.find(entity_id) is None:
            return page
        return page.model_copy(update={
            "items": tuple(r for r in page.items if not r.has_id(entity_id)),
            "total": max(page.total - 1, 0),
        })

    def _failed(self, action: str, error: Exception, **context) -> MutationResult:
        if not isinstance(error, AppError):
            logger.error(
                "mutation_unexpected_error",
                resource=self.resource.value,
                action=action,
                error=str(error),
                error_type=type(error).__name__
            )
            error = TransportError(str(error) or type(error).__name__)

        message = self._user_message(action, error)
        logger.warning(
            "mutation_failed",
            resource=self.resource.value,
            action=action,
            code=error.code,
            error=error.message,
            **context
        )
        self.notifier.error(message)
        return MutationResult(ok=False, error=error, message=message)

    def _user_message(self, action: str, error: AppError) -> str:
        """Server-supplied reason if there is one, else a generic message."""
        reason = error.server_message if isinstance(error, TransportError) else error.message
        return reason or f"Failed to {action} {self.label.lower()}"

    @staticmethod
    def placeholder_timestamps() -> dict[str, datetime]:
        now = _now()
        return {"created_at": now, "updated_at": now}
