"""
Shared test fixtures.

FakeCatalogTransport stands in for the catalog API: it keeps records in
memory, can hold calls open until the test releases them, and can be
told to fail a method.
"""

import sys
from pathlib import Path

# Add project root to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

import asyncio
from datetime import datetime, timezone
from typing import Optional

import pytest

from exceptions import AppError
from models.identifiers import CorrelationClock
from services.catalog_queries import CatalogQueries
from services.category_mutation_service import CategoryMutationService
from services.product_mutation_service import ProductMutationService
from services.view_store import ViewStore
from utils.text_utils import name_key

# Fields an update may set back to null
CLEARABLE_FIELDS = {"categoryId", "purchasePrice"}


# ===================
# FAKE TRANSPORT
# ===================

class FakeCatalogTransport:
    """
    In-memory CatalogTransport.

    Usage:
        transport.seed("products", ProductFactory.create(id="p-1"))
        transport.fail("delete", DependencyConflictError("..."))
        transport.hold("create")          # calls wait until released
        await transport.wait_for_calls("create", 2)
        transport.release("create", 1)    # release the second call
    """

    def __init__(self):
        self.records: dict[str, dict[str, dict]] = {"products": {}, "categories": {}}
        self.calls: list[tuple] = []
        self._failures: dict[str, AppError] = {}
        self._held: set[str] = set()
        self._gates: dict[str, list[asyncio.Event]] = {}
        self._counter = 0

    # Setup helpers

    def seed(self, resource: str, *records: dict) -> None:
        for record in records:
            self.records[resource][record["id"]] = dict(record)

    def fail(self, method: str, error: AppError) -> None:
        self._failures[method] = error

    def recover(self, method: str) -> None:
        self._failures.pop(method, None)

    def hold(self, method: str) -> None:
        self._held.add(method)

    def release(self, method: str, index: int = 0) -> None:
        self._gates[method][index].set()

    def release_all(self, method: str) -> None:
        self._held.discard(method)
        for event in self._gates.get(method, []):
            event.set()

    async def wait_for_calls(self, method: str, count: int) -> None:
        for _ in range(2000):
            if self.count(method) >= count:
                return
            await asyncio.sleep(0.001)
        raise AssertionError(f"expected {count} {method} calls, got {self.count(method)}")

    def count(self, method: str) -> int:
        return sum(1 for call in self.calls if call[0] == method)

    async def _enter(self, method: str, *args) -> None:
        self.calls.append((method, *args))
        if method in self._held:
            event = asyncio.Event()
            self._gates.setdefault(method, []).append(event)
            await event.wait()
        if method in self._failures:
            raise self._failures[method]

    def _category_ref(self, category_id: Optional[str]) -> Optional[dict]:
        category = self.records["categories"].get(category_id) if category_id else None
        return {"id": category_id, "name": category["name"]} if category else None

    # CatalogTransport

    async def create(self, resource: str, payload: dict) -> dict:
        await self._enter("create", resource, payload)
        self._counter += 1
        now = datetime.now(timezone.utc).isoformat()
        record = {
            **{key: value for key, value in payload.items() if value is not None},
            "id": f"new-{self._counter}",
            "createdAt": now,
            "updatedAt": now,
        }
        if resource == "products":
            record.setdefault("sku", f"SKU-{self._counter:08d}")
            record["category"] = self._category_ref(record.get("categoryId"))
        self.records[resource][record["id"]] = record
        return dict(record)

    async def update(self, resource: str, entity_id: str, payload: dict) -> dict:
        await self._enter("update", resource, entity_id, payload)
        changes = {
            key: value for key, value in payload.items()
            if value is not None or key in CLEARABLE_FIELDS
        }
        record = {**self.records[resource][entity_id], **changes}
        if resource == "products":
            record["category"] = self._category_ref(record.get("categoryId"))
        self.records[resource][entity_id] = record
        return dict(record)

    async def delete(self, resource: str, entity_id: str) -> None:
        await self._enter("delete", resource, entity_id)
        self.records[resource].pop(entity_id, None)

    async def fetch_list(self, resource: str, page: int = 1, page_size: int = 100) -> dict:
        await self._enter("fetch_list", resource, page, page_size)
        items = list(self.records[resource].values())
        return {"items": items, "total": len(items), "page": page, "pageSize": page_size}

    async def fetch_detail(self, resource: str, entity_id: str) -> dict:
        await self._enter("fetch_detail", resource, entity_id)
        return dict(self.records[resource][entity_id])

    async def check_name(self, resource: str, name: str, exclude_id: Optional[str] = None) -> bool:
        await self._enter("check_name", resource, name, exclude_id)
        return not any(
            name_key(record["name"]) == name_key(name)
            for record_id, record in self.records[resource].items()
            if record_id != exclude_id
        )


class RecordingNotifier:
    """Notifier that keeps every message."""

    def __init__(self):
        self.successes: list[str] = []
        self.errors: list[str] = []

    def success(self, message: str) -> None:
        self.successes.append(message)

    def error(self, message: str) -> None:
        self.errors.append(message)


# ===================
# FIXTURES
# ===================

@pytest.fixture
def transport() -> FakeCatalogTransport:
    return FakeCatalogTransport()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def store() -> ViewStore:
    """Store with no retries and no freshness window."""
    return ViewStore(stale_seconds=0, retry_count=0, retry_base_delay=0)


@pytest.fixture
def queries(store, transport) -> CatalogQueries:
    return CatalogQueries(store, transport, page_size=100)


@pytest.fixture
def product_service(store, transport, notifier) -> ProductMutationService:
    return ProductMutationService(store, transport, notifier, clock=CorrelationClock())


@pytest.fixture
def category_service(store, transport, notifier) -> CategoryMutationService:
    return CategoryMutationService(store, transport, notifier, clock=CorrelationClock())
