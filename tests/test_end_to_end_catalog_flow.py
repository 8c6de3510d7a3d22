"""
End-to-end: mutation services and name validation against the catalog API.

The FastAPI app runs in-process behind httpx.ASGITransport, so requests go
through routing, validation and the error envelope exactly as over HTTP.

Run: pytest tests/test_end_to_end_catalog_flow.py -v
"""

from functools import partial

import httpx
import pytest

from exceptions import DependencyConflictError, NameConflictError
from integrations.catalog_api import HttpCatalogTransport
from main import app
from models.category import CategoryForm
from models.product import ProductForm
from models.views import ResourceKind, ViewKey
from services.catalog_queries import CatalogQueries
from services.catalog_service import CatalogService, get_catalog_service
from services.category_mutation_service import CategoryMutationService
from services.name_validation_service import NameValidator, ValidationPhase
from services.product_mutation_service import ProductMutationService
from services.view_store import ViewStore
from tests.conftest import RecordingNotifier
from tests.factories import ProductFactory


@pytest.fixture
def catalog():
    service = CatalogService()
    app.dependency_overrides[get_catalog_service] = lambda: service
    yield service
    app.dependency_overrides.clear()


@pytest.fixture
def http_client(catalog):
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://catalog.test")


class TestCatalogFlow:

    @pytest.mark.asyncio
    async def test_full_workflow(self, http_client):
        notifier = RecordingNotifier()
        store = ViewStore(stale_seconds=0, retry_count=0)

        async with http_client:
            transport = HttpCatalogTransport(owner_id="shop-1", client=http_client)
            queries = CatalogQueries(store, transport)
            categories = CategoryMutationService(store, transport, notifier)
            products = ProductMutationService(store, transport, notifier)

            # Category created this session feeds the product placeholder
            drinks = await categories.create(CategoryForm(name="Drinks"))
            assert drinks.ok
            category_id = drinks.entity.id.value

            mug = await products.create(ProductForm.model_validate(
                ProductFactory.form(name="  Blue   Mug ", categoryId=category_id, stock="5")
            ))
            assert mug.ok
            assert mug.entity.name == "Blue Mug"
            assert mug.entity.category.name == "Drinks"
            assert mug.entity.sku.startswith("SKU-")
            session = store.get(ViewKey.session(ResourceKind.PRODUCTS))
            assert [str(p.id) for p in session] == [mug.entity.id.value]

            # Name validation goes through the check-name endpoint
            validator = NameValidator(partial(transport.check_name, "products"), delay=0.01)
            validator.update("blue mug")
            await validator.wait_idle()
            assert validator.state.phase is ValidationPhase.CONFLICT

            # Duplicate create is refused and rolled back
            before = store.get(ViewKey.session(ResourceKind.PRODUCTS))
            duplicate = await products.create(ProductForm.model_validate(ProductFactory.form(name="BLUE MUG")))
            assert not duplicate.ok
            assert isinstance(duplicate.error, NameConflictError)
            assert store.get(ViewKey.session(ResourceKind.PRODUCTS)) is before

            # Category with products cannot be deleted
            page = await queries.categories()
            assert page.find(category_id).product_count == 1
            refused = await categories.delete(category_id)
            assert not refused.ok
            assert isinstance(refused.error, DependencyConflictError)
            assert store.get(ViewKey.list(ResourceKind.CATEGORIES)) is page

            # Product with sales cannot be deleted
            product_id = mug.entity.id.value
            await http_client.post(
                f"/api/products/{product_id}/sales",
                json={"quantity": 2},
                headers={"X-User-Id": "shop-1"}
            )
            await queries.list(ResourceKind.PRODUCTS)
            list_before = store.get(ViewKey.list(ResourceKind.PRODUCTS))
            blocked = await products.delete(product_id)
            assert not blocked.ok
            assert blocked.message == "Cannot delete product with existing sales history"
            assert store.get(ViewKey.list(ResourceKind.PRODUCTS)) is list_before

            # Update reconciles with the server's record
            renamed = await products.update(product_id, ProductForm.model_validate(
                ProductFactory.form(name="Navy Mug", categoryId="uncategorized")
            ))
            await store.wait_idle()
            assert renamed.ok
            assert renamed.entity.category is None
            listed = store.get(ViewKey.list(ResourceKind.PRODUCTS)).find(product_id)
            assert listed.name == "Navy Mug"
            assert listed.stock == 3
            assert not any(p.is_updating for p in store.get(ViewKey.session(ResourceKind.PRODUCTS)))

            # Category is now empty and can go
            removed = await categories.delete(category_id)
            await store.wait_idle()
            assert removed.ok
            assert store.get(ViewKey.list(ResourceKind.CATEGORIES)).find(category_id) is None

        assert notifier.errors == [
            "A product with this name already exists",
            "Cannot delete category with 1 assigned product(s)",
            "Cannot delete product with existing sales history",
        ]
