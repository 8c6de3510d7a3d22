"""
Unit tests for CatalogQueries.

Run: pytest tests/unit/test_catalog_queries.py -v
"""

import pytest

from models.base import Page
from models.category import Category
from models.product import Product
from models.views import ResourceKind, ViewKey
from tests.factories import CategoryFactory, ProductFactory


class TestCatalogQueries:

    @pytest.mark.asyncio
    async def test_list_parses_page_of_records(self, queries, transport):
        transport.seed("products", *ProductFactory.create_batch(2))

        page = await queries.list(ResourceKind.PRODUCTS)

        assert isinstance(page, Page)
        assert page.total == 2
        assert all(isinstance(p, Product) for p in page.items)
        assert transport.calls[-1] == ("fetch_list", "products", 1, 100)

    @pytest.mark.asyncio
    async def test_detail(self, queries, transport, store):
        transport.seed("categories", CategoryFactory.create(id="c-1", name="Drinks"))

        category = await queries.detail(ResourceKind.CATEGORIES, "c-1")

        assert isinstance(category, Category)
        assert store.get(ViewKey.detail(ResourceKind.CATEGORIES, "c-1")) is category

    @pytest.mark.asyncio
    async def test_categories_stay_fresh(self, queries, transport):
        transport.seed("categories", CategoryFactory.create())

        await queries.categories()
        await queries.categories()

        assert transport.count("fetch_list") == 1

    @pytest.mark.asyncio
    async def test_session_defaults_to_empty(self, queries):
        assert queries.session(ResourceKind.PRODUCTS) == ()
