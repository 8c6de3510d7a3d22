"""
Reads of catalog views through the ViewStore.

Loaders registered here are what the store uses to refetch a view after a
mutation invalidates it.
"""

from typing import Optional

import structlog

from config import settings
from integrations.catalog_api import CatalogTransport
from models.base import Page
from models.category import Category
from models.product import Product
from models.views import ResourceKind, ViewKey
from services.view_store import ViewStore

logger = structlog.get_logger(__name__)

RECORD_MODELS = {
    ResourceKind.PRODUCTS: Product,
    ResourceKind.CATEGORIES: Category,
}


class CatalogQueries:
    """
    Catalog read API for presentation code.

    Usage:
        queries = CatalogQueries(store, transport)
        page = await queries.list(ResourceKind.PRODUCTS)
        product = await queries.detail(ResourceKind.PRODUCTS, product_id)
        categories = await queries.categories()
    """

    def __init__(self, store: ViewStore, transport: CatalogTransport, page_size: Optional[int] = None):
        self.store = store
        self.transport = transport
        self.page_size = page_size or settings.list_page_size

    async def list(self, resource: ResourceKind, stale_seconds: Optional[float] = None) -> Page:
        """First page of the resource's default listing."""
        model = RECORD_MODELS[resource]

        async def load() -> Page:
            data = await self.transport.fetch_list(resource.value, 1, self.page_size)
            page = Page[model].model_validate(data)
            logger.debug("list_view_loaded", resource=resource.value, count=len(page.items), total=page.total)
            return page

        return await self.store.read(ViewKey.list(resource), load, stale_seconds=stale_seconds)

    async def detail(self, resource: ResourceKind, entity_id: str):
        """Single record by server id."""
        model = RECORD_MODELS[resource]

        async def load():
            data = await self.transport.fetch_detail(resource.value, entity_id)
            return model.model_validate(data)

        return await self.store.read(ViewKey.detail(resource, entity_id), load)

    async def categories(self) -> Page:
        """Categories used to fill product forms and placeholders."""
        return await self.list(ResourceKind.CATEGORIES, stale_seconds=settings.reference_stale_seconds)

    def session(self, resource: ResourceKind) -> tuple:
        """Records touched in the current creation workflow, newest first."""
        return self.store.get(ViewKey.session(resource)) or ()
