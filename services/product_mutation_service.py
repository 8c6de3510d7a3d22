"""
Optimistic product mutations.
"""

from typing import Any, Optional

from models.base import Page
from models.category import Category
from models.identifiers import Pending
from models.product import CategoryRef, Product, ProductCreate, ProductUpdate
from models.views import ResourceKind, ViewKey
from services.mutation_service import MutationService


class ProductMutationService(MutationService[Product]):
    """
    Product create/update/delete with optimistic views.

    The product placeholder denormalizes its category from the cached
    categories list (or the categories created this session), so the row
    renders complete before the server answers.
    """

    resource = ResourceKind.PRODUCTS
    model = Product
    label = "Product"

    def build_placeholder(self, payload: ProductCreate, token: int) -> Product:
        return Product(
            id=Pending(token=token),
            name=payload.name,
            description=payload.description or "",
            sku=payload.sku or "",
            selling_price=payload.selling_price,
            purchase_price=payload.purchase_price,
            stock=payload.stock or 0,
            reorder_point=payload.reorder_point or 0,
            unit=payload.unit,
            category_id=payload.category_id,
            category=self.resolve_category(payload.category_id),
            **self.placeholder_timestamps()
        )

    def optimistic_changes(self, payload: ProductUpdate) -> dict[str, Any]:
        changes = payload.model_dump(exclude_none=True)
        changes["category_id"] = payload.category_id
        changes["category"] = self.resolve_category(payload.category_id)
        return changes

    def resolve_category(self, category_id: Optional[str]) -> Optional[CategoryRef]:
        """Look up a category in the side-loaded views; None if unknown."""
        if not category_id:
            return None

        page = self.store.get(ViewKey.list(ResourceKind.CATEGORIES))
        if isinstance(page, Page):
            category = page.find(category_id)
            if category is not None:
                return CategoryRef(id=category_id, name=category.name)

        for category in self.store.get(ViewKey.session(ResourceKind.CATEGORIES)) or ():
            if isinstance(category, Category) and category.has_id(category_id):
                return CategoryRef(id=category_id, name=category.name)
        return None
