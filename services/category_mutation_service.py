"""
Optimistic category mutations.
"""

from typing import Any

from models.category import Category, CategoryCreate, CategoryUpdate
from models.identifiers import Pending
from models.views import ResourceKind
from services.mutation_service import MutationService


class CategoryMutationService(MutationService[Category]):
    """Category create/update/delete with optimistic views."""

    resource = ResourceKind.CATEGORIES
    model = Category
    label = "Category"

    def build_placeholder(self, payload: CategoryCreate, token: int) -> Category:
        # product_count is server-computed; a new category has none
        return Category(
            id=Pending(token=token),
            name=payload.name,
            description=payload.description or "",
            product_count=0,
            **self.placeholder_timestamps()
        )

    def optimistic_changes(self, payload: CategoryUpdate) -> dict[str, Any]:
        return payload.model_dump(exclude_none=True)
