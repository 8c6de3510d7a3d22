"""
In-memory catalog backing the development API.

Products and categories are scoped per owner. Names are unique per owner,
compared case-insensitively on the normalized form.
"""

import secrets
import string
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

import structlog

from exceptions import (
    CategoryNotFoundError,
    DependencyConflictError,
    DuplicateError,
    InvalidCategoryError,
    NameConflictError,
    ProductNotFoundError,
    ValidationError,
)
from models.category import Category, CategoryCreate, CategoryUpdate
from models.identifiers import Confirmed
from models.product import CategoryRef, Product, ProductCreate, ProductUpdate, SaleCreate
from models.views import ResourceKind
from utils.text_utils import name_key

logger = structlog.get_logger(__name__)

SKU_ALPHABET = string.ascii_uppercase + string.digits
SKU_ATTEMPTS = 5

# Product fields an update may set back to null
CLEARABLE_PRODUCT_FIELDS = {"purchase_price", "category_id"}


@dataclass
class _OwnerCatalog:
    products: dict[str, Product] = field(default_factory=dict)
    categories: dict[str, Category] = field(default_factory=dict)
    sales: dict[str, list[dict]] = field(default_factory=dict)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> Confirmed:
    return Confirmed(value=uuid.uuid4().hex)


class CatalogService:
    """
    Catalog business logic.

    Handles CRUD operations for products and categories.
    """

    def __init__(self):
        self._owners: dict[str, _OwnerCatalog] = {}

    def _catalog(self, owner_id: str) -> _OwnerCatalog:
        if owner_id not in self._owners:
            self._owners[owner_id] = _OwnerCatalog()
        return self._owners[owner_id]

    # ===================
    # NAME CHECKS
    # ===================

    def is_name_unique(
        self,
        owner_id: str,
        resource: ResourceKind,
        name: str,
        exclude_id: Optional[str] = None
    ) -> bool:
        """
        Check whether name is free for this owner.

        Args:
            owner_id: Tenant
            resource: Products or categories
            name: Candidate name (normalized and case-folded before comparison)
            exclude_id: Record to ignore (the one being edited)

        Returns:
            True if no other record of the resource uses the name
        """
        catalog = self._catalog(owner_id)
        records = catalog.products if resource is ResourceKind.PRODUCTS else catalog.categories
        key = name_key(name)
        return not any(
            name_key(record.name) == key
            for record_id, record in records.items()
            if record_id != exclude_id
        )

    # ===================
    # PRODUCTS
    # ===================

    def list_products(self, owner_id: str, page: int = 1, page_size: int = 20) -> tuple[list[Product], int]:
        """
        Get products, newest first.

        Returns:
            Tuple of (products on the page, total count)
        """
        catalog = self._catalog(owner_id)
        newest_first = list(reversed(catalog.products.values()))
        offset = (page - 1) * page_size
        products = [self._present_product(catalog, p) for p in newest_first[offset:offset + page_size]]

        logger.info("products_retrieved", owner_id=owner_id, count=len(products), total=len(newest_first))
        return products, len(newest_first)

    def get_product(self, owner_id: str, product_id: str) -> Product:
        """
        Raises:
            ProductNotFoundError: If product doesn't exist for this owner
        """
        catalog = self._catalog(owner_id)
        product = catalog.products.get(product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        return self._present_product(catalog, product)

    def create_product(self, owner_id: str, data: ProductCreate) -> Product:
        """
        Create a product.

        Raises:
            NameConflictError: If the name is taken
            DuplicateError: If the given SKU is taken
            InvalidCategoryError: If the category doesn't exist
        """
        logger.info("creating_product", owner_id=owner_id, name=data.name)
        catalog = self._catalog(owner_id)

        if not self.is_name_unique(owner_id, ResourceKind.PRODUCTS, data.name):
            raise NameConflictError("Product", data.name)
        self._check_category(catalog, data.category_id)

        sku = (data.sku or "").strip()
        if sku:
            self._check_sku(catalog, sku)
        else:
            sku = self._generate_sku(catalog)

        now = _now()
        product = Product(
            id=_new_id(),
            name=data.name,
            description=data.description or "",
            sku=sku,
            selling_price=data.selling_price,
            purchase_price=data.purchase_price,
            stock=data.stock or 0,
            reorder_point=data.reorder_point or 0,
            unit=data.unit,
            category_id=data.category_id,
            created_at=now,
            updated_at=now
        )
        catalog.products[product.id.value] = product

        logger.info("product_created", owner_id=owner_id, product_id=product.id.value, sku=sku)
        return self._present_product(catalog, product)

    def update_product(self, owner_id: str, product_id: str, data: ProductUpdate) -> Product:
        """
        Update provided fields of a product.

        Raises:
            ProductNotFoundError: If product doesn't exist
            NameConflictError: If the new name is taken
        """
        logger.info("updating_product", owner_id=owner_id, product_id=product_id)
        catalog = self._catalog(owner_id)
        existing = catalog.products.get(product_id)
        if existing is None:
            raise ProductNotFoundError(product_id)

        changes = {
            key: value
            for key, value in data.model_dump(exclude_unset=True).items()
            if value is not None or key in CLEARABLE_PRODUCT_FIELDS
        }
        if "name" in changes and not self.is_name_unique(
            owner_id, ResourceKind.PRODUCTS, changes["name"], exclude_id=product_id
        ):
            raise NameConflictError("Product", changes["name"])
        if changes.get("sku") and changes["sku"] != existing.sku:
            self._check_sku(catalog, changes["sku"])
        if "category_id" in changes:
            self._check_category(catalog, changes["category_id"])

        if not changes:
            # Nothing to update, return existing
            return self._present_product(catalog, existing)

        product = existing.model_copy(update={**changes, "updated_at": _now()})
        catalog.products[product_id] = product

        logger.info("product_updated", owner_id=owner_id, product_id=product_id, fields=sorted(changes))
        return self._present_product(catalog, product)

    def delete_product(self, owner_id: str, product_id: str) -> None:
        """
        Delete a product.

        Raises:
            ProductNotFoundError: If product doesn't exist
            DependencyConflictError: If the product has sales history
        """
        logger.info("deleting_product", owner_id=owner_id, product_id=product_id)
        catalog = self._catalog(owner_id)
        if product_id not in catalog.products:
            raise ProductNotFoundError(product_id)

        sales = catalog.sales.get(product_id, [])
        if sales:
            raise DependencyConflictError(
                message="Cannot delete product with existing sales history",
                code="PRODUCT_HAS_SALES",
                details={"productId": product_id, "sales": len(sales)}
            )

        del catalog.products[product_id]
        logger.info("product_deleted", owner_id=owner_id, product_id=product_id)

    def record_sale(self, owner_id: str, product_id: str, data: SaleCreate) -> Product:
        """
        Record a sale and take it out of stock.

        Raises:
            ProductNotFoundError: If product doesn't exist
            ValidationError: If stock is insufficient
        """
        catalog = self._catalog(owner_id)
        product = catalog.products.get(product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        if data.quantity > product.stock:
            raise ValidationError(
                message="Insufficient stock",
                code="INSUFFICIENT_STOCK",
                details={"stock": product.stock, "requested": data.quantity}
            )

        catalog.sales.setdefault(product_id, []).append({
            "quantity": data.quantity,
            "sold_at": data.sold_at or _now(),
        })
        product = product.model_copy(update={"stock": product.stock - data.quantity, "updated_at": _now()})
        catalog.products[product_id] = product

        logger.info("sale_recorded", owner_id=owner_id, product_id=product_id, quantity=data.quantity)
        return self._present_product(catalog, product)

    def _present_product(self, catalog: _OwnerCatalog, product: Product) -> Product:
        category = catalog.categories.get(product.category_id) if product.category_id else None
        ref = CategoryRef(id=product.category_id, name=category.name) if category else None
        return product.model_copy(update={"category": ref})

    def _check_category(self, catalog: _OwnerCatalog, category_id: Optional[str]) -> None:
        if category_id and category_id not in catalog.categories:
            raise InvalidCategoryError(category_id)

    def _check_sku(self, catalog: _OwnerCatalog, sku: str) -> None:
        if any(p.sku == sku for p in catalog.products.values()):
            raise DuplicateError(
                resource="Product",
                field="sku",
                value=sku,
                message="SKU must be unique for this user."
            )

    def _generate_sku(self, catalog: _OwnerCatalog) -> str:
        taken = {p.sku for p in catalog.products.values()}
        for _ in range(SKU_ATTEMPTS):
            sku = "SKU-" + "".join(secrets.choice(SKU_ALPHABET) for _ in range(8))
            if sku not in taken:
                return sku
        raise DuplicateError(
            resource="Product",
            field="sku",
            value=sku,
            message="Failed to generate unique SKU"
        )

    # ===================
    # CATEGORIES
    # ===================

    def list_categories(self, owner_id: str, page: int = 1, page_size: int = 20) -> tuple[list[Category], int]:
        """
        Get categories ordered by name.

        Returns:
            Tuple of (categories on the page, total count)
        """
        catalog = self._catalog(owner_id)
        ordered = sorted(catalog.categories.values(), key=lambda c: name_key(c.name))
        offset = (page - 1) * page_size
        categories = [self._present_category(catalog, c) for c in ordered[offset:offset + page_size]]

        logger.info("categories_retrieved", owner_id=owner_id, count=len(categories), total=len(ordered))
        return categories, len(ordered)

    def get_category(self, owner_id: str, category_id: str) -> Category:
        """
        Raises:
            CategoryNotFoundError: If category doesn't exist for this owner
        """
        catalog = self._catalog(owner_id)
        category = catalog.categories.get(category_id)
        if category is None:
            raise CategoryNotFoundError(category_id)
        return self._present_category(catalog, category)

    def create_category(self, owner_id: str, data: CategoryCreate) -> Category:
        """
        Raises:
            NameConflictError: If the name is taken
        """
        logger.info("creating_category", owner_id=owner_id, name=data.name)
        catalog = self._catalog(owner_id)
        if not self.is_name_unique(owner_id, ResourceKind.CATEGORIES, data.name):
            raise NameConflictError("Category", data.name)

        now = _now()
        category = Category(
            id=_new_id(),
            name=data.name,
            description=data.description or "",
            created_at=now,
            updated_at=now
        )
        catalog.categories[category.id.value] = category

        logger.info("category_created", owner_id=owner_id, category_id=category.id.value)
        return self._present_category(catalog, category)

    def update_category(self, owner_id: str, category_id: str, data: CategoryUpdate) -> Category:
        """
        Raises:
            CategoryNotFoundError: If category doesn't exist
            NameConflictError: If the new name is taken
        """
        logger.info("updating_category", owner_id=owner_id, category_id=category_id)
        catalog = self._catalog(owner_id)
        existing = catalog.categories.get(category_id)
        if existing is None:
            raise CategoryNotFoundError(category_id)

        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if "name" in changes and not self.is_name_unique(
            owner_id, ResourceKind.CATEGORIES, changes["name"], exclude_id=category_id
        ):
            raise NameConflictError("Category", changes["name"])
        if not changes:
            return self._present_category(catalog, existing)

        category = existing.model_copy(update={**changes, "updated_at": _now()})
        catalog.categories[category_id] = category

        logger.info("category_updated", owner_id=owner_id, category_id=category_id, fields=sorted(changes))
        return self._present_category(catalog, category)

    def delete_category(self, owner_id: str, category_id: str) -> None:
        """
        Raises:
            CategoryNotFoundError: If category doesn't exist
            DependencyConflictError: If products are still assigned to it
        """
        logger.info("deleting_category", owner_id=owner_id, category_id=category_id)
        catalog = self._catalog(owner_id)
        if category_id not in catalog.categories:
            raise CategoryNotFoundError(category_id)

        assigned = self._product_count(catalog, category_id)
        if assigned:
            raise DependencyConflictError(
                message=f"Cannot delete category with {assigned} assigned product(s)",
                code="CATEGORY_HAS_PRODUCTS",
                details={"categoryId": category_id, "products": assigned}
            )

        del catalog.categories[category_id]
        logger.info("category_deleted", owner_id=owner_id, category_id=category_id)

    def _present_category(self, catalog: _OwnerCatalog, category: Category) -> Category:
        return category.model_copy(update={"product_count": self._product_count(catalog, category.id.value)})

    @staticmethod
    def _product_count(catalog: _OwnerCatalog, category_id: str) -> int:
        return sum(1 for p in catalog.products.values() if p.category_id == category_id)


# Singleton instance
_catalog_service: Optional[CatalogService] = None


def get_catalog_service() -> CatalogService:
    """Get or create CatalogService instance."""
    global _catalog_service
    if _catalog_service is None:
        _catalog_service = CatalogService()
    return _catalog_service
