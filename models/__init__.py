"""
Pydantic models for validation and serialization.
"""

from models.identifiers import (
    Pending,
    Confirmed,
    EntityId,
    CorrelationClock,
)
from models.base import (
    BaseSchema,
    RecordSchema,
    Page,
)
from models.views import (
    ResourceKind,
    ViewKind,
    ViewKey,
    match_views,
)
from models.product import (
    CategoryRef,
    Product,
    ProductCreate,
    ProductUpdate,
    ProductForm,
    SaleCreate,
)
from models.category import (
    Category,
    CategoryCreate,
    CategoryUpdate,
    CategoryForm,
)

__all__ = [
    # Identifiers
    "Pending",
    "Confirmed",
    "EntityId",
    "CorrelationClock",

    # Base
    "BaseSchema",
    "RecordSchema",
    "Page",

    # Views
    "ResourceKind",
    "ViewKind",
    "ViewKey",
    "match_views",

    # Product
    "CategoryRef",
    "Product",
    "ProductCreate",
    "ProductUpdate",
    "ProductForm",
    "SaleCreate",

    # Category
    "Category",
    "CategoryCreate",
    "CategoryUpdate",
    "CategoryForm",
]
