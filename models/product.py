"""
Product schemas: the record held in views, the API payloads, and the
raw form the user edits.
"""

import math
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from models.base import BaseSchema, RecordSchema
from utils.text_utils import normalize_name

# Form value meaning "no category"
UNCATEGORIZED = "uncategorized"

SELLING_UNITS = ("piece", "kg", "g", "l", "ml", "m", "cm", "pack", "box")


class CategoryRef(BaseModel):
    """Category denormalized onto a product."""
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore"
    )

    id: str
    name: str


class Product(RecordSchema):
    """
    Product as shown in list, detail and session views.

    `category` and `sku` may be computed by the server; a placeholder
    carries its best guess until reconciled.
    """

    sku: str = ""
    selling_price: float
    purchase_price: Optional[float] = None
    stock: int = 0
    reorder_point: int = 0
    unit: str
    category_id: Optional[str] = None
    category: Optional[CategoryRef] = None


class ProductCreate(BaseSchema):
    """
    Create a new product.

    Required: name, selling_price, unit
    Optional: everything else (sku is generated when blank)
    """

    name: str = Field(..., min_length=1, max_length=255, description="Product name, unique per owner")
    description: Optional[str] = Field(None, description="Free text description")
    sku: Optional[str] = Field(None, max_length=64, description="Stock keeping unit")
    selling_price: float = Field(..., gt=0, description="Selling price")
    purchase_price: Optional[float] = Field(None, gt=0, description="Purchase price")
    stock: Optional[int] = Field(None, ge=0, description="Units in stock")
    reorder_point: Optional[int] = Field(None, ge=0, description="Stock level that triggers a reorder")
    unit: str = Field(..., min_length=1, description="Selling unit")
    category_id: Optional[str] = Field(None, description="Category id")

    @field_validator("name")
    @classmethod
    def name_normalized(cls, v: str) -> str:
        return normalize_name(v)


class ProductUpdate(BaseSchema):
    """
    Update existing product.

    All fields optional - only provided fields are updated.
    """

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    sku: Optional[str] = Field(None, max_length=64)
    selling_price: Optional[float] = Field(None, gt=0)
    purchase_price: Optional[float] = Field(None, gt=0)
    stock: Optional[int] = Field(None, ge=0)
    reorder_point: Optional[int] = Field(None, ge=0)
    unit: Optional[str] = Field(None, min_length=1)
    category_id: Optional[str] = None

    @field_validator("name")
    @classmethod
    def name_normalized(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return normalize_name(v)


class SaleCreate(BaseSchema):
    """Record a sale against a product."""

    quantity: int = Field(..., ge=1)
    sold_at: Optional[datetime] = None


def _parse_price(value: str) -> float:
    price = float(value)
    if not math.isfinite(price):
        raise ValueError("must be a finite number")
    return price


class ProductForm(BaseSchema):
    """
    Raw product form input.

    Numbers arrive as strings, exactly as typed. Validation guarantees
    they parse, so to_create()/to_update() never fail.
    """

    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    sku: Optional[str] = None
    selling_price: str = Field(..., min_length=1)
    purchase_price: Optional[str] = None
    stock: Optional[str] = None
    reorder_point: Optional[str] = None
    unit: str = Field(..., min_length=1)
    category_id: Optional[str] = None

    @field_validator("name")
    @classmethod
    def name_normalized(cls, v: str) -> str:
        return normalize_name(v)

    @field_validator("purchase_price", "stock", "reorder_point", "sku", mode="before")
    @classmethod
    def blank_is_missing(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("category_id", mode="before")
    @classmethod
    def uncategorized_is_missing(cls, v):
        if v is None or (isinstance(v, str) and v.strip() in ("", UNCATEGORIZED)):
            return None
        return v

    @field_validator("selling_price", "purchase_price")
    @classmethod
    def price_is_positive_number(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        try:
            price = _parse_price(v)
        except ValueError:
            raise ValueError("must be a number")
        if price <= 0:
            raise ValueError("must be greater than 0")
        return v

    @field_validator("stock", "reorder_point")
    @classmethod
    def count_is_whole_number(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        try:
            count = int(v)
        except ValueError:
            raise ValueError("must be a whole number")
        if count < 0:
            raise ValueError("must not be negative")
        return v

    def _numbers(self) -> dict:
        return {
            "selling_price": _parse_price(self.selling_price),
            "purchase_price": _parse_price(self.purchase_price) if self.purchase_price else None,
            "stock": int(self.stock) if self.stock else None,
            "reorder_point": int(self.reorder_point) if self.reorder_point else None,
        }

    def to_create(self) -> ProductCreate:
        return ProductCreate(
            name=self.name,
            description=self.description,
            sku=self.sku,
            unit=self.unit,
            category_id=self.category_id,
            **self._numbers()
        )

    def to_update(self) -> ProductUpdate:
        return ProductUpdate(
            name=self.name,
            description=self.description,
            sku=self.sku,
            unit=self.unit,
            category_id=self.category_id,
            **self._numbers()
        )
