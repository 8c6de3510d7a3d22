"""
Category schemas.
"""

from typing import Optional

from pydantic import Field, field_validator

from models.base import BaseSchema, RecordSchema
from utils.text_utils import normalize_name


class Category(RecordSchema):
    """Category as shown in views. product_count is computed by the server."""

    product_count: int = 0


class CategoryCreate(BaseSchema):
    """Create a new category."""

    name: str = Field(..., min_length=1, max_length=255, description="Category name, unique per owner")
    description: Optional[str] = Field(None, description="Free text description")

    @field_validator("name")
    @classmethod
    def name_normalized(cls, v: str) -> str:
        return normalize_name(v)


class CategoryUpdate(BaseSchema):
    """Update a category. Only provided fields change."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None

    @field_validator("name")
    @classmethod
    def name_normalized(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return normalize_name(v)


class CategoryForm(BaseSchema):
    """Raw category form input, used for both creation and editing."""

    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None

    @field_validator("name")
    @classmethod
    def name_normalized(cls, v: str) -> str:
        return normalize_name(v)

    def to_create(self) -> CategoryCreate:
        return CategoryCreate(name=self.name, description=self.description)

    def to_update(self) -> CategoryUpdate:
        return CategoryUpdate(name=self.name, description=self.description)
