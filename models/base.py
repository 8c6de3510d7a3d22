"""
Base schemas and mixins for all models.

Wire format is camelCase; Python attributes are snake_case.
"""

from datetime import datetime
from typing import Callable, Generic, Iterable, Optional, TypeVar

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_serializer,
    field_validator,
)
from pydantic.alias_generators import to_camel

from models.identifiers import Confirmed, EntityId, Pending, coerce_entity_id


class BaseSchema(BaseModel):
    """
    Base for request payloads and forms.

    Features:
        - Auto-trim whitespace from strings
        - Validate on attribute assignment
        - Accept camelCase or snake_case input
    """
    model_config = ConfigDict(
        from_attributes=True,
        str_strip_whitespace=True,
        validate_assignment=True,
        alias_generator=to_camel,
        populate_by_name=True
    )


class RecordSchema(BaseModel):
    """
    Base for catalog records held in views.

    Records are frozen: every change produces a new object, so a view
    snapshot can never be mutated behind the engine's back.
    """
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore"
    )

    id: EntityId
    name: str
    description: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    # UI affordance only, never sent over the wire
    is_updating: bool = Field(default=False, exclude=True)

    @field_validator("id", mode="before")
    @classmethod
    def parse_id(cls, v):
        return coerce_entity_id(v)

    @field_validator("description", mode="before")
    @classmethod
    def description_default(cls, v):
        return "" if v is None else v

    @field_serializer("id")
    def serialize_id(self, v) -> str:
        return str(v)

    @property
    def is_pending(self) -> bool:
        return isinstance(self.id, Pending)

    @property
    def correlation_token(self) -> Optional[int]:
        if isinstance(self.id, Pending):
            return self.id.token
        return None

    def has_id(self, entity_id: str) -> bool:
        """True if this record is the confirmed entity with entity_id."""
        return isinstance(self.id, Confirmed) and self.id.value == entity_id


RecordT = TypeVar("RecordT", bound=RecordSchema)


class Page(BaseModel, Generic[RecordT]):
    """One page of a list view."""
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True
    )

    items: tuple[RecordT, ...] = ()
    total: int = 0
    page: int = 1
    page_size: int = 20

    @computed_field(alias="totalPages")
    @property
    def total_pages(self) -> int:
        return (self.total + self.page_size - 1) // self.page_size  # Ceiling division

    @classmethod
    def create(cls, items: Iterable, total: int, page: int, page_size: int):
        """Create a page from data."""
        return cls(items=tuple(items), total=total, page=page, page_size=page_size)

    def with_items(self, transform: Callable[[tuple], Iterable]) -> "Page":
        """Return a copy whose items are transform(items)."""
        return self.model_copy(update={"items": tuple(transform(self.items))})

    def find(self, entity_id: str) -> Optional[RecordT]:
        for item in self.items:
            if item.has_id(entity_id):
                return item
        return None
