"""
Typed view keys.

A key is resource kind x view kind x optional entity id. Only detail
views carry an id.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional


class ResourceKind(str, Enum):
    """Catalog resources with cached views."""
    PRODUCTS = "products"
    CATEGORIES = "categories"


class ViewKind(str, Enum):
    """
    DETAIL: single entity by id.
    LIST: server page for the default query.
    SESSION: entities touched in the current creation workflow, client-only.
    """
    DETAIL = "detail"
    LIST = "list"
    SESSION = "session"


@dataclass(frozen=True)
class ViewKey:
    resource: ResourceKind
    view: ViewKind
    entity_id: Optional[str] = None

    def __post_init__(self):
        if self.view is ViewKind.DETAIL and not self.entity_id:
            raise ValueError("detail view key requires an entity id")
        if self.view is not ViewKind.DETAIL and self.entity_id is not None:
            raise ValueError(f"{self.view.value} view key takes no entity id")

    @classmethod
    def detail(cls, resource: ResourceKind, entity_id: str) -> "ViewKey":
        return cls(resource, ViewKind.DETAIL, entity_id)

    @classmethod
    def list(cls, resource: ResourceKind) -> "ViewKey":
        return cls(resource, ViewKind.LIST)

    @classmethod
    def session(cls, resource: ResourceKind) -> "ViewKey":
        return cls(resource, ViewKind.SESSION)

    def __str__(self) -> str:
        parts = [self.resource.value, self.view.value]
        if self.entity_id:
            parts.append(self.entity_id)
        return ":".join(parts)


KeyPredicate = Callable[[ViewKey], bool]


def match_views(
    resource: ResourceKind,
    *views: ViewKind,
    entity_id: Optional[str] = None
) -> KeyPredicate:
    """
    Build a key predicate.

    Args:
        resource: Resource the keys must belong to
        views: View kinds to match (all kinds when empty)
        entity_id: Restrict detail keys to this id

    Returns:
        Callable returning True for matching keys
    """
    kinds = frozenset(views)

    def predicate(key: ViewKey) -> bool:
        if key.resource is not resource:
            return False
        if kinds and key.view not in kinds:
            return False
        if entity_id is not None and key.view is ViewKind.DETAIL:
            return key.entity_id == entity_id
        return True

    return predicate
