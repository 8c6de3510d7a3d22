"""
Business logic services.

Client side: the view store, optimistic mutation services, catalog
queries and name validation. Server side: the in-memory catalog behind
the development API.
"""

from services.view_store import ViewStore
from services.catalog_queries import CatalogQueries
from services.mutation_service import MutationResult, MutationService
from services.product_mutation_service import ProductMutationService
from services.category_mutation_service import CategoryMutationService
from services.name_validation_service import (
    NameValidationResult,
    NameValidationState,
    NameValidator,
    ValidationPhase,
)
from services.catalog_service import CatalogService, get_catalog_service

__all__ = [
    "ViewStore",
    "CatalogQueries",
    "MutationResult",
    "MutationService",
    "ProductMutationService",
    "CategoryMutationService",
    "NameValidationResult",
    "NameValidationState",
    "NameValidator",
    "ValidationPhase",
    "CatalogService",
    "get_catalog_service",
]
