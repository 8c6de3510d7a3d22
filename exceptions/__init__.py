"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ConflictError,
    DuplicateError,
    ExternalServiceError,

    # Catalog
    ProductNotFoundError,
    CategoryNotFoundError,
    InvalidCategoryError,
    NameConflictError,
    DependencyConflictError,

    # Transport
    TransportError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "DuplicateError",
    "ExternalServiceError",

    # Catalog
    "ProductNotFoundError",
    "CategoryNotFoundError",
    "InvalidCategoryError",
    "NameConflictError",
    "DependencyConflictError",

    # Transport
    "TransportError",
]
