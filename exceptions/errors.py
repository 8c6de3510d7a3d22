"""
Custom exception classes for the application.

Raised by the catalog API and the transport, caught at the mutation and
validation boundaries.
"""

from typing import Optional, Any
from datetime import datetime, timezone


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "PRODUCT_NOT_FOUND")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class ConflictError(AppError):
    """Conflict with existing resource (409)."""

    def __init__(
        self,
        message: str,
        code: str = "CONFLICT",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details
        )


class DuplicateError(ConflictError):
    """Duplicate resource (409)."""

    def __init__(
        self,
        resource: str,
        field: str,
        value: str,
        message: Optional[str] = None
    ):
        super().__init__(
            code=f"{resource.upper()}_{field.upper()}_EXISTS",
            message=message or f"{resource} with this {field} already exists",
            details={field: value}
        )


class ExternalServiceError(AppError):
    """External service failure (503)."""

    def __init__(
        self,
        service: str,
        message: str,
        details: Optional[dict] = None,
        status_code: int = 503
    ):
        super().__init__(
            code=f"{service.upper()}_ERROR",
            message=message,
            status_code=status_code,
            details={"service": service, **(details or {})}
        )


# ===================
# CATALOG ERRORS
# ===================

class ProductNotFoundError(NotFoundError):
    """Product not found."""

    def __init__(self, product_id: str):
        super().__init__(
            resource="Product",
            identifier=product_id,
            code="PRODUCT_NOT_FOUND"
        )


class CategoryNotFoundError(NotFoundError):
    """Category not found."""

    def __init__(self, category_id: str):
        super().__init__(
            resource="Category",
            identifier=category_id,
            code="CATEGORY_NOT_FOUND"
        )


class InvalidCategoryError(ValidationError):
    """Product references a category the owner does not have."""

    def __init__(self, category_id: str):
        super().__init__(
            code="PRODUCT_INVALID_CATEGORY",
            message="Selected category does not exist",
            details={"categoryId": category_id}
        )


class NameConflictError(DuplicateError):
    """Name already used by another record of the same owner."""

    def __init__(self, resource: str, name: str, message: Optional[str] = None):
        super().__init__(
            resource=resource,
            field="name",
            value=name,
            message=message or f"A {resource.lower()} with this name already exists"
        )


class DependencyConflictError(ConflictError):
    """
    Server refused a change because related records depend on the entity.

    Recoverable at the business level: the dependents must be resolved
    first, then the same request can be retried.
    """

    def __init__(
        self,
        message: str,
        code: str = "HAS_DEPENDENTS",
        details: Optional[dict] = None
    ):
        super().__init__(
            message=message,
            code=code,
            details=details
        )


class TransportError(ExternalServiceError):
    """
    Catalog API request failed (network error or non-2xx response).

    Attributes:
        server_message: Reason supplied by the server, if it sent one
    """

    def __init__(
        self,
        message: str,
        status_code: int = 503,
        details: Optional[dict] = None,
        server_message: Optional[str] = None
    ):
        self.server_message = server_message
        super().__init__(
            service="catalog_api",
            message=message,
            details=details,
            status_code=status_code
        )
