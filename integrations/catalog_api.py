"""
Catalog API transport.

Async HTTP client for the catalog endpoints. Non-2xx responses and network
failures are raised as AppError subclasses so callers handle one family
of errors.
"""

from typing import Any, Optional, Protocol

import httpx
import structlog

from config import settings
from exceptions import (
    AppError,
    ConflictError,
    DependencyConflictError,
    NameConflictError,
    TransportError,
)

logger = structlog.get_logger(__name__)


class CatalogTransport(Protocol):
    """What the mutation services and queries need from the backend."""

    async def create(self, resource: str, payload: dict) -> dict:
        ...

    async def update(self, resource: str, entity_id: str, payload: dict) -> dict:
        ...

    async def delete(self, resource: str, entity_id: str) -> None:
        ...

    async def fetch_list(self, resource: str, page: int, page_size: int) -> dict:
        ...

    async def fetch_detail(self, resource: str, entity_id: str) -> dict:
        ...

    async def check_name(self, resource: str, name: str, exclude_id: Optional[str] = None) -> bool:
        ...


def _resource_label(resource: str) -> str:
    """'categories' -> 'Category', 'products' -> 'Product'."""
    singular = resource[:-3] + "y" if resource.endswith("ies") else resource.rstrip("s")
    return singular.capitalize()


def error_from_response(resource: str, response: httpx.Response) -> AppError:
    """
    Convert a non-2xx response into an AppError.

    Accepts both error envelopes the API may send:
        {"error": {"code": ..., "message": ..., "details": ...}}
        {"error": "message", "details": ...}
    """
    try:
        body = response.json()
    except ValueError:
        body = {}

    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        code = error.get("code")
        message = error.get("message")
        details = error.get("details") or {}
    else:
        code = None
        message = error if isinstance(error, str) else None
        details = body.get("details") if isinstance(body, dict) else None

    if not isinstance(details, dict):
        details = {"details": details} if details else {}

    if response.status_code == 409 and code and code.endswith("_NAME_EXISTS"):
        return NameConflictError(_resource_label(resource), details.get("name", ""), message=message)
    if response.status_code == 409 and code and code.endswith("_EXISTS"):
        return ConflictError(message=message or "Resource already exists", code=code, details=details)
    if response.status_code == 409:
        return DependencyConflictError(
            message=message or "Request conflicts with related records",
            code=code or "HAS_DEPENDENTS",
            details=details
        )
    return TransportError(
        message=message or f"Catalog API returned {response.status_code}",
        status_code=response.status_code,
        details={"code": code, **details} if code else details,
        server_message=message
    )


class HttpCatalogTransport:
    """
    Catalog transport over HTTP.

    Usage:
        async with HttpCatalogTransport() as transport:
            product = await transport.create("products", {"name": "Blue Mug", ...})
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        owner_id: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        headers = {"X-User-Id": owner_id} if owner_id else {}
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            base_url=(base_url or settings.catalog_api_url).rstrip("/"),
            timeout=timeout or settings.catalog_api_timeout_seconds,
            headers=headers
        )
        if client is not None and owner_id:
            self.client.headers.update(headers)

    async def __aenter__(self) -> "HttpCatalogTransport":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    # ===================
    # REQUESTS
    # ===================

    async def _request(self, resource: str, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self.client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.warning(
                "catalog_request_failed",
                method=method,
                path=path,
                error=str(e),
                error_type=type(e).__name__
            )
            raise TransportError(f"Could not reach catalog API: {e}") from e

        if response.is_error:
            error = error_from_response(resource, response)
            logger.info(
                "catalog_request_rejected",
                method=method,
                path=path,
                status=response.status_code,
                code=error.code
            )
            raise error

        try:
            return response.json()
        except ValueError as e:
            raise TransportError("Catalog API returned malformed JSON") from e

    @staticmethod
    def _data(body: Any) -> Any:
        if not isinstance(body, dict) or "data" not in body:
            raise TransportError("Catalog API response has no data")
        return body["data"]

    async def create(self, resource: str, payload: dict) -> dict:
        body = await self._request(resource, "POST", f"/api/{resource}", json=payload)
        return self._data(body)

    async def update(self, resource: str, entity_id: str, payload: dict) -> dict:
        body = await self._request(resource, "PUT", f"/api/{resource}/{entity_id}", json=payload)
        return self._data(body)

    async def delete(self, resource: str, entity_id: str) -> None:
        await self._request(resource, "DELETE", f"/api/{resource}/{entity_id}")

    async def fetch_list(self, resource: str, page: int = 1, page_size: Optional[int] = None) -> dict:
        params = {"page": page, "pageSize": page_size or settings.list_page_size}
        body = await self._request(resource, "GET", f"/api/{resource}", params=params)
        return self._data(body)

    async def fetch_detail(self, resource: str, entity_id: str) -> dict:
        body = await self._request(resource, "GET", f"/api/{resource}/{entity_id}")
        return self._data(body)

    async def check_name(self, resource: str, name: str, exclude_id: Optional[str] = None) -> bool:
        params = {"name": name}
        if exclude_id:
            params["excludeId"] = exclude_id
        body = await self._request(resource, "GET", f"/api/{resource}/check-name", params=params)
        if not isinstance(body, dict) or "isUnique" not in body:
            raise TransportError("Catalog API response has no isUnique")
        return bool(body["isUnique"])
