"""
Category API routes.

Scoped to the owner named by the X-User-Id header. Each category carries
the number of products assigned to it.
"""

from fastapi import APIRouter, Depends, Header, Query
from fastapi.responses import JSONResponse
from typing import Optional
import structlog

from config import settings
from models.base import Page
from models.category import Category, CategoryCreate, CategoryUpdate
from models.views import ResourceKind
from services.catalog_service import CatalogService, get_catalog_service
from exceptions import AppError

logger = structlog.get_logger(__name__)

router = APIRouter()


def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(status_code=e.status_code, content=e.to_dict())
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={"error": {"code": "INTERNAL_ERROR", "message": "An unexpected error occurred"}}
    )


def owner_id(x_user_id: Optional[str] = Header(None, alias="X-User-Id")) -> str:
    return x_user_id or settings.default_owner_id


def as_data(category: Category) -> dict:
    return {"success": True, "data": category.model_dump(by_alias=True, mode="json")}


@router.get("")
async def list_categories(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=500, alias="pageSize"),
    owner: str = Depends(owner_id),
    service: CatalogService = Depends(get_catalog_service)
):
    """List categories ordered by name."""
    try:
        categories, total = service.list_categories(owner, page=page, page_size=page_size)
        result = Page[Category].create(categories, total=total, page=page, page_size=page_size)
        return {"success": True, "data": result.model_dump(by_alias=True, mode="json")}

    except Exception as e:
        return handle_error(e)


@router.get("/check-name")
async def check_category_name(
    name: str = Query(..., min_length=1),
    exclude_id: Optional[str] = Query(None, alias="excludeId"),
    owner: str = Depends(owner_id),
    service: CatalogService = Depends(get_catalog_service)
):
    """Check whether a category name is free for this owner."""
    try:
        is_unique = service.is_name_unique(owner, ResourceKind.CATEGORIES, name, exclude_id=exclude_id)
        return {
            "success": True,
            "isUnique": is_unique,
            "message": "Name is available" if is_unique else "A category with this name already exists"
        }

    except Exception as e:
        return handle_error(e)


@router.get("/{category_id}")
async def get_category(
    category_id: str,
    owner: str = Depends(owner_id),
    service: CatalogService = Depends(get_catalog_service)
):
    try:
        return as_data(service.get_category(owner, category_id))

    except Exception as e:
        return handle_error(e)


@router.post("", status_code=201)
async def create_category(
    data: CategoryCreate,
    owner: str = Depends(owner_id),
    service: CatalogService = Depends(get_catalog_service)
):
    """
    Create a new category.

    Raises:
        409: Name already exists
    """
    try:
        return as_data(service.create_category(owner, data))

    except Exception as e:
        return handle_error(e)


@router.put("/{category_id}")
async def update_category(
    category_id: str,
    data: CategoryUpdate,
    owner: str = Depends(owner_id),
    service: CatalogService = Depends(get_catalog_service)
):
    """
    Update a category.

    Raises:
        404: Category not found
        409: New name already exists
    """
    try:
        return as_data(service.update_category(owner, category_id, data))

    except Exception as e:
        return handle_error(e)


@router.delete("/{category_id}")
async def delete_category(
    category_id: str,
    owner: str = Depends(owner_id),
    service: CatalogService = Depends(get_catalog_service)
):
    """
    Delete a category.

    Raises:
        404: Category not found
        409: Products are still assigned to it
    """
    try:
        service.delete_category(owner, category_id)
        return {"success": True}

    except Exception as e:
        return handle_error(e)
