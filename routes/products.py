"""
Product API routes.

All routes are scoped to the owner named by the X-User-Id header.
Errors use the AppError envelope: {"error": {"code", "message", ...}}.
"""

from fastapi import APIRouter, Depends, Header, Query
from fastapi.responses import JSONResponse
from typing import Optional
import structlog

from config import settings
from models.base import Page
from models.product import Product, ProductCreate, ProductUpdate, SaleCreate
from models.views import ResourceKind
from services.catalog_service import CatalogService, get_catalog_service
from exceptions import AppError

logger = structlog.get_logger(__name__)

router = APIRouter()


# ===================
# EXCEPTION HANDLER
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    # Unexpected error
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


def owner_id(x_user_id: Optional[str] = Header(None, alias="X-User-Id")) -> str:
    """Owner the request acts for."""
    return x_user_id or settings.default_owner_id


def as_data(product: Product) -> dict:
    return {"success": True, "data": product.model_dump(by_alias=True, mode="json")}


# ===================
# ROUTES
# ===================

@router.get("")
async def list_products(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=500, alias="pageSize", description="Items per page"),
    owner: str = Depends(owner_id),
    service: CatalogService = Depends(get_catalog_service)
):
    """
    List products, newest first.

    Returns paginated list of products with their category.
    """
    try:
        products, total = service.list_products(owner, page=page, page_size=page_size)
        result = Page[Product].create(products, total=total, page=page, page_size=page_size)
        return {"success": True, "data": result.model_dump(by_alias=True, mode="json")}

    except Exception as e:
        return handle_error(e)


@router.get("/check-name")
async def check_product_name(
    name: str = Query(..., min_length=1, description="Candidate product name"),
    exclude_id: Optional[str] = Query(None, alias="excludeId", description="Product being edited"),
    owner: str = Depends(owner_id),
    service: CatalogService = Depends(get_catalog_service)
):
    """Check whether a product name is free for this owner."""
    try:
        is_unique = service.is_name_unique(owner, ResourceKind.PRODUCTS, name, exclude_id=exclude_id)
        return {
            "success": True,
            "isUnique": is_unique,
            "message": "Name is available" if is_unique else "A product with this name already exists"
        }

    except Exception as e:
        return handle_error(e)


@router.get("/{product_id}")
async def get_product(
    product_id: str,
    owner: str = Depends(owner_id),
    service: CatalogService = Depends(get_catalog_service)
):
    """
    Get a single product by ID.

    Raises:
        404: Product not found
    """
    try:
        return as_data(service.get_product(owner, product_id))

    except Exception as e:
        return handle_error(e)


@router.post("", status_code=201)
async def create_product(
    data: ProductCreate,
    owner: str = Depends(owner_id),
    service: CatalogService = Depends(get_catalog_service)
):
    """
    Create a new product.

    A SKU is generated when none is given.

    Raises:
        409: Name or SKU already exists
        422: Validation error or unknown category
    """
    try:
        return as_data(service.create_product(owner, data))

    except Exception as e:
        return handle_error(e)


@router.put("/{product_id}")
async def update_product(
    product_id: str,
    data: ProductUpdate,
    owner: str = Depends(owner_id),
    service: CatalogService = Depends(get_catalog_service)
):
    """
    Update an existing product.

    Only provided fields are updated.

    Raises:
        404: Product not found
        409: New name or SKU already exists
        422: Validation error
    """
    try:
        return as_data(service.update_product(owner, product_id, data))

    except Exception as e:
        return handle_error(e)


@router.delete("/{product_id}")
async def delete_product(
    product_id: str,
    owner: str = Depends(owner_id),
    service: CatalogService = Depends(get_catalog_service)
):
    """
    Delete a product.

    Raises:
        404: Product not found
        409: Product has sales history
    """
    try:
        service.delete_product(owner, product_id)
        return {"success": True}

    except Exception as e:
        return handle_error(e)


# ===================
# SALES
# ===================

@router.post("/{product_id}/sales", status_code=201)
async def record_sale(
    product_id: str,
    data: SaleCreate,
    owner: str = Depends(owner_id),
    service: CatalogService = Depends(get_catalog_service)
):
    """
    Record a sale of the product. Takes the quantity out of stock.

    Raises:
        404: Product not found
        422: Insufficient stock
    """
    try:
        return as_data(service.record_sale(owner, product_id, data))

    except Exception as e:
        return handle_error(e)
