"""
API route modules.

Each module defines routes for one catalog resource.
"""

from routes.products import router as products_router
from routes.categories import router as categories_router

__all__ = [
    "products_router",
    "categories_router",
]
