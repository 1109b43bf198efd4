"""API routers for the image generation service."""

from imagegen.routes.admin import router as admin_router
from imagegen.routes.catalog import router as catalog_router
from imagegen.routes.jobs import router as jobs_router

__all__ = ["admin_router", "catalog_router", "jobs_router"]
