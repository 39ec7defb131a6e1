"""Route modules for the OG card API."""

from fastapi import APIRouter

from .health import router as health_router
from .og_image import router as og_image_router


def create_api_router() -> APIRouter:
    """Create aggregated router with all API routes."""
    api_router = APIRouter()
    api_router.include_router(health_router)
    api_router.include_router(og_image_router)
    return api_router


__all__ = ["create_api_router"]
