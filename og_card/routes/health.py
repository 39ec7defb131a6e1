"""Health and version endpoints."""

import os
from typing import Any

from fastapi import APIRouter

from og_card import __version__
from og_card.config import settings

from .og_image import Service

router = APIRouter()


@router.get("/health")
async def health(service: Service) -> dict[str, Any]:
    """Liveness plus warm-up state. Reading it never starts a font load or engine init."""
    return {
        "status": "ok",
        "engine": service.engine.state.value,
        "fonts": {key: asset.state.value for key, asset in service.fonts.assets.items()},
    }


@router.get("/version")
async def version() -> dict[str, str | None]:
    return {
        "version": __version__,
        "commit": os.environ.get("OG_CARD_COMMIT"),
        "composer": settings.composer_strategy,
        "background": settings.background,
    }
