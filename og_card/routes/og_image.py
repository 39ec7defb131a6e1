"""OG image endpoints.

GET with a title generates a card (PNG, or SVG with format=svg). Without a
title, GET converts an SVG given by ?url= or ?svg=, and POST converts the
request body.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response

from og_card.service import SVG_MEDIA_TYPE, CardResult, CardService, get_card_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["og-image"])

PNG_CACHE_CONTROL = "public, max-age=3600"
SVG_CACHE_CONTROL = "public, max-age=31536000, immutable"

Service = Annotated[CardService, Depends(get_card_service)]


def _origin(request: Request) -> str:
    return str(request.base_url).rstrip("/")


def image_response(result: CardResult) -> Response:
    """Wrap a rendered card with its media type and cache policy."""
    cache_control = SVG_CACHE_CONTROL if result.media_type == SVG_MEDIA_TYPE else PNG_CACHE_CONTROL
    return Response(
        content=result.content,
        media_type=result.media_type,
        headers={"Cache-Control": cache_control},
    )


@router.get("/")
@router.get("/og-image")
async def get_og_image(
    request: Request,
    service: Service,
    title: str | None = None,
    description: str | None = None,
    output_format: Annotated[str | None, Query(alias="format")] = None,
    url: str | None = None,
    svg: str | None = None,
) -> Response:
    """Generate a card from title/description, or convert ?url= / ?svg= to PNG."""
    if title:
        result = await service.generate(
            title, description or "", output_format or "png", origin=_origin(request)
        )
    else:
        result = await service.convert(url=url, svg=svg, origin=_origin(request))
    return image_response(result)


@router.post("/")
@router.post("/og-image")
async def post_og_image(
    request: Request,
    service: Service,
    url: str | None = None,
    svg: str | None = None,
) -> Response:
    """Convert a POSTed SVG body (or ?url= / ?svg=) to PNG."""
    body = await request.body()
    logger.debug(f"Converting POSTed SVG ({len(body)} bytes)")
    result = await service.convert(body=body, url=url, svg=svg, origin=_origin(request))
    return image_response(result)
