"""SVG to PNG rasterization.

Rendering configuration is fixed per deployment and never taken from a
request. The render itself is synchronous; rasterize_async runs it in the
thread pool so the event loop stays free.
"""

from __future__ import annotations

import asyncio
import io
import logging
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError

from og_card.config import settings
from og_card.document import VectorDocument
from og_card.engine import EngineHandle
from og_card.errors import RenderFailure
from og_card.fonts import FontCache

logger = logging.getLogger(__name__)

PNG_MEDIA_TYPE = "image/png"


@dataclass(frozen=True)
class RenderOptions:
    """Configuration for rasterization.

    Attributes:
        background: Canvas fill behind the document, None for transparent
        dpi: Resolution used to resolve physical units (mm, in, pt)
        skip_system_fonts: Only use fonts handed over explicitly
        shape_rendering: resvg shape rendering mode
        text_rendering: resvg text rendering mode
        image_rendering: resvg image rendering mode
    """

    background: str | None = None
    dpi: int = 300
    skip_system_fonts: bool = True
    shape_rendering: str = "geometric_precision"
    text_rendering: str = "optimize_legibility"
    image_rendering: str = "optimize_quality"


@dataclass(frozen=True)
class RasterImage:
    """Encoded PNG plus its pixel size. Mode is RGBA, so transparency survives."""

    data: bytes
    width: int
    height: int
    media_type: str = PNG_MEDIA_TYPE


def options_for_deployment() -> RenderOptions:
    """Options for this deployment, from settings."""
    return RenderOptions(
        background=None if settings.raster_transparent else "white",
        dpi=settings.raster_dpi,
    )


def _svg_source(document: VectorDocument | str) -> str:
    if isinstance(document, VectorDocument):
        return document.to_svg()
    if not document.strip():
        raise RenderFailure("empty SVG document")
    return document


def rasterize(
    document: VectorDocument | str,
    engine: EngineHandle,
    fonts: FontCache | None = None,
    options: RenderOptions | None = None,
) -> RasterImage:
    """Render a vector document (or raw SVG markup) to PNG.

    Args:
        document: Composed card or SVG markup from convert mode
        engine: Ready raster engine handle
        fonts: Font cache whose ready fonts are handed to the engine
        options: Render configuration (deployment defaults if None)

    Raises:
        RenderFailure: malformed SVG or a backend fault; never retried
    """
    if options is None:
        options = options_for_deployment()

    svg = _svg_source(document)
    font_files = fonts.font_files() if fonts is not None else []
    try:
        png = engine.render(svg, options, font_files)
    except Exception as e:
        raise RenderFailure(str(e) or type(e).__name__) from e

    try:
        with Image.open(io.BytesIO(png)) as img:
            width, height = img.size
    except (UnidentifiedImageError, OSError) as e:
        raise RenderFailure(f"backend returned invalid PNG: {e}") from e

    logger.debug(f"Rasterized {width}x{height} PNG ({len(png)} bytes)")
    return RasterImage(data=png, width=width, height=height)


async def rasterize_async(
    document: VectorDocument | str,
    engine: EngineHandle,
    fonts: FontCache | None = None,
    options: RenderOptions | None = None,
) -> RasterImage:
    """Async wrapper for rasterize (runs in thread pool)."""
    return await asyncio.to_thread(rasterize, document, engine, fonts, options)
