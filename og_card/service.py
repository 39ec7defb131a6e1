"""Card generation and SVG conversion.

Generate mode: fonts -> wrap -> compose -> (engine -> rasterize).
Convert mode: resolve one SVG source -> (fonts, engine) -> rasterize.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal

import httpx

from og_card.config import settings
from og_card.document import (
    ComposerStrategy,
    LineStrategy,
    OutlineStrategy,
    TextNodeStrategy,
    VectorDocument,
    compose,
)
from og_card.engine import RasterEngine
from og_card.errors import MissingInput
from og_card.fetch import Resolver, build_client, fetch_text
from og_card.fonts import FontCache
from og_card.layout import LayoutSpec, WrappedText, wrap_text
from og_card.measure import AverageCharWidthMeasurer, GlyphMeasurer, TextMeasurer
from og_card.rendering import PNG_MEDIA_TYPE, RenderOptions, rasterize_async

logger = logging.getLogger(__name__)

SVG_MEDIA_TYPE = "image/svg+xml"

OutputFormat = Literal["png", "svg"]
WrapStrategy = Literal["measured", "approximate"]


@dataclass(frozen=True)
class CardResult:
    """Encoded image and its media type."""

    content: bytes
    media_type: str


class CardService:
    """Owns the process-wide font cache and raster engine."""

    def __init__(
        self,
        fonts: FontCache | None = None,
        engine: RasterEngine | None = None,
        spec: LayoutSpec | None = None,
        *,
        composer_strategy: ComposerStrategy | None = None,
        wrap_strategy: WrapStrategy | None = None,
        render_options: RenderOptions | None = None,
        block_private_networks: bool | None = None,
        resolver: Resolver | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.fonts = fonts or FontCache.from_settings()
        self.engine = engine or RasterEngine()
        self.spec = spec or LayoutSpec(background=settings.background)
        self.composer_strategy = composer_strategy or settings.composer_strategy
        self.wrap_strategy = wrap_strategy or settings.wrap_strategy
        self.render_options = render_options
        self.block_private_networks = (
            settings.block_private_networks
            if block_private_networks is None
            else block_private_networks
        )
        self._resolver = resolver
        self._transport = transport
        self._glyphs = GlyphMeasurer(self.fonts)

    # -------------------------------------------------------------------------
    # Layout
    # -------------------------------------------------------------------------

    def measurer(self) -> TextMeasurer:
        if self.wrap_strategy == "approximate":
            return AverageCharWidthMeasurer(settings.average_char_width)
        return self._glyphs

    def line_strategy(self) -> LineStrategy:
        if self.composer_strategy == "text":
            return TextNodeStrategy(self.fonts)
        return OutlineStrategy(self._glyphs)

    def layout(self, title: str, description: str = "") -> tuple[WrappedText, WrappedText]:
        """Wrap title and description. Fonts must already be loaded."""
        spec = self.spec
        measurer = self.measurer()
        title_lines = wrap_text(
            title,
            spec.max_text_width,
            spec.title_font,
            spec.title_font_size,
            spec.title_max_lines,
            measurer,
        )
        description_lines = WrappedText(lines=())
        if description:
            description_lines = wrap_text(
                description,
                spec.max_text_width,
                spec.description_font,
                spec.description_font_size,
                spec.description_max_lines,
                measurer,
            )
        return title_lines, description_lines

    def build_document(self, title: str, description: str = "") -> VectorDocument:
        title_lines, description_lines = self.layout(title, description)
        return compose(self.spec, title_lines, description_lines, self.line_strategy())

    # -------------------------------------------------------------------------
    # Request modes
    # -------------------------------------------------------------------------

    async def generate(
        self,
        title: str | None,
        description: str | None = None,
        output_format: str | None = "png",
        origin: str | None = None,
    ) -> CardResult:
        """Render a card for title/description as PNG, or SVG when output_format is "svg".

        Raises:
            MissingInput: title is missing or blank
            FontLoadError: fonts could not be fetched
            EngineInitError, RenderFailure: rasterization failed
        """
        if not title or not title.strip():
            raise MissingInput("Missing title")

        await self.fonts.ensure_loaded(origin)
        document = self.build_document(title, description or "")

        if output_format == "svg":
            return CardResult(content=document.to_svg().encode("utf-8"), media_type=SVG_MEDIA_TYPE)

        handle = await self.engine.ensure_ready()
        image = await rasterize_async(document, handle, self.fonts, self.render_options)
        return CardResult(content=image.data, media_type=PNG_MEDIA_TYPE)

    async def convert(
        self,
        *,
        url: str | None = None,
        svg: str | None = None,
        body: str | bytes | None = None,
        origin: str | None = None,
    ) -> CardResult:
        """Rasterize an externally supplied SVG.

        Sources are tried in order: request body, url, inline svg.

        Raises:
            MissingInput: no source supplied
            FetchFailure: url could not be fetched (or was blocked)
            RenderFailure: the SVG could not be rendered
        """
        source = await self._resolve_svg(url=url, svg=svg, body=body)
        await self.fonts.ensure_loaded(origin)
        handle = await self.engine.ensure_ready()
        image = await rasterize_async(source, handle, self.fonts, self.render_options)
        return CardResult(content=image.data, media_type=PNG_MEDIA_TYPE)

    async def _resolve_svg(
        self,
        *,
        url: str | None,
        svg: str | None,
        body: str | bytes | None,
    ) -> str:
        if isinstance(body, bytes):
            body = body.decode("utf-8", errors="replace")
        if body and body.strip():
            return body
        if url:
            logger.info(f"Fetching SVG from {url}")
            async with build_client(
                guard_private=self.block_private_networks,
                resolver=self._resolver,
                transport=self._transport,
            ) as client:
                return await fetch_text(url, client=client)
        if svg and svg.strip():
            return svg
        raise MissingInput()


_card_service: CardService | None = None


def get_card_service() -> CardService:
    """Get or create the process-wide card service."""
    global _card_service
    if _card_service is None:
        _card_service = CardService()
    return _card_service
