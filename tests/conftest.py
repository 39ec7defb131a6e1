"""Shared fixtures: synthetic fonts, fake raster backends, ready services."""

from __future__ import annotations

import asyncio
import io
import string
import time
from pathlib import Path

import pytest
from fontTools.fontBuilder import FontBuilder
from fontTools.pens.ttGlyphPen import TTGlyphPen
from fontTools.ttLib.tables._g_l_y_f import Glyph
from PIL import Image

from og_card.engine import EngineAlreadyInitialized, RasterEngine
from og_card.fonts import BODY_FONT, TITLE_FONT, FontCache
from og_card.rendering import RenderOptions
from og_card.service import CardService

# Every glyph in the test fonts advances 500 units on a 1000 unit em, so a
# character is exactly half the font size wide.
UNITS_PER_EM = 1000
ADVANCE = 500
CHARSET = string.ascii_letters + string.digits + string.punctuation


def _box_glyph() -> Glyph:
    pen = TTGlyphPen(None)
    pen.moveTo((50, 0))
    pen.lineTo((50, 700))
    pen.lineTo((450, 700))
    pen.lineTo((450, 0))
    pen.closePath()
    return pen.glyph()


def build_test_font(family: str, weight: int = 400) -> bytes:
    """Build a TrueType font with box glyphs for printable ASCII."""
    char_names = {ch: f"uni{ord(ch):04X}" for ch in CHARSET}
    glyph_order = [".notdef", "space", *char_names.values()]
    cmap = {ord(" "): "space", **{ord(ch): name for ch, name in char_names.items()}}

    glyphs = {name: _box_glyph() for name in glyph_order}
    glyphs["space"] = TTGlyphPen(None).glyph()

    fb = FontBuilder(UNITS_PER_EM, isTTF=True)
    fb.setupGlyphOrder(glyph_order)
    fb.setupCharacterMap(cmap)
    fb.setupGlyf(glyphs)
    fb.setupHorizontalMetrics(
        {name: (ADVANCE, 0 if name == "space" else 50) for name in glyph_order}
    )
    fb.setupHorizontalHeader(ascent=800, descent=-200)
    fb.setupNameTable({"familyName": family, "styleName": "Regular"})
    fb.setupOS2(sTypoAscender=800, usWinAscent=800, usWinDescent=200, usWeightClass=weight)
    fb.setupPost()

    buffer = io.BytesIO()
    fb.save(buffer)
    return buffer.getvalue()


def png_bytes(width: int = 1200, height: int = 680) -> bytes:
    """A transparent RGBA PNG."""
    buffer = io.BytesIO()
    Image.new("RGBA", (width, height), (0, 0, 0, 0)).save(buffer, format="PNG")
    return buffer.getvalue()


class FakeBackend:
    """Raster backend that records calls instead of rendering."""

    name = "fake"

    def __init__(
        self,
        *,
        fail: Exception | None = None,
        already_initialized: bool = False,
        init_delay: float = 0.0,
        render_error: Exception | None = None,
    ) -> None:
        self.fail = fail
        self.initialized = already_initialized
        self.init_delay = init_delay
        self.render_error = render_error
        self.init_calls = 0
        self.rendered: list[str] = []
        self.font_files: list[list[str]] = []

    def initialize(self) -> None:
        self.init_calls += 1
        if self.init_delay:
            time.sleep(self.init_delay)
        if self.fail is not None:
            raise self.fail
        if self.initialized:
            raise EngineAlreadyInitialized("Already initialized")
        self.initialized = True

    def render(self, svg: str, options: RenderOptions, font_files: list[str]) -> bytes:
        if self.render_error is not None:
            raise self.render_error
        self.rendered.append(svg)
        self.font_files.append(font_files)
        return png_bytes()


@pytest.fixture(scope="session")
def title_font_bytes() -> bytes:
    return build_test_font("Test Serif", weight=700)


@pytest.fixture(scope="session")
def body_font_bytes() -> bytes:
    return build_test_font("Test Sans", weight=400)


@pytest.fixture
def font_dir(tmp_path: Path, title_font_bytes: bytes, body_font_bytes: bytes) -> Path:
    """Directory of bundled fonts, as a static-asset deployment ships them."""
    directory = tmp_path / "fonts"
    directory.mkdir()
    (directory / "title.ttf").write_bytes(title_font_bytes)
    (directory / "body.ttf").write_bytes(body_font_bytes)
    return directory


@pytest.fixture
def font_cache(font_dir: Path, tmp_path: Path) -> FontCache:
    """Cold font cache reading bundled fonts."""
    return FontCache(
        {TITLE_FONT: "title.ttf", BODY_FONT: "body.ttf"},
        font_dir=font_dir,
        cache_dir=tmp_path / "font-cache",
    )


@pytest.fixture
def loaded_fonts(font_cache: FontCache) -> FontCache:
    """Font cache with every font ready."""
    asyncio.run(font_cache.ensure_loaded())
    return font_cache


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def card_service(font_cache: FontCache, fake_backend: FakeBackend) -> CardService:
    """Card service over test fonts and a fake raster backend."""
    return CardService(
        fonts=font_cache,
        engine=RasterEngine(fake_backend),
        composer_strategy="outline",
        wrap_strategy="measured",
    )
