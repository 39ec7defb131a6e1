"""Vector document composition for OG cards.

Lines are laid out at fixed positions and rendered by one of two
interchangeable strategies:

- OutlineStrategy: each line becomes a <path> of glyph outlines, so the
  rasterizer needs no text engine and no fonts.
- TextNodeStrategy: each line becomes an escaped <text> node naming the
  font family, and the rasterizer is handed the same font files.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass, field
from typing import Literal, Protocol

from og_card.fonts import FontCache
from og_card.layout import BackgroundName, LayoutSpec, WrappedText
from og_card.measure import GlyphMeasurer

ComposerStrategy = Literal["outline", "text"]

# C0 controls other than tab, LF and CR are not allowed in XML 1.0
_XML_INVALID_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")


def _num(value: float) -> str:
    return f"{value:g}"


def _xml_text(value: str) -> str:
    return html.escape(_XML_INVALID_CHARS.sub("", value), quote=True)


@dataclass(frozen=True)
class PathLayer:
    """Filled outline path."""

    d: str
    fill: str
    opacity: float = 1.0

    def to_svg(self) -> str:
        if not self.d:
            return ""
        opacity = f' opacity="{_num(self.opacity)}"' if self.opacity < 1 else ""
        return f'<path d="{html.escape(self.d, quote=True)}" fill="{self.fill}"{opacity}/>'


@dataclass(frozen=True)
class TextLayer:
    """Native text node; the rasterizer shapes it with the named font."""

    text: str
    x: float
    y: float
    font_family: str
    font_size: float
    font_weight: int
    fill: str
    opacity: float = 1.0

    def to_svg(self) -> str:
        text = _xml_text(self.text)
        if not text:
            return ""
        opacity = f' fill-opacity="{_num(self.opacity)}"' if self.opacity < 1 else ""
        return (
            f'<text x="{_num(self.x)}" y="{_num(self.y)}" '
            f'font-family="{_xml_text(self.font_family)}" '
            f'font-size="{_num(self.font_size)}" font-weight="{self.font_weight}" '
            f'font-kerning="none" fill="{self.fill}"{opacity}>{text}</text>'
        )


Layer = PathLayer | TextLayer


@dataclass(frozen=True)
class Background:
    """Static decoration drawn beneath the text, plus the text colors that suit it."""

    name: str
    defs: str
    markup: str
    title_fill: str
    description_fill: str
    description_opacity: float


BRAND_BACKGROUND = Background(
    name="brand",
    defs=(
        '<linearGradient id="paint0_linear" x1="67.4636" y1="117.051" x2="180.956" '
        'y2="164.74" gradientUnits="userSpaceOnUse">\n'
        '<stop stop-color="#D80000"/>\n'
        '<stop offset="0.492662" stop-color="#FF0000"/>\n'
        "</linearGradient>"
    ),
    markup=(
        '<rect width="{width}" height="{height}" fill="black"/>\n'
        '<path fill-rule="evenodd" clip-rule="evenodd" d="M160.291 137.245C165.835 167.748 '
        "192.754 190.89 225.126 190.89C257.499 190.89 284.417 167.748 289.96 137.245H270.442"
        "C265.227 157.225 246.916 171.982 225.126 171.982C203.337 171.982 185.026 157.225 "
        '179.811 137.245H160.291Z" fill="url(#paint0_linear)"/>\n'
        '<path fill-rule="evenodd" clip-rule="evenodd" d="M160.253 137.025C155.116 157.117 '
        "136.75 171.982 114.881 171.982C89.0317 171.982 68.0767 151.213 68.0767 125.593"
        "C68.0767 99.9723 89.0317 79.2029 114.881 79.2029C136.75 79.2029 155.116 94.0683 "
        "160.253 114.16H179.756C174.301 83.5484 147.331 60.2953 114.881 60.2953C78.4959 "
        "60.2953 49.0001 89.5298 49.0001 125.593C49.0001 161.655 78.4959 190.89 114.881 "
        '190.89C147.331 190.89 174.301 167.637 179.756 137.025H160.253Z" fill="white"/>\n'
        '<path fill-rule="evenodd" clip-rule="evenodd" d="M270.498 114.16C265.36 94.0683 '
        "246.996 79.2029 225.126 79.2029C203.257 79.2029 184.893 94.0683 179.756 114.16"
        "H160.253C165.707 83.5484 192.676 60.2953 225.126 60.2953C257.576 60.2953 284.548 "
        '83.5484 290 114.16H270.498Z" fill="#FF0000"/>'
    ),
    title_fill="white",
    description_fill="white",
    description_opacity=0.7,
)

DOTGRID_BACKGROUND = Background(
    name="dotgrid",
    defs=(
        '<pattern id="dotgrid" width="24" height="24" patternUnits="userSpaceOnUse">\n'
        '<circle cx="1" cy="1" r="1" fill="#0B0B0C" fill-opacity="0.06"/>\n'
        "</pattern>"
    ),
    markup=(
        '<rect width="{width}" height="{height}" fill="#FAFAFB"/>\n'
        '<rect width="{width}" height="{height}" fill="url(#dotgrid)"/>'
    ),
    title_fill="#0B0B0C",
    description_fill="#0B0B0C",
    description_opacity=0.66,
)

BACKGROUNDS: dict[str, Background] = {
    BRAND_BACKGROUND.name: BRAND_BACKGROUND,
    DOTGRID_BACKGROUND.name: DOTGRID_BACKGROUND,
}


def get_background(name: BackgroundName) -> Background:
    return BACKGROUNDS[name]


@dataclass
class VectorDocument:
    """An SVG card: canvas size, static background, then text layers in order."""

    width: int
    height: int
    background: Background
    layers: list[Layer] = field(default_factory=list)

    def to_svg(self) -> str:
        background = self.background.markup.format(width=self.width, height=self.height)
        parts = [
            f'<svg width="{self.width}" height="{self.height}" '
            f'viewBox="0 0 {self.width} {self.height}" xmlns="http://www.w3.org/2000/svg">',
            f"<defs>\n{self.background.defs}\n</defs>",
            background,
        ]
        parts.extend(markup for markup in (layer.to_svg() for layer in self.layers) if markup)
        parts.append("</svg>")
        return "\n".join(parts)


class LineStrategy(Protocol):
    """Turns one positioned line of text into a layer."""

    def render_line(
        self,
        text: str,
        x: float,
        y: float,
        font_key: str,
        font_size: float,
        fill: str,
        opacity: float,
    ) -> Layer: ...


class OutlineStrategy:
    """Embeds glyph outlines; shares metrics with the measurer used for wrapping."""

    def __init__(self, measurer: GlyphMeasurer) -> None:
        self._measurer = measurer

    def render_line(
        self,
        text: str,
        x: float,
        y: float,
        font_key: str,
        font_size: float,
        fill: str,
        opacity: float,
    ) -> Layer:
        d = self._measurer.outline(text, x, y, font_key, font_size)
        return PathLayer(d=d, fill=fill, opacity=opacity)


class TextNodeStrategy:
    """Emits <text> nodes referencing the cached fonts by family and weight.

    Line widths come from GlyphMeasurer, which sums unkerned hmtx advances,
    so every node carries font-kerning="none". The rasterizer may still
    substitute ligatures, which can leave a shaped line slightly narrower
    than measured. OutlineStrategy draws exactly the measured advances.
    """

    def __init__(self, fonts: FontCache) -> None:
        self._fonts = fonts

    def render_line(
        self,
        text: str,
        x: float,
        y: float,
        font_key: str,
        font_size: float,
        fill: str,
        opacity: float,
    ) -> Layer:
        asset = self._fonts.get(font_key)
        return TextLayer(
            text=text,
            x=x,
            y=y,
            font_family=asset.family,
            font_size=font_size,
            font_weight=asset.weight,
            fill=fill,
            opacity=opacity,
        )


def compose(
    spec: LayoutSpec,
    title: WrappedText,
    description: WrappedText,
    strategy: LineStrategy,
) -> VectorDocument:
    """Position wrapped lines on the canvas and build the document.

    Title lines start at title_start_y and advance by title_line_height. The
    description starts description_gap below the last title line. Every line
    starts at the left margin.
    """
    background = get_background(spec.background)
    document = VectorDocument(width=spec.width, height=spec.height, background=background)

    for i, line in enumerate(title.lines):
        y = spec.title_start_y + i * spec.title_line_height
        document.layers.append(
            strategy.render_line(
                line,
                spec.left_margin,
                y,
                spec.title_font,
                spec.title_font_size,
                background.title_fill,
                1.0,
            )
        )

    description_y = (
        spec.title_start_y + len(title.lines) * spec.title_line_height + spec.description_gap
    )
    for i, line in enumerate(description.lines):
        y = description_y + i * spec.description_line_height
        document.layers.append(
            strategy.render_line(
                line,
                spec.left_margin,
                y,
                spec.description_font,
                spec.description_font_size,
                background.description_fill,
                background.description_opacity,
            )
        )

    return document
