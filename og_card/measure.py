"""Text measurement against font metrics.

GlyphMeasurer reads advance widths straight from the font and uses the same
advances to place glyph outlines, so a line that measures under the wrap
width also renders under it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from fontTools.pens.svgPathPen import SVGPathPen
from fontTools.pens.transformPen import TransformPen

from og_card.fonts import FontCache

NOTDEF = ".notdef"


class TextMeasurer(Protocol):
    """Anything that can report the rendered width of a string."""

    def measure(self, text: str, font_key: str, font_size: float) -> float: ...


def _format_number(value: float) -> str:
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text


@dataclass(frozen=True)
class _FontMetrics:
    """Lookup tables pulled from one parsed font."""

    units_per_em: int
    cmap: dict[int, str]
    advances: dict[str, int]
    glyph_set: Any

    def glyph_name(self, char: str) -> str:
        return self.cmap.get(ord(char), NOTDEF)

    def advance(self, glyph_name: str) -> int:
        return self.advances.get(glyph_name, self.advances.get(NOTDEF, 0))


class GlyphMeasurer:
    """Measures and outlines text using fonts from a FontCache."""

    def __init__(self, fonts: FontCache) -> None:
        self._fonts = fonts
        self._metrics: dict[tuple[str, int], _FontMetrics] = {}

    def _metrics_for(self, font_key: str) -> _FontMetrics:
        asset = self._fonts.get(font_key)
        cache_key = (font_key, id(asset.font))
        metrics = self._metrics.get(cache_key)
        if metrics is None:
            font = asset.font
            metrics = _FontMetrics(
                units_per_em=font["head"].unitsPerEm,
                cmap=dict(font.getBestCmap()),
                advances={name: adv for name, (adv, _lsb) in font["hmtx"].metrics.items()},
                glyph_set=font.getGlyphSet(),
            )
            self._metrics[cache_key] = metrics
        return metrics

    def measure(self, text: str, font_key: str, font_size: float) -> float:
        """Width of text in px: sum of glyph advances scaled to font_size.

        No kerning or ligature substitution is applied.

        Raises:
            FontNotLoaded: the font is not ready
        """
        metrics = self._metrics_for(font_key)
        units = sum(metrics.advance(metrics.glyph_name(ch)) for ch in text)
        return units * font_size / metrics.units_per_em

    def outline(self, text: str, x: float, y: float, font_key: str, font_size: float) -> str:
        """SVG path data for text with its baseline starting at (x, y)."""
        metrics = self._metrics_for(font_key)
        scale = font_size / metrics.units_per_em
        pen = SVGPathPen(metrics.glyph_set, ntos=_format_number)
        cursor = x
        for ch in text:
            name = metrics.glyph_name(ch)
            # Font units are y-up; SVG is y-down.
            metrics.glyph_set[name].draw(TransformPen(pen, (scale, 0, 0, -scale, cursor, y)))
            cursor += metrics.advance(name) * scale
        return pen.getCommands()


class AverageCharWidthMeasurer:
    """Approximates width as character count times an average glyph width."""

    def __init__(self, ratio: float = 0.55) -> None:
        self.ratio = ratio

    def measure(self, text: str, font_key: str, font_size: float) -> float:
        return len(text) * font_size * self.ratio
