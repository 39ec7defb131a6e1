"""Greedy word wrapping with ellipsis truncation."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Literal

from og_card.fonts import BODY_FONT, TITLE_FONT
from og_card.measure import TextMeasurer

ELLIPSIS = "..."

BackgroundName = Literal["brand", "dotgrid"]


@dataclass(frozen=True)
class LayoutSpec:
    """Fixed card geometry and typography.

    Attributes:
        width: Canvas width in px
        height: Canvas height in px
        max_text_width: Wrap width for every line
        left_margin: x of every line
        title_*: Title font key, size, line advance and line cap
        title_start_y: Baseline of the first title line
        description_*: Description font key, size, line advance and line cap
        description_gap: Extra space between the last title line and the description
        background: Static background template beneath the text
    """

    width: int = 1200
    height: int = 680
    max_text_width: float = 1100
    left_margin: float = 51
    title_font: str = TITLE_FONT
    title_font_size: float = 56
    title_line_height: float = 68
    title_max_lines: int = 3
    title_start_y: float = 280
    description_font: str = BODY_FONT
    description_font_size: float = 28
    description_line_height: float = 38
    description_max_lines: int = 2
    description_gap: float = 30
    background: BackgroundName = "brand"


@dataclass(frozen=True)
class WrappedText:
    """Lines in render order; truncated is True when an ellipsis was applied."""

    lines: tuple[str, ...]
    truncated: bool = False

    def __len__(self) -> int:
        return len(self.lines)

    def __iter__(self) -> Iterator[str]:
        return iter(self.lines)


def break_lines(
    text: str,
    max_width: float,
    font_key: str,
    font_size: float,
    measurer: TextMeasurer,
) -> list[str]:
    """Greedy word wrap without any line cap.

    A word is appended to the current line while the result measures strictly
    under max_width. Words are never split, so a single overlong word gets a
    line of its own and overflows.
    """
    words = text.split()
    if not words:
        return [""]

    lines: list[str] = []
    current = words[0]
    for word in words[1:]:
        candidate = f"{current} {word}"
        if measurer.measure(candidate, font_key, font_size) < max_width:
            current = candidate
        else:
            lines.append(current)
            current = word
    lines.append(current)
    return lines


def truncate_lines(lines: list[str], max_lines: int) -> WrappedText:
    """Cap lines at max_lines, replacing the last kept line's final 3 chars with ELLIPSIS.

    Lines shorter than 3 chars collapse to the bare ellipsis.
    """
    if len(lines) <= max_lines:
        return WrappedText(lines=tuple(lines))
    kept = lines[:max_lines]
    if kept:
        kept[-1] = kept[-1][:-3] + ELLIPSIS
    return WrappedText(lines=tuple(kept), truncated=True)


def wrap_text(
    text: str,
    max_width: float,
    font_key: str,
    font_size: float,
    max_lines: int,
    measurer: TextMeasurer,
) -> WrappedText:
    """Wrap text to max_width and cap it at max_lines."""
    return truncate_lines(break_lines(text, max_width, font_key, font_size, measurer), max_lines)
