from __future__ import annotations

import math
import re
from dataclasses import dataclass, replace
from typing import Iterable


DEFAULT_FONT_SIZE = 14
MIN_FONT_SIZE = 10
MAX_FONT_SIZE = 24
LINE_HEIGHT_RATIO = 1.7
CHAR_ADVANCE_PX = 1.15
PARAGRAPH_PADDING_PX = 16
DEFAULT_BUFFER_COUNT = 3
WHITESPACE_PATTERN = re.compile(r"\s+")


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def clamp_font_size(font_size: int) -> int:
    return int(clamp(int(font_size), MIN_FONT_SIZE, MAX_FONT_SIZE))


def line_height_for(font_size: int) -> int:
    # JavaScript-style rounding keeps heights identical to stored positions.
    return int(math.floor(font_size * LINE_HEIGHT_RATIO + 0.5))


@dataclass(frozen=True)
class ReaderSettings:
    font_size: int = DEFAULT_FONT_SIZE
    buffer_count: int = DEFAULT_BUFFER_COUNT
    viewport_width: float = 0.0
    viewport_height: float = 0.0

    @property
    def line_height(self) -> int:
        return line_height_for(self.font_size)

    def with_font_size(self, font_size: int) -> "ReaderSettings":
        return replace(self, font_size=clamp_font_size(font_size))


def estimate_height(
    text: str,
    viewport_width: float,
    font_size: float,
    line_height: float,
) -> float:
    """Estimate the rendered height of a paragraph in pixels.

    A character is assumed to advance ``font_size + CHAR_ADVANCE_PX`` pixels,
    which over-estimates CJK text slightly and Latin text more. Only a stable
    estimate is needed for windowing, not exact text shaping.
    """
    if not viewport_width or viewport_width <= 0:
        return float(line_height)
    rows = 0
    for line in text.split("\n"):
        char_count = len(WHITESPACE_PATTERN.sub(" ", line))
        line_rows = math.ceil(char_count * (font_size + CHAR_ADVANCE_PX) / viewport_width)
        rows += line_rows or 1
    return float(rows * line_height + PARAGRAPH_PADDING_PX)


def estimate_heights(
    texts: Iterable[str],
    viewport_width: float,
    font_size: float,
    line_height: float,
) -> list[float]:
    return [
        estimate_height(text, viewport_width, font_size, line_height)
        for text in texts
    ]
