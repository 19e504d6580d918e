from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from book_reader.offsets import OffsetIndex


@dataclass(frozen=True)
class ChapterMark:
    title: str
    char_offset: int


@dataclass(frozen=True)
class Book:
    id: int
    title: str
    content: str
    chapters: tuple[ChapterMark, ...] = ()
    progress_px: float = 0.0
    percent: int = 0


@dataclass(frozen=True)
class Paragraph:
    text: str
    chapter_index: Optional[int] = None


@dataclass
class ReaderState:
    """Mutable reading state shared by the engine components.

    ``index`` is always rebuilt from ``paragraphs`` and the layout inputs
    before any component reads it.
    """

    paragraphs: list[Paragraph] = field(default_factory=list)
    index: Optional["OffsetIndex"] = None
    scroll_top: float = 0.0
    viewport_width: float = 0.0
    viewport_height: float = 0.0
    font_size: int = 14
    highlighted_index: Optional[int] = None

    @property
    def total_height(self) -> float:
        if self.index is None:
            return 0.0
        return self.index.total_height

    @property
    def scrollable_height(self) -> float:
        return max(0.0, self.total_height - self.viewport_height)
