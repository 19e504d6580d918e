from __future__ import annotations

import re
from typing import TYPE_CHECKING, Iterable, List, Optional, Sequence

from book_reader.models import ChapterMark, Paragraph, ReaderState

if TYPE_CHECKING:
    from book_reader.progress import ProgressTracker


CHAPTER_HEADING_PATTERN = re.compile(r"第.{1,9}[章回]")
NO_CHAPTER_TITLE = "No chapter"


def detect_chapters(content: str) -> List[ChapterMark]:
    """Find chapter headings such as ``第十二章`` and record their offsets.

    Offsets count characters, with every line contributing its trailing
    newline.
    """
    chapters: List[ChapterMark] = []
    position = 0
    for line in content.split("\n"):
        if CHAPTER_HEADING_PATTERN.search(line):
            chapters.append(ChapterMark(title=line.strip(), char_offset=position))
        position += len(line) + 1
    return chapters


def first_paragraph_by_chapter(paragraphs: Iterable[Paragraph]) -> dict[int, int]:
    first: dict[int, int] = {}
    for index, paragraph in enumerate(paragraphs):
        if paragraph.chapter_index is not None and paragraph.chapter_index not in first:
            first[paragraph.chapter_index] = index
    return first


class ChapterNavigator:
    """Maps chapters to scroll offsets through the shared offset index."""

    def __init__(
        self,
        state: ReaderState,
        chapters: Sequence[ChapterMark],
        tracker: "ProgressTracker",
    ) -> None:
        self.state = state
        self.chapters = list(chapters)
        self.tracker = tracker
        self._first_paragraph: dict[int, int] = {}
        self.refresh()

    def refresh(self) -> None:
        self._first_paragraph = first_paragraph_by_chapter(self.state.paragraphs)

    @property
    def chapter_count(self) -> int:
        return len(self.chapters)

    def current_chapter(self, scroll_top: Optional[float] = None) -> Optional[int]:
        index = self.state.index
        if index is None or not len(index):
            return None
        position = self.state.scroll_top if scroll_top is None else scroll_top
        paragraph_index = index.last_at_or_before(position)
        return self.state.paragraphs[paragraph_index].chapter_index

    def current_title(self) -> str:
        current = self.current_chapter()
        if current is None or not 0 <= current < len(self.chapters):
            return NO_CHAPTER_TITLE
        return self.chapters[current].title or NO_CHAPTER_TITLE

    def chapter_offset(self, chapter_index: int) -> float:
        paragraph_index = self._first_paragraph.get(chapter_index)
        if paragraph_index is None or self.state.index is None:
            return 0.0
        return self.state.index.offset_of(paragraph_index)

    def go_to_chapter(self, chapter_index: int) -> float:
        offset = self.chapter_offset(chapter_index)
        self.tracker.on_scroll(offset)
        return offset

    def _step(self, delta: int) -> Optional[float]:
        if not self.chapters:
            return None
        current = self.current_chapter()
        base = -1 if current is None else current
        target = max(0, min(len(self.chapters) - 1, base + delta))
        return self.go_to_chapter(target)

    def prev_chapter(self) -> Optional[float]:
        return self._step(-1)

    def next_chapter(self) -> Optional[float]:
        return self._step(1)

    def table_of_contents(self) -> list[tuple[int, str, bool]]:
        """Return ``(chapter_index, title, is_current)`` rows."""
        current = self.current_chapter()
        return [
            (position, chapter.title, position == current)
            for position, chapter in enumerate(self.chapters)
        ]
