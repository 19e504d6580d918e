from __future__ import annotations

import re
from typing import Iterable, List, Optional

from book_reader.models import ChapterMark, Paragraph


BLANK_LINE_PATTERN = re.compile(r"\n\s*\n+")
NEWLINE_PATTERN = re.compile(r"\n+")


def split_blocks(text: str) -> list[str]:
    """Split text on blank lines, then on single newlines, dropping empties."""
    blocks: list[str] = []
    for section in BLANK_LINE_PATTERN.split(text):
        for line in NEWLINE_PATTERN.split(section):
            stripped = line.strip()
            if stripped:
                blocks.append(stripped)
    return blocks


def _sorted_chapters(chapters: Iterable[ChapterMark]) -> list[ChapterMark]:
    return sorted(chapters, key=lambda chapter: chapter.char_offset)


def segment_paragraphs(
    content: str, chapters: Iterable[ChapterMark] = ()
) -> List[Paragraph]:
    """Partition book content into reading-order paragraphs.

    Each chapter owns the text from its offset up to the next chapter's
    offset; text in front of the first chapter belongs to none and is not
    shown. A book without chapters is split whole, without chapter indexes.
    """
    ordered = _sorted_chapters(chapters)
    if not ordered:
        return [Paragraph(text=block) for block in split_blocks(content)]

    paragraphs: List[Paragraph] = []
    for chapter_index, chapter in enumerate(ordered):
        start = chapter.char_offset
        end: Optional[int] = None
        if chapter_index + 1 < len(ordered):
            end = ordered[chapter_index + 1].char_offset
        for block in split_blocks(content[start:end]):
            paragraphs.append(Paragraph(text=block, chapter_index=chapter_index))
    return paragraphs
