"""Reader session tying the virtualized reading engine together."""
from __future__ import annotations

from typing import Callable, Optional, Protocol

from book_reader.chapters import ChapterNavigator
from book_reader.frames import FrameScheduler, QueuedFrameScheduler
from book_reader.layout import ReaderSettings, clamp_font_size, estimate_heights, line_height_for
from book_reader.models import Book, Paragraph, ReaderState
from book_reader.offsets import OffsetIndex
from book_reader.progress import ProgressTracker
from book_reader.segmenter import segment_paragraphs
from book_reader.speech import SpeechEngine, SpeechSequencer, SpeechState
from book_reader.store import BookStore


BOOK_NOT_FOUND_NOTICE = "Book not found."


class Presenter(Protocol):
    def scroll_to(self, offset: float, smooth: bool) -> None:
        ...

    def highlight(self, paragraph_index: Optional[int]) -> None:
        ...


class ReaderSession:
    def __init__(
        self,
        store: BookStore,
        book_id: int,
        settings: Optional[ReaderSettings] = None,
        speech_engine: Optional[SpeechEngine] = None,
        scheduler: Optional[FrameScheduler] = None,
        presenter: Optional[Presenter] = None,
        notify: Callable[[str], None] = print,
        max_chunk_chars: Optional[int] = None,
        verbose: bool = False,
    ) -> None:
        self.store = store
        self.book_id = book_id
        self.settings = settings or ReaderSettings()
        self.scheduler = scheduler or QueuedFrameScheduler()
        self.presenter = presenter
        self.notify = notify
        self.verbose = verbose
        self.book: Optional[Book] = None
        self.state = ReaderState(
            viewport_width=self.settings.viewport_width,
            viewport_height=self.settings.viewport_height,
            font_size=clamp_font_size(self.settings.font_size),
        )
        self.tracker = ProgressTracker(
            self.state, store, book_id, self.scheduler, verbose=verbose
        )
        self.navigator = ChapterNavigator(self.state, (), self.tracker)
        self.sequencer: Optional[SpeechSequencer] = None
        if speech_engine is not None:
            sequencer_options = {}
            if max_chunk_chars is not None:
                sequencer_options["max_chunk_chars"] = max_chunk_chars
            self.sequencer = SpeechSequencer(
                self.state,
                speech_engine,
                scroll_to=self._speech_scroll,
                highlight=self._speech_highlight,
                notify=notify,
                verbose=verbose,
                **sequencer_options,
            )
        self.closed = False

    def open(self) -> bool:
        try:
            book = self.store.get(self.book_id)
        except Exception as error:  # noqa: BLE001 - treated as a missing book
            if self.verbose:
                print(f"[reader] Failed to load book {self.book_id}: {error}")
            book = None
        if book is None:
            self.notify(BOOK_NOT_FOUND_NOTICE)
            return False
        self.book = book
        self.navigator.chapters = list(book.chapters)
        self.state.paragraphs = segment_paragraphs(book.content, book.chapters)
        self._rebuild()
        self.tracker.restore(book)
        if self.verbose:
            print(
                f"[reader] Opened {book.title!r}: {len(self.state.paragraphs)} paragraphs, "
                f"{len(book.chapters)} chapters."
            )
        return True

    @property
    def paragraphs(self) -> list[Paragraph]:
        return self.state.paragraphs

    @property
    def index(self) -> OffsetIndex:
        if self.state.index is None:
            self._rebuild()
        return self.state.index  # type: ignore[return-value]

    @property
    def line_height(self) -> int:
        return line_height_for(self.state.font_size)

    def _rebuild(self) -> None:
        heights = estimate_heights(
            (paragraph.text for paragraph in self.state.paragraphs),
            self.state.viewport_width,
            self.state.font_size,
            self.line_height,
        )
        self.state.index = OffsetIndex.build(heights)
        self.navigator.refresh()

    def _relayout(self) -> None:
        # Keep the reader on the same paragraph across layout changes.
        if self.book is None:
            self._rebuild()
            return
        anchor = None
        if self.state.index is not None and len(self.state.index):
            anchor = self.state.index.paragraph_at(self.state.scroll_top)
        self._rebuild()
        if anchor is not None and anchor >= 0:
            self.tracker.on_scroll(self.state.index.offset_of(anchor))
        else:
            self.tracker.on_scroll(self.state.scroll_top)

    def set_viewport(self, width: float, height: float) -> None:
        changed_width = width != self.state.viewport_width
        self.state.viewport_width = max(0.0, float(width))
        self.state.viewport_height = max(0.0, float(height))
        if changed_width:
            self._relayout()

    def set_font_size(self, font_size: int) -> int:
        font_size = clamp_font_size(font_size)
        if font_size != self.state.font_size:
            self.state.font_size = font_size
            self._relayout()
        return font_size

    def change_font_size(self, delta: int) -> int:
        return self.set_font_size(self.state.font_size + delta)

    def scroll_to(self, position: float) -> float:
        return self.tracker.on_scroll(position)

    def page_down(self) -> float:
        target = min(
            self.state.scroll_top + max(self.state.viewport_height, self.line_height),
            self.state.scrollable_height,
        )
        return self.scroll_to(max(target, 0.0))

    def page_up(self) -> float:
        step = max(self.state.viewport_height, self.line_height)
        return self.scroll_to(max(0.0, self.state.scroll_top - step))

    def seek_percent(self, percent: float) -> float:
        return self.tracker.seek_percent(percent)

    def visible_range(self) -> tuple[int, int]:
        return self.index.window(
            self.state.scroll_top,
            self.state.viewport_height,
            self.settings.buffer_count,
        )

    def visible_paragraphs(self) -> list[tuple[int, float, Paragraph]]:
        """Return ``(index, top_offset, paragraph)`` for the materialized window."""
        start, end = self.visible_range()
        return [
            (position, self.index.offset_of(position), self.state.paragraphs[position])
            for position in range(start, end)
        ]

    @property
    def percent(self) -> int:
        return self.tracker.percent

    @property
    def display_percent(self) -> float:
        return self.tracker.display_percent

    def current_chapter(self) -> Optional[int]:
        return self.navigator.current_chapter()

    def current_chapter_title(self) -> str:
        return self.navigator.current_title()

    def go_to_chapter(self, chapter_index: int) -> float:
        return self.navigator.go_to_chapter(chapter_index)

    def prev_chapter(self) -> Optional[float]:
        return self.navigator.prev_chapter()

    def next_chapter(self) -> Optional[float]:
        return self.navigator.next_chapter()

    @property
    def speech_state(self) -> SpeechState:
        if self.sequencer is None:
            return SpeechState.IDLE
        return self.sequencer.status

    def start_reading(self) -> bool:
        if self.sequencer is None or self.closed:
            return False
        return self.sequencer.start()

    def pause_reading(self) -> bool:
        return self.sequencer is not None and self.sequencer.pause()

    def resume_reading(self) -> bool:
        return self.sequencer is not None and self.sequencer.resume()

    def stop_reading(self) -> None:
        if self.sequencer is not None:
            self.sequencer.stop()

    def _speech_scroll(self, offset: float, smooth: bool) -> None:
        self.tracker.on_scroll(offset)
        if self.presenter is not None:
            self.presenter.scroll_to(offset, smooth)

    def _speech_highlight(self, paragraph_index: Optional[int]) -> None:
        if self.presenter is not None:
            self.presenter.highlight(paragraph_index)

    def close(self) -> bool:
        """Stop speech and flush the reading position."""
        if self.closed:
            return True
        self.stop_reading()
        self.closed = True
        if self.book is None:
            return True
        return self.tracker.close()
