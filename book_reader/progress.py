from __future__ import annotations

import math
from typing import Any, Optional

from book_reader.frames import FrameScheduler
from book_reader.layout import clamp
from book_reader.models import Book, ReaderState
from book_reader.store import BookStore


AT_BOTTOM_TOLERANCE_PX = 2


def compute_percent(
    scroll_top: float, total_height: float, viewport_height: float
) -> int:
    scrollable = max(1.0, total_height - viewport_height)
    ratio = clamp(scroll_top / scrollable, 0.0, 1.0)
    return int(math.floor(ratio * 100 + 0.5))


def display_percent(
    scroll_top: float, total_height: float, viewport_height: float
) -> float:
    """Unrounded percent for display; reaching the bottom always reads 100."""
    if total_height - (scroll_top + viewport_height) <= AT_BOTTOM_TOLERANCE_PX:
        return 100.0
    scrollable = max(1.0, total_height - viewport_height)
    return clamp(scroll_top / scrollable * 100, 0.0, 100.0)


class ProgressTracker:
    """Records the reading position and persists it at most once per frame."""

    def __init__(
        self,
        state: ReaderState,
        store: BookStore,
        book_id: int,
        scheduler: FrameScheduler,
        verbose: bool = False,
    ) -> None:
        self.state = state
        self.store = store
        self.book_id = book_id
        self.scheduler = scheduler
        self.verbose = verbose
        self.last_error: Optional[Exception] = None
        self.write_count = 0
        self._frame_handle: Any = None
        self._restored = False
        self._closed = False

    @property
    def write_scheduled(self) -> bool:
        return self._frame_handle is not None

    @property
    def percent(self) -> int:
        return compute_percent(
            self.state.scroll_top, self.state.total_height, self.state.viewport_height
        )

    @property
    def display_percent(self) -> float:
        return display_percent(
            self.state.scroll_top, self.state.total_height, self.state.viewport_height
        )

    def clamp_position(self, position: float) -> float:
        return clamp(float(position), 0.0, max(0.0, self.state.total_height))

    def restore(self, book: Book) -> float:
        self.state.scroll_top = self.clamp_position(book.progress_px)
        self._restored = True
        return self.state.scroll_top

    def on_scroll(self, position: float) -> float:
        self.state.scroll_top = self.clamp_position(position)
        if not self._restored or self._closed or self._frame_handle is not None:
            return self.state.scroll_top
        self._frame_handle = self.scheduler.request_frame(self._on_frame)
        return self.state.scroll_top

    def seek_percent(self, percent: float) -> float:
        ratio = clamp(float(percent), 0.0, 100.0) / 100
        self.state.scroll_top = self.clamp_position(ratio * self.state.scrollable_height)
        self.write_now()
        return self.state.scroll_top

    def _on_frame(self) -> None:
        self._frame_handle = None
        if self._closed:
            return
        self.write_now()

    def write_now(self) -> bool:
        if not self._restored:
            return False
        # The stored position never exceeds the furthest reachable scroll top.
        position = min(self.state.scroll_top, self.state.scrollable_height)
        fields = {"progressPx": position, "percent": self.percent}
        try:
            self.store.update(self.book_id, fields)
        except Exception as error:  # noqa: BLE001 - store failures must not escape
            self.last_error = error
            if self.verbose:
                print(f"[progress] Failed to save position for book {self.book_id}: {error}")
            return False
        self.last_error = None
        self.write_count += 1
        return True

    def flush(self) -> bool:
        if self._frame_handle is not None:
            self.scheduler.cancel_frame(self._frame_handle)
            self._frame_handle = None
        return self.write_now()

    def close(self) -> bool:
        saved = self.flush()
        self._closed = True
        return saved
