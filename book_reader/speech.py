"""Sequential, interruptible read-aloud of the paragraph list."""
from __future__ import annotations

import re
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Callable, Deque, Optional, Protocol

from book_reader.models import ReaderState


MAX_CHUNK_CHARS = 180
SENTENCE_END_PATTERN = re.compile(r"(?<=[。！？!?；;．.])")
WHITESPACE_PATTERN = re.compile(r"\s+")
UNAVAILABLE_NOTICE = "Speech playback is not supported on this device."


class SpeechUnavailableError(RuntimeError):
    """Raised by speech engines that cannot produce audio at all."""


class SpeechEngine(Protocol):
    def speak(self, text: str, on_done: Callable[[Optional[BaseException]], None]) -> None:
        ...

    def pause(self) -> None:
        ...

    def resume(self) -> None:
        ...

    def cancel(self) -> None:
        ...


class SpeechState(Enum):
    IDLE = "idle"
    SPEAKING = "speaking"
    PAUSED = "paused"


@dataclass
class SpeechSession:
    active: bool = False
    paused: bool = False
    current_paragraph_index: Optional[int] = None
    pending_chunks: Deque[str] = field(default_factory=deque)


def split_text_for_speech(text: str, max_chars: int = MAX_CHUNK_CHARS) -> list[str]:
    """Split a paragraph into sentence chunks no longer than ``max_chars``."""
    normalized = WHITESPACE_PATTERN.sub(" ", text)
    chunks: list[str] = []
    for sentence in SENTENCE_END_PATTERN.split(normalized):
        if len(sentence) <= max_chars:
            if sentence.strip():
                chunks.append(sentence.strip())
            continue
        for start in range(0, len(sentence), max_chars):
            piece = sentence[start : start + max_chars].strip()
            if piece:
                chunks.append(piece)
    return chunks


class SpeechSequencer:
    """Walks paragraphs in order and feeds their chunks to a speech engine.

    Completion callbacks carry the generation of the session that queued the
    chunk, so audio finishing after ``stop()`` never schedules more speech.
    """

    def __init__(
        self,
        state: ReaderState,
        engine: SpeechEngine,
        scroll_to: Optional[Callable[[float, bool], None]] = None,
        highlight: Optional[Callable[[Optional[int]], None]] = None,
        notify: Callable[[str], None] = print,
        max_chunk_chars: int = MAX_CHUNK_CHARS,
        verbose: bool = False,
    ) -> None:
        self.state = state
        self.engine = engine
        self.scroll_to = scroll_to
        self.highlight = highlight
        self.notify = notify
        self.max_chunk_chars = max_chunk_chars
        self.verbose = verbose
        self.session = SpeechSession()
        self.status = SpeechState.IDLE
        self.chunks_spoken = 0
        self.chunks_failed = 0
        self.last_error: Optional[BaseException] = None
        self._generation = 0
        self._in_flight = False
        self._pumping = False

    @property
    def active(self) -> bool:
        return self.session.active

    def start(self) -> bool:
        if self.status is not SpeechState.IDLE:
            return False
        index = self.state.index
        if index is None or not len(index):
            return False
        start_index = index.paragraph_at(self.state.scroll_top)
        self._cancel_engine()
        self._generation += 1
        self.session = SpeechSession(active=True, current_paragraph_index=None)
        self.status = SpeechState.SPEAKING
        self._in_flight = False
        self.last_error = None
        if self.verbose:
            print(f"[speech] Reading from paragraph {start_index}.")
        if not self._enter_paragraph(start_index):
            return False
        self._pump()
        return self.last_error is None

    def pause(self) -> bool:
        if self.status is not SpeechState.SPEAKING:
            return False
        try:
            self.engine.pause()
        except Exception as error:  # noqa: BLE001 - engine errors stay local
            if self.verbose:
                print(f"[speech] Pause failed: {error}")
            return False
        self.session.paused = True
        self.status = SpeechState.PAUSED
        return True

    def resume(self) -> bool:
        if self.status is not SpeechState.PAUSED:
            return False
        # Engines may deliver held completions from inside resume(), which can
        # finish or stop the session, so the state is switched first.
        generation = self._generation
        self.session.paused = False
        self.status = SpeechState.SPEAKING
        try:
            self.engine.resume()
        except Exception as error:  # noqa: BLE001 - engine errors stay local
            if self.verbose:
                print(f"[speech] Resume failed: {error}")
            if generation == self._generation and self.session.active:
                self.session.paused = True
                self.status = SpeechState.PAUSED
            return False
        return True

    def stop(self) -> None:
        was_active = self.session.active
        self._generation += 1
        self.session = SpeechSession()
        self.status = SpeechState.IDLE
        self._in_flight = False
        self._cancel_engine()
        self._set_highlight(None)
        if was_active and self.verbose:
            print("[speech] Stopped.")

    def _cancel_engine(self) -> None:
        try:
            self.engine.cancel()
        except Exception as error:  # noqa: BLE001 - cancel must always succeed
            if self.verbose:
                print(f"[speech] Cancel failed: {error}")

    def _set_highlight(self, paragraph_index: Optional[int]) -> None:
        self.state.highlighted_index = paragraph_index
        if self.highlight is not None:
            self.highlight(paragraph_index)

    def _enter_paragraph(self, paragraph_index: int) -> bool:
        """Load the first speakable paragraph at or after ``paragraph_index``."""
        paragraphs = self.state.paragraphs
        while 0 <= paragraph_index < len(paragraphs):
            text = paragraphs[paragraph_index].text.strip()
            chunks = split_text_for_speech(text, self.max_chunk_chars) if text else []
            if chunks:
                self.session.current_paragraph_index = paragraph_index
                self.session.pending_chunks = deque(chunks)
                self._set_highlight(paragraph_index)
                if self.scroll_to is not None and self.state.index is not None:
                    self.scroll_to(self.state.index.offset_of(paragraph_index), True)
                return True
            paragraph_index += 1
        self._finish()
        return False

    def _finish(self) -> None:
        self._generation += 1
        self.session = SpeechSession()
        self.status = SpeechState.IDLE
        self._in_flight = False
        self._set_highlight(None)
        if self.verbose:
            print("[speech] Reached the end of the book.")

    def advance(self) -> None:
        """Speak the next queued chunk, moving to later paragraphs as needed."""
        if not self.session.active or self._in_flight:
            return
        if not self.session.pending_chunks:
            current = self.session.current_paragraph_index
            next_index = 0 if current is None else current + 1
            self._enter_paragraph(next_index)
            return
        chunk = self.session.pending_chunks.popleft()
        self._in_flight = True
        on_done = partial(self._on_chunk_done, self._generation)
        try:
            self.engine.speak(chunk, on_done)
        except Exception as error:  # noqa: BLE001 - reported as a notice
            self.last_error = error
            if self.verbose:
                print(f"[speech] Engine unavailable: {error}")
            self.stop()
            self.notify(UNAVAILABLE_NOTICE)

    def _pump(self) -> None:
        if self._pumping:
            return
        self._pumping = True
        try:
            while self.session.active and not self._in_flight:
                self.advance()
        finally:
            self._pumping = False

    def _on_chunk_done(
        self, generation: int, error: Optional[BaseException] = None
    ) -> None:
        if generation != self._generation or not self.session.active:
            return
        self._in_flight = False
        if error is None:
            self.chunks_spoken += 1
        else:
            self.chunks_failed += 1
            if self.verbose:
                print(f"[speech] Skipped a chunk: {error}")
        self._pump()
