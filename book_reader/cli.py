from __future__ import annotations

import argparse
import asyncio
import importlib
from pathlib import Path
from typing import Optional

from book_reader.frames import AsyncioFrameScheduler, QueuedFrameScheduler
from book_reader.layout import DEFAULT_BUFFER_COUNT, DEFAULT_FONT_SIZE, ReaderSettings
from book_reader.session import ReaderSession
from book_reader.speech import SpeechState
from book_reader.store import JsonBookStore
from book_reader.tts import EdgeSpeechEngine, SpeechSettings


SPEECH_POLL_SECONDS = 0.1


def _questionary():
    return importlib.import_module("questionary")


class ConsolePresenter:
    """Prints the paragraph being read aloud."""

    def __init__(self, session: Optional[ReaderSession] = None) -> None:
        self.session = session

    def scroll_to(self, offset: float, smooth: bool) -> None:
        pass

    def highlight(self, paragraph_index: Optional[int]) -> None:
        if self.session is None or paragraph_index is None:
            return
        paragraph = self.session.paragraphs[paragraph_index]
        print(f"[{self.session.percent:3d}%] {paragraph.text}")


def _visible_text(session: ReaderSession) -> list[str]:
    top = session.state.scroll_top
    bottom = top + max(session.state.viewport_height, session.line_height)
    lines: list[str] = []
    for position, offset, paragraph in session.visible_paragraphs():
        height = session.index.heights[position]
        if offset + height <= top or offset >= bottom:
            continue
        lines.append(paragraph.text)
    return lines


def print_page(session: ReaderSession) -> None:
    print(f"== {session.current_chapter_title()} ==")
    for line in _visible_text(session):
        print(line)
    print(f"-- {round(session.display_percent)}% --")


def print_table_of_contents(session: ReaderSession) -> None:
    rows = session.navigator.table_of_contents()
    if not rows:
        print("No chapters detected.")
        return
    for position, title, is_current in rows:
        marker = "*" if is_current else " "
        print(f"{marker} {position + 1:3d}. {title}")


def _prompt_for_chapter(session: ReaderSession) -> Optional[int]:
    rows = session.navigator.table_of_contents()
    if not rows:
        print("No chapters detected.")
        return None
    questionary = _questionary()
    current = session.current_chapter()
    choices = [
        questionary.Choice(title=title or f"Chapter {position + 1}", value=position)
        for position, title, _ in rows
    ]
    default = None
    if current is not None:
        default = choices[current]
    return questionary.select(
        "Table of contents:",
        choices=choices,
        default=default,
    ).ask()


def _prompt_for_percent(session: ReaderSession) -> Optional[float]:
    questionary = _questionary()
    value = questionary.text(
        "Jump to percent (0-100):", default=str(session.percent)
    ).ask()
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        print(f"Invalid percent '{value}', staying at {session.percent}%.")
        return None


def _prompt_for_action() -> Optional[str]:
    questionary = _questionary()
    return questionary.select(
        "Reader:",
        choices=[
            questionary.Choice("Next page", value="next_page"),
            questionary.Choice("Previous page", value="prev_page"),
            questionary.Choice("Next chapter", value="next_chapter"),
            questionary.Choice("Previous chapter", value="prev_chapter"),
            questionary.Choice("Table of contents", value="toc"),
            questionary.Choice("Jump to percent", value="seek"),
            questionary.Choice("Larger text (A+)", value="font_up"),
            questionary.Choice("Smaller text (A-)", value="font_down"),
            questionary.Choice("Quit", value="quit"),
        ],
    ).ask()


def run_interactive(session: ReaderSession, scheduler: QueuedFrameScheduler) -> None:
    while True:
        print_page(session)
        action = _prompt_for_action()
        if action is None or action == "quit":
            return
        if action == "next_page":
            session.page_down()
        elif action == "prev_page":
            session.page_up()
        elif action == "next_chapter":
            session.next_chapter()
        elif action == "prev_chapter":
            session.prev_chapter()
        elif action == "toc":
            chapter = _prompt_for_chapter(session)
            if chapter is not None:
                session.go_to_chapter(chapter)
        elif action == "seek":
            percent = _prompt_for_percent(session)
            if percent is not None:
                session.seek_percent(percent)
        elif action == "font_up":
            session.change_font_size(1)
        elif action == "font_down":
            session.change_font_size(-1)
        scheduler.run_pending()


def _apply_navigation(session: ReaderSession, args: argparse.Namespace) -> None:
    if args.goto_chapter is not None:
        session.go_to_chapter(args.goto_chapter - 1)
    if args.seek is not None:
        session.seek_percent(args.seek)


def _reader_settings(args: argparse.Namespace) -> ReaderSettings:
    return ReaderSettings(
        buffer_count=args.buffer,
        viewport_width=args.width,
        viewport_height=args.height,
    ).with_font_size(args.font_size)


def _speech_settings(args: argparse.Namespace) -> SpeechSettings:
    return SpeechSettings(
        voice=args.tts_voice,
        rate=args.tts_rate,
        pitch=args.tts_pitch,
        audio_dirname=args.tts_audio_dir,
    )


async def read_aloud(
    store: JsonBookStore,
    book_id: int,
    args: argparse.Namespace,
) -> int:
    speech_settings = _speech_settings(args)
    engine = EdgeSpeechEngine(
        speech_settings,
        args.output_dir / speech_settings.audio_dirname,
        verbose=not args.quiet,
    )
    presenter = ConsolePresenter()
    session = ReaderSession(
        store,
        book_id,
        settings=_reader_settings(args),
        speech_engine=engine,
        scheduler=AsyncioFrameScheduler(),
        presenter=presenter,
        max_chunk_chars=speech_settings.max_chunk_chars,
        verbose=not args.quiet,
    )
    presenter.session = session
    if not session.open():
        return 1
    try:
        _apply_navigation(session, args)
        if session.start_reading():
            while session.speech_state is not SpeechState.IDLE:
                await asyncio.sleep(SPEECH_POLL_SECONDS)
    finally:
        session.close()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Read long plain-text books with a saved position and read-aloud."
    )
    parser.add_argument(
        "--store",
        type=Path,
        default=Path("books"),
        help="Directory holding <id>.json book records.",
    )
    parser.add_argument(
        "--book",
        type=int,
        default=None,
        help="Id of the book to open.",
    )
    parser.add_argument(
        "--import",
        dest="import_path",
        type=Path,
        default=None,
        help="UTF-8 text file to add to the store before reading.",
    )
    parser.add_argument(
        "--title",
        default=None,
        help="Title for an imported book (default: file name).",
    )
    parser.add_argument(
        "--width",
        type=float,
        default=360.0,
        help="Viewport width in pixels used for layout estimates.",
    )
    parser.add_argument(
        "--height",
        type=float,
        default=640.0,
        help="Viewport height in pixels.",
    )
    parser.add_argument(
        "--font-size",
        type=int,
        default=DEFAULT_FONT_SIZE,
        help="Font size in pixels (clamped to 10-24).",
    )
    parser.add_argument(
        "--buffer",
        type=int,
        default=DEFAULT_BUFFER_COUNT,
        help="Paragraphs materialized beyond each edge of the viewport.",
    )
    parser.add_argument(
        "--chapters",
        action="store_true",
        help="Print the table of contents.",
    )
    parser.add_argument(
        "--goto-chapter",
        type=int,
        default=None,
        help="Jump to this chapter number (1-based).",
    )
    parser.add_argument(
        "--seek",
        type=float,
        default=None,
        help="Jump to this percent of the book.",
    )
    parser.add_argument(
        "--read-aloud",
        action="store_true",
        help="Synthesize speech from the current position to the end.",
    )
    parser.add_argument(
        "--tts-voice",
        default=SpeechSettings().voice,
        help="Edge TTS voice name.",
    )
    parser.add_argument(
        "--tts-rate",
        default=SpeechSettings().rate,
        help="Edge TTS rate adjustment (e.g., '+20%%').",
    )
    parser.add_argument(
        "--tts-pitch",
        default=SpeechSettings().pitch,
        help="Edge TTS pitch adjustment (e.g., '+0Hz').",
    )
    parser.add_argument(
        "--tts-audio-dir",
        default=SpeechSettings().audio_dirname,
        help="Subdirectory of --output-dir for read-aloud clips.",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("output"),
        help="Directory for read-aloud audio clips.",
    )
    parser.add_argument(
        "--prompt",
        action="store_true",
        help="Open an interactive reader.",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress progress and speech log lines.",
    )
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    store = JsonBookStore(args.store, verbose=not args.quiet)

    book_id = args.book
    if args.import_path is not None:
        try:
            book = store.import_text_file(args.import_path, title=args.title)
        except (OSError, UnicodeDecodeError) as exc:
            parser.error(f"Could not import {args.import_path}: {exc}")
        print(f"Imported {book.title!r} as book {book.id} ({len(book.chapters)} chapters).")
        if book_id is None:
            book_id = book.id
    if book_id is None:
        parser.error("--book is required unless --import is given.")

    if args.read_aloud:
        return asyncio.run(read_aloud(store, book_id, args))

    scheduler = QueuedFrameScheduler()
    session = ReaderSession(
        store,
        book_id,
        settings=_reader_settings(args),
        scheduler=scheduler,
        verbose=not args.quiet,
    )
    if not session.open():
        return 1
    try:
        if args.chapters:
            print_table_of_contents(session)
        _apply_navigation(session, args)
        scheduler.run_pending()
        if args.prompt:
            run_interactive(session, scheduler)
        else:
            print_page(session)
    finally:
        session.close()
    return 0
