"""JSON-file book records consumed by the reading engine."""
from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Any, Mapping, Optional, Protocol

from book_reader.chapters import detect_chapters
from book_reader.models import Book, ChapterMark


RECORD_SUFFIX = ".json"


class BookNotFoundError(LookupError):
    """Raised when a book record does not exist."""


class BookStore(Protocol):
    def get(self, book_id: int) -> Optional[Book]:
        ...

    def update(self, book_id: int, fields: Mapping[str, Any]) -> None:
        ...


def _coerce_int(value: object, fallback: int = 0) -> int:
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return fallback


def _coerce_float(value: object, fallback: float = 0.0) -> float:
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return fallback


def book_from_record(record: Mapping[str, Any]) -> Book:
    content = str(record.get("content") or "")
    chapters: list[ChapterMark] = []
    for entry in record.get("chapters") or []:
        if not isinstance(entry, dict):
            continue
        offset = _coerce_int(entry.get("index"), -1)
        if offset < 0 or offset > len(content):
            continue
        chapters.append(
            ChapterMark(title=str(entry.get("title", "")).strip(), char_offset=offset)
        )
    chapters.sort(key=lambda chapter: chapter.char_offset)
    unique: list[ChapterMark] = []
    for chapter in chapters:
        if unique and unique[-1].char_offset == chapter.char_offset:
            continue
        unique.append(chapter)
    return Book(
        id=_coerce_int(record.get("id")),
        title=str(record.get("title") or ""),
        content=content,
        chapters=tuple(unique),
        progress_px=max(0.0, _coerce_float(record.get("progressPx"))),
        percent=_coerce_int(record.get("percent")),
    )


def book_to_record(book: Book) -> dict[str, Any]:
    return {
        "id": book.id,
        "title": book.title,
        "content": book.content,
        "chapters": [
            {"title": chapter.title, "index": chapter.char_offset}
            for chapter in book.chapters
        ],
        "progressPx": book.progress_px,
        "percent": book.percent,
    }


class JsonBookStore:
    """Book records stored as ``<id>.json`` files in one directory."""

    def __init__(self, root: Path, verbose: bool = False) -> None:
        self.root = Path(root)
        self.verbose = verbose

    def _record_path(self, book_id: int) -> Path:
        return self.root / f"{int(book_id)}{RECORD_SUFFIX}"

    def _read_record(self, book_id: int) -> Optional[dict[str, Any]]:
        path = self._record_path(book_id)
        if not path.exists():
            return None
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError):
            if self.verbose:
                print(f"[store] Unreadable record {path.name}.")
            return None
        if not isinstance(payload, dict):
            return None
        return payload

    def _write_record(self, book_id: int, record: Mapping[str, Any]) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        path = self._record_path(book_id)
        temp_path = path.with_suffix(".tmp")
        temp_path.write_text(
            json.dumps(record, indent=2, sort_keys=True, ensure_ascii=False) + "\n",
            encoding="utf-8",
        )
        temp_path.replace(path)

    def get(self, book_id: int) -> Optional[Book]:
        record = self._read_record(book_id)
        if record is None:
            return None
        record.setdefault("id", int(book_id))
        return book_from_record(record)

    def update(self, book_id: int, fields: Mapping[str, Any]) -> None:
        record = self._read_record(book_id)
        if record is None:
            raise BookNotFoundError(f"Book {book_id} does not exist.")
        record.update(fields)
        record["updatedAt"] = int(time.time() * 1000)
        self._write_record(book_id, record)

    def book_ids(self) -> list[int]:
        if not self.root.exists():
            return []
        ids: list[int] = []
        for path in self.root.iterdir():
            if path.suffix == RECORD_SUFFIX and path.stem.isdigit():
                ids.append(int(path.stem))
        return sorted(ids)

    def add(self, title: str, content: str) -> Book:
        book_id = max(self.book_ids(), default=0) + 1
        book = Book(
            id=book_id,
            title=title,
            content=content,
            chapters=tuple(detect_chapters(content)),
        )
        record = book_to_record(book)
        record["updatedAt"] = int(time.time() * 1000)
        self._write_record(book_id, record)
        if self.verbose:
            print(f"[store] Added {title!r} as book {book_id}.")
        return book

    def import_text_file(self, path: Path, title: Optional[str] = None) -> Book:
        content = Path(path).read_text(encoding="utf-8")
        return self.add(title or Path(path).stem, content.replace("\r\n", "\n"))
