from __future__ import annotations

import asyncio
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Callable, Optional

from book_reader.speech import MAX_CHUNK_CHARS, SpeechUnavailableError


class TTSSynthesisError(RuntimeError):
    """Raised when a chunk could not be synthesized."""


@dataclass(frozen=True)
class SpeechSettings:
    voice: str = "zh-TW-HsiaoChenNeural"
    rate: str = "+0%"
    pitch: str = "+0Hz"
    max_chunk_chars: int = MAX_CHUNK_CHARS
    audio_dirname: str = "speech"


AUDIO_EXTENSION = ".mp3"


async def synthesize_speech(
    text: str, output_path: Path, settings: SpeechSettings
) -> Path:
    import edge_tts

    communicate = edge_tts.Communicate(
        text,
        voice=settings.voice,
        rate=settings.rate,
        pitch=settings.pitch,
    )
    output_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        await communicate.save(str(output_path))
    except edge_tts.exceptions.NoAudioReceived as error:
        if output_path.exists():
            output_path.unlink()
        raise TTSSynthesisError(
            "No audio was received from Edge TTS. "
            "Verify the voice, rate, pitch, and network connectivity."
        ) from error
    return output_path


class EdgeSpeechEngine:
    """Speech engine writing each utterance to a numbered audio clip.

    Synthesis runs as a task on the running asyncio loop. While paused,
    finished utterances are held back and reported on resume.
    """

    def __init__(
        self,
        settings: SpeechSettings,
        output_dir: Path,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        verbose: bool = False,
    ) -> None:
        self.settings = settings
        self.output_dir = Path(output_dir)
        self.verbose = verbose
        self.clips: list[Path] = []
        self._loop = loop
        self._task: Optional[asyncio.Task] = None
        self._paused = False
        self._held: list[tuple[Callable[[Optional[BaseException]], None], Optional[BaseException]]] = []

    def _clip_path(self) -> Path:
        return self.output_dir / f"clip-{len(self.clips) + 1:05d}{AUDIO_EXTENSION}"

    def speak(
        self, text: str, on_done: Callable[[Optional[BaseException]], None]
    ) -> None:
        loop = self._loop
        if loop is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError as error:
                raise SpeechUnavailableError(
                    "Edge TTS playback needs a running asyncio loop."
                ) from error
        path = self._clip_path()
        self.clips.append(path)
        task = loop.create_task(synthesize_speech(text, path, self.settings))
        task.add_done_callback(partial(self._on_task_done, on_done, path))
        self._task = task

    def _on_task_done(
        self,
        on_done: Callable[[Optional[BaseException]], None],
        path: Path,
        task: asyncio.Task,
    ) -> None:
        if task is self._task:
            self._task = None
        if task.cancelled():
            return
        error = task.exception()
        if self.verbose:
            if error is None:
                print(f"[tts] Wrote {path.name}.")
            else:
                print(f"[tts] Skipped {path.name}: {error}")
        if self._paused:
            self._held.append((on_done, error))
            return
        on_done(error)

    def pause(self) -> None:
        self._paused = True

    def resume(self) -> None:
        self._paused = False
        held, self._held = self._held, []
        for on_done, error in held:
            on_done(error)

    def cancel(self) -> None:
        self._paused = False
        self._held = []
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
