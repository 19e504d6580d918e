import unittest
from typing import Callable, Optional
from unittest.mock import Mock

from book_reader.models import Paragraph, ReaderState
from book_reader.offsets import OffsetIndex
from book_reader.speech import (
    UNAVAILABLE_NOTICE,
    SpeechSequencer,
    SpeechSession,
    SpeechState,
    split_text_for_speech,
)


class _FakeEngine:
    def __init__(self, auto_complete: bool = False, raise_on_speak: bool = False) -> None:
        self.auto_complete = auto_complete
        self.raise_on_speak = raise_on_speak
        self.spoken: list[str] = []
        self.callbacks: list[Callable[[Optional[BaseException]], None]] = []
        self.paused = False
        self.cancel_count = 0

    def speak(self, text: str, on_done: Callable[[Optional[BaseException]], None]) -> None:
        if self.raise_on_speak:
            raise RuntimeError("speech synthesis unavailable")
        self.spoken.append(text)
        if self.auto_complete:
            on_done(None)
        else:
            self.callbacks.append(on_done)

    def finish(self, error: Optional[BaseException] = None) -> None:
        self.callbacks.pop(0)(error)

    def pause(self) -> None:
        self.paused = True

    def resume(self) -> None:
        self.paused = False

    def cancel(self) -> None:
        self.cancel_count += 1
        self.callbacks.clear()


class _HoldingEngine(_FakeEngine):
    """Holds completions while paused and delivers them from resume()."""

    def __init__(self) -> None:
        super().__init__()
        self.held: list = []

    def finish(self, error: Optional[BaseException] = None) -> None:
        on_done = self.callbacks.pop(0)
        if self.paused:
            self.held.append((on_done, error))
        else:
            on_done(error)

    def resume(self) -> None:
        super().resume()
        held, self.held = self.held, []
        for on_done, error in held:
            on_done(error)


def _state(texts: list[str], scroll_top: float = 0.0) -> ReaderState:
    return ReaderState(
        paragraphs=[Paragraph(text) for text in texts],
        index=OffsetIndex.build([24.0] * len(texts)),
        scroll_top=scroll_top,
    )


class TestSplitTextForSpeech(unittest.TestCase):
    def test_splits_after_sentence_punctuation(self) -> None:
        self.assertEqual(split_text_for_speech("你好。世界！ok"), ["你好。", "世界！", "ok"])

    def test_normalizes_whitespace(self) -> None:
        self.assertEqual(split_text_for_speech("a  b.\n c"), ["a b.", "c"])

    def test_hard_splits_long_sentences(self) -> None:
        chunks = split_text_for_speech("a" * 400, max_chars=180)

        self.assertEqual([len(chunk) for chunk in chunks], [180, 180, 40])

    def test_blank_text_has_no_chunks(self) -> None:
        self.assertEqual(split_text_for_speech("   "), [])


class TestSpeechSequencer(unittest.TestCase):
    def test_reads_paragraphs_in_order_then_returns_to_idle(self) -> None:
        engine = _FakeEngine()
        highlight = Mock()
        scroll_to = Mock()
        state = _state(["One. Two.", "Three."])
        sequencer = SpeechSequencer(state, engine, scroll_to=scroll_to, highlight=highlight)

        self.assertTrue(sequencer.start())
        self.assertEqual(sequencer.status, SpeechState.SPEAKING)
        self.assertEqual(engine.spoken, ["One."])
        self.assertEqual(list(sequencer.session.pending_chunks), ["Two."])
        self.assertEqual(state.highlighted_index, 0)
        scroll_to.assert_called_with(0.0, True)

        engine.finish()
        engine.finish()

        self.assertEqual(engine.spoken, ["One.", "Two.", "Three."])
        self.assertEqual(state.highlighted_index, 1)
        scroll_to.assert_called_with(24.0, True)

        engine.finish()

        self.assertEqual(sequencer.status, SpeechState.IDLE)
        self.assertFalse(sequencer.active)
        self.assertIsNone(state.highlighted_index)
        highlight.assert_called_with(None)

    def test_starts_at_paragraph_under_viewport_top(self) -> None:
        engine = _FakeEngine()
        sequencer = SpeechSequencer(_state(["First.", "Second.", "Third."], scroll_top=30), engine)

        sequencer.start()

        self.assertEqual(engine.spoken, ["Second."])
        self.assertEqual(sequencer.session.current_paragraph_index, 1)

    def test_blank_paragraph_is_skipped_without_audio(self) -> None:
        engine = _FakeEngine(auto_complete=True)
        state = _state(["   ", "Hello."])
        sequencer = SpeechSequencer(state, engine)

        sequencer.start()

        self.assertEqual(engine.spoken, ["Hello."])
        self.assertEqual(sequencer.status, SpeechState.IDLE)

    def test_failed_chunk_is_skipped(self) -> None:
        engine = _FakeEngine()
        sequencer = SpeechSequencer(_state(["One. Two."]), engine)
        sequencer.start()

        engine.finish(RuntimeError("device busy"))

        self.assertEqual(engine.spoken, ["One.", "Two."])
        self.assertEqual(sequencer.chunks_failed, 1)
        self.assertEqual(sequencer.status, SpeechState.SPEAKING)

    def test_stop_ignores_in_flight_completion(self) -> None:
        engine = _FakeEngine()
        sequencer = SpeechSequencer(_state(["One. Two.", "Three."]), engine)
        sequencer.start()
        in_flight = engine.callbacks[0]

        sequencer.stop()
        in_flight(None)

        self.assertEqual(engine.spoken, ["One."])
        self.assertEqual(sequencer.status, SpeechState.IDLE)

    def test_completion_from_previous_session_is_ignored(self) -> None:
        engine = _FakeEngine()
        sequencer = SpeechSequencer(_state(["One. Two.", "Three."]), engine)
        sequencer.start()
        stale = engine.callbacks[0]
        sequencer.stop()
        sequencer.start()

        stale(None)

        self.assertEqual(engine.spoken, ["One.", "One."])
        self.assertEqual(list(sequencer.session.pending_chunks), ["Two."])

    def test_stop_is_idempotent(self) -> None:
        engine = _FakeEngine()
        state = _state(["One."])
        sequencer = SpeechSequencer(state, engine)
        sequencer.start()

        sequencer.stop()
        first = (sequencer.status, sequencer.session, state.highlighted_index)
        sequencer.stop()

        self.assertEqual((sequencer.status, sequencer.session, state.highlighted_index), first)
        self.assertEqual(sequencer.session, SpeechSession())
        self.assertEqual(sequencer.status, SpeechState.IDLE)

    def test_stop_when_idle_is_safe(self) -> None:
        engine = _FakeEngine()
        sequencer = SpeechSequencer(_state(["One."]), engine)

        sequencer.stop()

        self.assertEqual(sequencer.status, SpeechState.IDLE)

    def test_pause_and_resume_keep_queue(self) -> None:
        engine = _FakeEngine()
        sequencer = SpeechSequencer(_state(["One. Two."]), engine)

        self.assertFalse(sequencer.pause())
        sequencer.start()
        self.assertFalse(sequencer.resume())
        self.assertTrue(sequencer.pause())

        self.assertEqual(sequencer.status, SpeechState.PAUSED)
        self.assertTrue(sequencer.session.paused)
        self.assertTrue(engine.paused)
        self.assertEqual(list(sequencer.session.pending_chunks), ["Two."])
        self.assertFalse(sequencer.pause())

        self.assertTrue(sequencer.resume())
        self.assertEqual(sequencer.status, SpeechState.SPEAKING)
        self.assertFalse(engine.paused)

    def test_resume_delivering_last_completion_returns_to_idle(self) -> None:
        engine = _HoldingEngine()
        state = _state(["One."])
        sequencer = SpeechSequencer(state, engine)
        sequencer.start()
        sequencer.pause()
        engine.finish()

        self.assertEqual(sequencer.status, SpeechState.PAUSED)
        self.assertTrue(sequencer.resume())

        self.assertEqual(sequencer.status, SpeechState.IDLE)
        self.assertFalse(sequencer.active)
        self.assertIsNone(state.highlighted_index)
        self.assertTrue(sequencer.start())
        self.assertEqual(engine.spoken, ["One.", "One."])

    def test_resume_delivering_held_completion_continues_reading(self) -> None:
        engine = _HoldingEngine()
        sequencer = SpeechSequencer(_state(["One. Two."]), engine)
        sequencer.start()
        sequencer.pause()
        engine.finish()

        sequencer.resume()

        self.assertEqual(sequencer.status, SpeechState.SPEAKING)
        self.assertEqual(engine.spoken, ["One.", "Two."])

    def test_failed_resume_stays_paused(self) -> None:
        engine = _FakeEngine()
        engine.resume = Mock(side_effect=RuntimeError("device busy"))
        sequencer = SpeechSequencer(_state(["One."]), engine)
        sequencer.start()
        sequencer.pause()

        self.assertFalse(sequencer.resume())

        self.assertEqual(sequencer.status, SpeechState.PAUSED)
        self.assertTrue(sequencer.session.paused)

    def test_start_only_from_idle(self) -> None:
        engine = _FakeEngine()
        sequencer = SpeechSequencer(_state(["One.", "Two."]), engine)

        self.assertTrue(sequencer.start())
        self.assertFalse(sequencer.start())
        self.assertEqual(engine.spoken, ["One."])

    def test_start_without_paragraphs_does_nothing(self) -> None:
        engine = _FakeEngine()
        sequencer = SpeechSequencer(_state([]), engine)

        self.assertFalse(sequencer.start())
        self.assertEqual(sequencer.status, SpeechState.IDLE)

    def test_unavailable_engine_notifies_once_and_returns_to_idle(self) -> None:
        engine = _FakeEngine(raise_on_speak=True)
        notify = Mock()
        state = _state(["One.", "Two."])
        sequencer = SpeechSequencer(state, engine, notify=notify)

        self.assertFalse(sequencer.start())

        notify.assert_called_once_with(UNAVAILABLE_NOTICE)
        self.assertEqual(sequencer.status, SpeechState.IDLE)
        self.assertIsNone(state.highlighted_index)

    def test_synchronous_engine_reads_long_books_without_recursion(self) -> None:
        engine = _FakeEngine(auto_complete=True)
        sequencer = SpeechSequencer(_state([f"Line {n}." for n in range(3000)]), engine)

        sequencer.start()

        self.assertEqual(len(engine.spoken), 3000)
        self.assertEqual(sequencer.chunks_spoken, 3000)
        self.assertEqual(sequencer.status, SpeechState.IDLE)


if __name__ == "__main__":
    unittest.main()
