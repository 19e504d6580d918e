"""Frame tick schedulers used to coalesce work into one run per frame."""
from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional, Protocol


FRAME_INTERVAL_SECONDS = 1 / 60


class FrameScheduler(Protocol):
    def request_frame(self, callback: Callable[[], None]) -> Any:
        ...

    def cancel_frame(self, handle: Any) -> None:
        ...


class QueuedFrameScheduler:
    """Runs requested callbacks when the host calls ``run_pending``."""

    def __init__(self) -> None:
        self._next_handle = 0
        self._pending: dict[int, Callable[[], None]] = {}

    def request_frame(self, callback: Callable[[], None]) -> int:
        self._next_handle += 1
        self._pending[self._next_handle] = callback
        return self._next_handle

    def cancel_frame(self, handle: int) -> None:
        self._pending.pop(handle, None)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def run_pending(self) -> int:
        callbacks = list(self._pending.values())
        self._pending.clear()
        for callback in callbacks:
            callback()
        return len(callbacks)


class AsyncioFrameScheduler:
    """Runs requested callbacks on an asyncio loop one frame later."""

    def __init__(
        self,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        interval: float = FRAME_INTERVAL_SECONDS,
    ) -> None:
        self._loop = loop
        self.interval = interval

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def request_frame(self, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self.loop.call_later(self.interval, callback)

    def cancel_frame(self, handle: asyncio.TimerHandle) -> None:
        handle.cancel()
