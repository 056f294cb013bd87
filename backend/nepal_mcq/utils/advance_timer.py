"""Cancellable one-shot timer on the asyncio event loop."""

from __future__ import annotations

import asyncio
from typing import Callable, Optional


class AdvanceTimer:
    """Run `callback` once after `delay` seconds unless cancelled first.

    The callback runs on the event loop thread; nothing here starts a
    thread or blocks. Once `cancel()` returns the callback will not run.
    """

    def __init__(self, delay: float, callback: Callable[[], None], loop: Optional[asyncio.AbstractEventLoop] = None):
        self._delay = delay
        self._callback = callback
        self._loop = loop
        self._handle: Optional[asyncio.TimerHandle] = None
        self._cancelled = False
        self._fired = False

    @property
    def pending(self) -> bool:
        return self._handle is not None

    @property
    def fired(self) -> bool:
        return self._fired

    def start(self) -> None:
        if self._handle is not None or self._cancelled or self._fired:
            raise RuntimeError("timer already used")
        loop = self._loop or asyncio.get_running_loop()
        self._handle = loop.call_later(self._delay, self._fire)

    def cancel(self) -> None:
        self._cancelled = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        # a handle cancelled after it was queued for this tick still lands here
        if self._cancelled:
            return
        self._handle = None
        self._fired = True
        self._callback()
