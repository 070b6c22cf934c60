"""Cancellable deferred callbacks on the peer's single event loop."""

from __future__ import annotations

from typing import Any, Callable, Optional
import asyncio


class Handle:
    """A scheduled callback that can be cancelled exactly once."""

    def __init__(self, timer: Optional[asyncio.TimerHandle] = None) -> None:
        self._timer = timer
        self.cancelled = False

    def cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        if self._timer is not None:
            self._timer.cancel()


class Scheduler:
    """Thin wrapper over ``loop.call_later`` so game code never touches the
    loop directly and tests can swap in a manual clock."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return self.loop.time()

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> Handle:
        handle = Handle()

        def fire() -> None:
            if not handle.cancelled:
                handle.cancelled = True
                callback(*args)

        handle._timer = self.loop.call_later(max(0.0, delay), fire)
        return handle


class Countdown:
    """Whole-second countdown: ``on_tick(remaining)`` every second, then
    ``on_expire()`` once when it reaches zero."""

    def __init__(
        self,
        scheduler: Scheduler,
        on_tick: Callable[[int], None],
        on_expire: Callable[[], None],
    ) -> None:
        self._scheduler = scheduler
        self._on_tick = on_tick
        self._on_expire = on_expire
        self._handle: Optional[Handle] = None
        self.remaining = 0

    @property
    def running(self) -> bool:
        return self._handle is not None and not self._handle.cancelled

    def start(self, seconds: int) -> None:
        self.stop()
        self.remaining = seconds
        if seconds <= 0:
            self._on_expire()
            return
        self._handle = self._scheduler.call_later(1.0, self._tick)

    def stop(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _tick(self) -> None:
        self._handle = None
        self.remaining = max(0, self.remaining - 1)
        if self.remaining == 0:
            self._on_expire()
            return
        # Reschedule before notifying so a listener may stop us
        self._handle = self._scheduler.call_later(1.0, self._tick)
        self._on_tick(self.remaining)
