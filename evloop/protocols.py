"""Interfaces (Protocols) that decouple the playback engine from real timers.

The engine only needs `call_later` and `now_ms`, so the same engine runs on
the deterministic `evloop.scheduler.SimScheduler` in tests and headless
replays, and on `evloop.runtime.loop_scheduler.LoopScheduler` inside the HTTP
runtime.
"""

from typing import Callable, Protocol


class SchedulerCancel(Protocol):
    """Callable returned by `Scheduler.call_later` to cancel a pending tick."""

    def __call__(self) -> None:
        raise NotImplementedError


class Scheduler(Protocol):
    """Timer abstraction used by the engine to drive automatic playback."""

    def call_later(self, ms: int, cb: Callable[[], None]) -> SchedulerCancel:
        """Schedule callback `cb` to run in `ms` milliseconds."""
        raise NotImplementedError

    def now_ms(self) -> int:
        """Return current time in milliseconds for this scheduler domain."""
        raise NotImplementedError
