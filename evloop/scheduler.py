"""Deterministic clock and scheduler for replaying traces without real time.

- `SimClock`: monotonically increasing time in milliseconds; you call
  `advance(ms)` to move time forward.
- `SimScheduler`: schedules callbacks relative to the simulated time and
  executes them when `run_due()` is called.

Typical playback loop:

    engine.play()
    while scheduler.pending():
        scheduler.advance_to_next()

No threads and no wall-clock sleeps, so a whole trace plays back instantly
and identically on every run.
"""

import heapq
from typing import Callable, List, Optional


class SimClock:
    """Monotonic simulated clock measured in milliseconds."""

    def __init__(self) -> None:
        self.t = 0

    def now_ms(self) -> int:
        """Return the current simulated time in milliseconds."""
        return self.t

    def advance(self, ms: int) -> None:
        """Advance simulated time by `ms` milliseconds (non-negative)."""
        if ms < 0:
            raise ValueError(f"cannot move the clock backwards ({ms}ms)")
        self.t += ms


class SimScheduler:
    """Scheduler backed by a min-heap of scheduled callbacks.

    Schedule callbacks using `call_later(ms, cb)`; get a cancel function back.
    Execute ready callbacks by calling `run_due()` after advancing the clock.
    A counter ensures FIFO ordering for callbacks scheduled for the same time.
    """

    def __init__(self, clock: Optional[SimClock] = None) -> None:
        self.clock = clock if clock is not None else SimClock()
        self.heap: List[list] = []
        self._counter = 0  # tie-breaker for stable ordering

    def now_ms(self) -> int:
        return self.clock.now_ms()

    def call_later(self, ms: int, cb: Callable[[], None]):
        """Schedule `cb` to run after `ms` milliseconds of simulated time.

        Returns a zero-arg cancel function; if invoked before the callback is
        due, the callback will not run.
        """
        when = self.clock.now_ms() + ms
        self._counter += 1
        event = [when, self._counter, cb, True]
        heapq.heappush(self.heap, event)

        def cancel():
            event[3] = False

        return cancel

    def run_due(self) -> int:
        """Run all callbacks whose scheduled time is <= current time.

        Returns the number of live callbacks that ran.
        """
        ran = 0
        while self.heap and self.heap[0][0] <= self.clock.now_ms():
            when, _, cb, live = heapq.heappop(self.heap)
            if live:
                cb()
                ran += 1
        return ran

    def pending(self) -> int:
        """Number of queued callbacks that have not been cancelled."""
        return sum(1 for event in self.heap if event[3])

    def advance_to_next(self) -> int:
        """Jump the clock to the earliest live callback and run everything due.

        Cancelled events at the head of the heap are discarded first. Returns
        the number of callbacks that ran (0 when nothing live is queued).
        """
        while self.heap and not self.heap[0][3]:
            heapq.heappop(self.heap)
        if not self.heap:
            return 0
        self.clock.advance(max(0, self.heap[0][0] - self.clock.now_ms()))
        return self.run_due()

    def dump_state(self, n: int = 5) -> str:
        """Return a human-readable snapshot of timer state and queued events.

        Args:
            n: Maximum number of queued events to include (default: 5).

        The snapshot includes the current simulated time, total queued events,
        and details for the first `n` events in due-time order, without
        changing the underlying queue.
        """
        now = self.clock.now_ms()
        events = sorted(self.heap)[:n]
        lines = [
            f"SimScheduler @ t = {now}ms",
            f"queued = {len(self.heap)} (showing first {len(events)})",
        ]
        for i, (when, counter, cb, live) in enumerate(events):
            cb_name = getattr(cb, "__name__", None)
            cb_desc = cb_name if isinstance(cb_name, str) else repr(cb)
            remaining = max(0, when - now)
            lines.append(
                f"#{i:02d} due @ {when}ms (in {remaining}ms) counter={counter} live={live} cb={cb_desc}"
            )
        return "\n".join(lines)
