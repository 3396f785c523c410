"""Playback engine that replays a compiled trace into a live queue state.

The engine owns exactly one `QueueState` and one pending-tick handle. Steps
are applied strictly in trace order by `_advance()`, which both the timer and
the manual `step()` control go through, so mixing the two can never skip or
reorder steps.

Playback states::

    idle -> playing <-> paused -> finished
      ^________________________________|   reset() / load_source()

Every control operation that stops automatic playback cancels the pending
tick and bumps a generation counter. A tick that still fires afterwards sees
a stale generation and does nothing.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from evloop.compiler import compile_steps
from evloop.config import PlaybackConfig
from evloop.protocols import Scheduler, SchedulerCancel
from evloop.queue_types import ExecutionStep, Phase, QueueClass, QueueSnapshot, QueueState

logger = logging.getLogger(__name__)

Listener = Callable[[QueueSnapshot], None]


class PlaybackState(str, Enum):
    """Transport state exposed to display code."""

    IDLE = "idle"
    PLAYING = "playing"
    PAUSED = "paused"
    FINISHED = "finished"


@dataclass
class ExecutionEngine:
    """
    Replays `steps` one at a time under manual or timed control.

    Parameters
    ----------
    steps:
        Trace produced by `evloop.compiler.compile_steps`.
    scheduler:
        Implementation of `evloop.protocols.Scheduler` that drives automatic
        playback. Tests pass a `SimScheduler`; the HTTP runtime passes a
        `LoopScheduler`.
    config:
        Speed bounds and tick cadence. `config.match_by_label` switches dequeue
        matching from task identity to label+class.

    Attributes
    ----------
    playback_state:
        Current `PlaybackState`.
    speed:
        Current speed, always within the configured bounds.
    queue_state:
        The live queue contents. Callers should read `snapshot()` instead.
    """

    steps: List[ExecutionStep]
    scheduler: Scheduler
    config: PlaybackConfig = field(default_factory=PlaybackConfig)
    playback_state: PlaybackState = field(default=PlaybackState.IDLE, init=False)
    speed: int = field(default=1, init=False)
    queue_state: QueueState = field(default_factory=QueueState, init=False)
    _tick_cancel: Optional[SchedulerCancel] = field(default=None, init=False)
    _generation: int = field(default=0, init=False)
    _listeners: List[Listener] = field(default_factory=list, init=False)

    def __post_init__(self) -> None:
        self.steps = list(self.steps)
        self.speed = self.config.clamp_speed(self.config.speed)

    @classmethod
    def from_source(
        cls, source_text: str, scheduler: Scheduler, config: Optional[PlaybackConfig] = None
    ) -> "ExecutionEngine":
        return cls(compile_steps(source_text), scheduler, config or PlaybackConfig())

    @property
    def current_step_index(self) -> int:
        return self.queue_state.current_step_index

    @property
    def total_steps(self) -> int:
        return len(self.steps)

    # Transport controls
    def play(self) -> None:
        """Start automatic playback; one step is applied per tick."""
        if self.playback_state in (PlaybackState.PLAYING, PlaybackState.FINISHED):
            return
        if self.current_step_index >= len(self.steps) - 1:
            # Only reachable with an empty trace.
            self._finish()
            return
        self._set_state(PlaybackState.PLAYING)
        self._schedule_tick()

    def pause(self) -> None:
        """Stop automatic playback and keep the current position."""
        if self.playback_state is not PlaybackState.PLAYING:
            return
        self._cancel_tick()
        self._set_state(PlaybackState.PAUSED)

    def step(self) -> None:
        """Apply exactly one step now, pausing automatic playback first."""
        if self.playback_state is PlaybackState.FINISHED:
            return
        if self.playback_state is PlaybackState.PLAYING:
            self.pause()
        self._advance()
        if self.playback_state is PlaybackState.IDLE:
            self._set_state(PlaybackState.PAUSED)

    def reset(self) -> None:
        """Stop playback and return to the position before the first step."""
        self._cancel_tick()
        self.queue_state = QueueState()
        self._set_state(PlaybackState.IDLE)
        self._notify()

    def load_source(self, source_text: str) -> None:
        """Recompile from `source_text` and reset."""
        self._cancel_tick()
        self.steps = compile_steps(source_text)
        logger.info("loaded source: %d steps", len(self.steps))
        self.reset()

    def set_speed(self, speed: int) -> None:
        """Change the cadence of ticks scheduled from now on.

        Out-of-range values are clamped to the configured bounds. A tick that
        is already pending keeps its original due time.
        """
        if isinstance(speed, bool) or not isinstance(speed, int):
            raise ValueError(f"speed must be an integer, got {speed!r}")
        self.speed = self.config.clamp_speed(speed)

    def control(self, action: str) -> None:
        """Dispatch a transport control by name (play, pause, step, reset)."""
        actions: Dict[str, Callable[[], None]] = {
            "play": self.play,
            "pause": self.pause,
            "step": self.step,
            "reset": self.reset,
        }
        if action not in actions:
            raise ValueError(f"Unknown control action {action!r}")
        actions[action]()

    # Read-only views
    def snapshot(self) -> QueueSnapshot:
        return self.queue_state.snapshot()

    def brief_state(self) -> Dict[str, Any]:
        """JSON-ready playback status plus the current queue snapshot."""
        return {
            "playbackState": self.playback_state.value,
            "speed": self.speed,
            "currentStepIndex": self.current_step_index,
            "totalSteps": self.total_steps,
            "queues": self.snapshot().to_dict(),
        }

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call `listener` with a fresh snapshot after every state change.

        Returns a zero-arg function that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # Internals
    def _set_state(self, state: PlaybackState) -> None:
        if state is not self.playback_state:
            logger.info("playback %s -> %s", self.playback_state.value, state.value)
            self.playback_state = state

    def _finish(self) -> None:
        self._cancel_tick()
        self._set_state(PlaybackState.FINISHED)

    def _schedule_tick(self) -> None:
        generation = self._generation

        def tick():
            self._on_tick(generation)

        self._tick_cancel = self.scheduler.call_later(self.config.interval_ms(self.speed), tick)

    def _cancel_tick(self) -> None:
        self._generation += 1
        if self._tick_cancel is not None:
            self._tick_cancel()
            self._tick_cancel = None

    def _on_tick(self, generation: int) -> None:
        if generation != self._generation or self.playback_state is not PlaybackState.PLAYING:
            logger.debug("ignoring stale tick (generation %d)", generation)
            return
        self._tick_cancel = None
        self._advance()
        if self.playback_state is PlaybackState.PLAYING:
            self._schedule_tick()

    def _advance(self) -> bool:
        """Apply the next step; returns False when the trace is exhausted."""
        index = self.current_step_index + 1
        if index >= len(self.steps):
            self._finish()
            return False
        self._apply(self.steps[index], index)
        if index == len(self.steps) - 1:
            self._finish()
        self._notify()
        return True

    def _matches(self, entry: ExecutionStep, step: ExecutionStep) -> bool:
        if self.config.match_by_label:
            return entry.label == step.label and entry.queue_class == step.queue_class
        return entry.task_id == step.task_id

    def _remove_matching(self, queue: List[ExecutionStep], step: ExecutionStep) -> None:
        for i, entry in enumerate(queue):
            if self._matches(entry, step):
                del queue[i]
                return

    def _apply(self, step: ExecutionStep, index: int) -> None:
        state = self.queue_state
        queues = state.queues
        if step.phase is Phase.ENQUEUE:
            queues[step.queue_class].append(step)
        elif step.phase is Phase.DEQUEUE:
            self._remove_matching(queues[step.queue_class], step)
            queues[QueueClass.CALL_STACK].append(step)
        elif step.phase is Phase.EXECUTE:
            if step.queue_class is QueueClass.CALL_STACK:
                queues[QueueClass.CALL_STACK] = [step]
            else:
                self._remove_matching(queues[QueueClass.CALL_STACK], step)
            if step.output is not None:
                state.output.append(step.output)
        elif step.phase is Phase.OUTPUT:
            if step.output is not None:
                state.output.append(step.output)

        state.current_step_index = index
        state.highlighted_line = step.source_line
        state.current_annotation = step.annotation
        logger.debug("step %d: %s %s (%s)", index, step.phase.value, step.label, step.queue_class.value)

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            listener(snapshot)
