"""Event-loop queue visualizer: step compiler and playback engine."""

from .compiler import compile_steps
from .config import PlaybackConfig
from .engine import ExecutionEngine, PlaybackState
from .queue_types import ExecutionStep, Phase, QueueClass, QueueSnapshot, QueueState
from .scheduler import SimClock, SimScheduler

__all__ = [
    "ExecutionEngine",
    "ExecutionStep",
    "Phase",
    "PlaybackConfig",
    "PlaybackState",
    "QueueClass",
    "QueueSnapshot",
    "QueueState",
    "SimClock",
    "SimScheduler",
    "compile_steps",
]
