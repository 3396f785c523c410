"""Shared types for the event-loop visualizer.

The compiler produces a list of immutable `ExecutionStep` records; the engine
replays them into a single mutable `QueueState`. Display code only ever sees a
`QueueSnapshot`, a frozen copy taken after each applied step.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class QueueClass(str, Enum):
    """
    Priority lane a scheduled unit belongs to.

    Members are declared in priority order: the call stack runs first, then
    the microtask queue drains, then macrotasks run one at a time, then
    animation-frame callbacks, and idle callbacks last.
    """

    CALL_STACK = "callStack"
    MICROTASK = "microtask"
    MACROTASK = "macrotask"
    ANIMATION = "animation"
    IDLE = "idle"


class Phase(str, Enum):
    """Kind of transition a step performs on the queue state."""

    ENQUEUE = "enqueue"
    DEQUEUE = "dequeue"
    EXECUTE = "execute"
    OUTPUT = "output"


@dataclass(frozen=True)
class QueueInfo:
    """Display metadata for one queue lane."""

    queue_class: QueueClass
    label: str
    description: str


QUEUE_INFO: Tuple[QueueInfo, ...] = (
    QueueInfo(
        QueueClass.CALL_STACK,
        "Call Stack",
        "Synchronous code executes immediately. Functions push/pop frames onto the stack.",
    ),
    QueueInfo(
        QueueClass.MICROTASK,
        "Microtask Queue",
        "Promise.then, queueMicrotask, MutationObserver. Drains completely after "
        "each task before the next macrotask.",
    ),
    QueueInfo(
        QueueClass.MACROTASK,
        "Macrotask Queue",
        "setTimeout, setInterval, I/O callbacks. One macrotask executes per event "
        "loop iteration, then microtasks drain.",
    ),
    QueueInfo(
        QueueClass.ANIMATION,
        "Animation Frame",
        "requestAnimationFrame. Runs before the browser paints, typically at 60fps.",
    ),
    QueueInfo(
        QueueClass.IDLE,
        "Idle Callback",
        "requestIdleCallback. Runs when the browser is idle with no pending work. "
        "Lowest priority.",
    ),
)


@dataclass(frozen=True)
class ExecutionStep:
    """
    One atomic, replayable transition in a compiled trace.

    Parameters
    ----------
    id:
        Unique within a trace. Assigned from a counter, so recompiling the same
        text gives the same ids.
    task_id:
        Identity of the scheduled unit this step belongs to. The enqueue,
        dequeue and execute steps of one unit share it; the engine uses it to
        find the unit again when it leaves a queue.
    code / label / annotation:
        Display text: reconstructed call, short label, and a sentence saying
        what this transition means.
    queue_class / phase:
        Which lane the unit lives in and what the step does to it.
    source_line:
        1-based line in the compiled source, for highlighting.
    output:
        Printed text; only set on steps that print.
    """

    id: int
    task_id: int
    code: str
    label: str
    annotation: str
    queue_class: QueueClass
    source_line: int
    phase: Phase
    output: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "taskId": self.task_id,
            "code": self.code,
            "label": self.label,
            "annotation": self.annotation,
            "queueType": self.queue_class.value,
            "sourceLine": self.source_line,
            "phase": self.phase.value,
        }
        if self.output is not None:
            data["output"] = self.output
        return data


@dataclass(frozen=True)
class QueueSnapshot:
    """Read-only copy of a `QueueState` handed to display collaborators."""

    queues: Tuple[Tuple[QueueClass, Tuple[ExecutionStep, ...]], ...]
    output: Tuple[str, ...]
    current_step_index: int
    highlighted_line: Optional[int]
    current_annotation: Optional[str]

    def queue(self, queue_class: QueueClass) -> Tuple[ExecutionStep, ...]:
        for qc, entries in self.queues:
            if qc == queue_class:
                return entries
        return ()

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            qc.value: [s.to_dict() for s in entries] for qc, entries in self.queues
        }
        data["output"] = list(self.output)
        data["currentStepIndex"] = self.current_step_index
        data["highlightedLine"] = self.highlighted_line
        data["currentAnnotation"] = self.current_annotation
        return data


def _empty_queues() -> Dict[QueueClass, List[ExecutionStep]]:
    return {qc: [] for qc in QueueClass}


@dataclass
class QueueState:
    """
    Mutable contents of every queue plus the console log.

    Only `ExecutionEngine` mutates this, one step at a time. A reset replaces
    the instance rather than clearing it.
    """

    queues: Dict[QueueClass, List[ExecutionStep]] = field(default_factory=_empty_queues)
    output: List[str] = field(default_factory=list)
    current_step_index: int = -1
    highlighted_line: Optional[int] = None
    current_annotation: Optional[str] = None

    @property
    def call_stack(self) -> List[ExecutionStep]:
        return self.queues[QueueClass.CALL_STACK]

    def snapshot(self) -> QueueSnapshot:
        return QueueSnapshot(
            queues=tuple((qc, tuple(self.queues[qc])) for qc in QueueClass),
            output=tuple(self.output),
            current_step_index=self.current_step_index,
            highlighted_line=self.highlighted_line,
            current_annotation=self.current_annotation,
        )
