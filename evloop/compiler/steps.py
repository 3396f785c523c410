"""Turn scanned units into the ordered step trace the engine replays.

Emission follows a fixed six-phase order that mirrors queue priority:

1. synchronous call-stack work executes in program order;
2. every deferred unit is enqueued (all registrations happen before the loop
   advances);
3. the microtask queue drains;
4. macrotasks run one at a time, each followed by the microtasks its body
   scheduled;
5. animation-frame callbacks run;
6. idle callbacks run.

This is a simplification of real interleaving, which would check the
microtask queue between every macrotask and before rendering, but it keeps
the relative priorities right for the recognized patterns.
"""

import itertools
import logging
from typing import Dict, Iterator, List, Optional, Tuple

from evloop.compiler.scanner import ScheduledUnit, scan_units
from evloop.queue_types import ExecutionStep, Phase, QueueClass

logger = logging.getLogger(__name__)

SYNC_ANNOTATION = "Synchronous code executes immediately on the call stack"
OUTPUT_ANNOTATION = "Callback logs another line while it runs"

ENQUEUE_ANNOTATIONS: Dict[QueueClass, str] = {
    QueueClass.CALL_STACK: "Pushed to call stack",
    QueueClass.MICROTASK: "Continuation registered; callback added to microtask queue",
    QueueClass.MACROTASK: "setTimeout registered; callback added to macrotask queue",
    QueueClass.ANIMATION: "requestAnimationFrame registered; callback added to animation frame queue",
    QueueClass.IDLE: "requestIdleCallback registered; callback added to idle queue",
}

# (dequeue, execute) annotations for each drained lane.
DRAIN_ANNOTATIONS: Dict[QueueClass, Tuple[str, str]] = {
    QueueClass.MICROTASK: (
        "Microtask queue drains first: higher priority than macrotasks",
        "Executing microtask on the call stack",
    ),
    QueueClass.MACROTASK: (
        "Timer expired: dequeue from macrotask queue",
        "Executing macrotask callback on the call stack",
    ),
    QueueClass.ANIMATION: (
        "Browser ready to paint: executing rAF callback",
        "Executing animation frame callback",
    ),
    QueueClass.IDLE: (
        "Browser idle: executing idle callback",
        "Executing idle callback (lowest priority)",
    ),
}

NESTED_ANNOTATIONS: Tuple[str, str, str] = (
    "Microtask created inside macrotask; enqueued to microtask queue",
    "Draining microtask queue before next macrotask",
    "Executing nested microtask",
)

DRAIN_ORDER = (QueueClass.MICROTASK, QueueClass.MACROTASK, QueueClass.ANIMATION, QueueClass.IDLE)


class StepEmitter:
    """Builds one trace. Ids and task ids come from counters, so output is
    deterministic for a given unit list."""

    def __init__(self) -> None:
        self.steps: List[ExecutionStep] = []
        self._step_ids: Iterator[int] = itertools.count(1)
        self._task_ids: Iterator[int] = itertools.count(1)
        self._assigned: Dict[int, int] = {}

    def task_id(self, unit: ScheduledUnit) -> int:
        key = id(unit)
        if key not in self._assigned:
            self._assigned[key] = next(self._task_ids)
        return self._assigned[key]

    def push(
        self,
        unit: ScheduledUnit,
        phase: Phase,
        annotation: str,
        output: Optional[str] = None,
        source_line: Optional[int] = None,
    ) -> None:
        self.steps.append(
            ExecutionStep(
                id=next(self._step_ids),
                task_id=self.task_id(unit),
                code=unit.source_text,
                label=unit.label,
                annotation=annotation,
                queue_class=unit.queue_class,
                source_line=source_line if source_line is not None else unit.source_line,
                phase=phase,
                output=output,
            )
        )

    def execute(self, unit: ScheduledUnit, annotation: str) -> None:
        """Execute `unit`, then one output step per extra line it prints."""
        self.push(unit, Phase.EXECUTE, annotation, output=unit.produced_output)
        for line, text in unit.extra_output:
            self.push(unit, Phase.OUTPUT, OUTPUT_ANNOTATION, output=text, source_line=line)

    def emit(self, units: List[ScheduledUnit]) -> List[ExecutionStep]:
        sync = [u for u in units if u.queue_class is QueueClass.CALL_STACK]
        deferred = [u for u in units if u.queue_class is not QueueClass.CALL_STACK]
        for unit in units:
            self.task_id(unit)

        for unit in sync:
            self.execute(unit, SYNC_ANNOTATION)

        for unit in deferred:
            self.push(unit, Phase.ENQUEUE, ENQUEUE_ANNOTATIONS[unit.queue_class])

        for queue_class in DRAIN_ORDER:
            dequeue_note, execute_note = DRAIN_ANNOTATIONS[queue_class]
            for unit in deferred:
                if unit.queue_class is not queue_class:
                    continue
                self.push(unit, Phase.DEQUEUE, dequeue_note)
                self.execute(unit, execute_note)
                self.drain_nested(unit)

        return self.steps

    def drain_nested(self, unit: ScheduledUnit) -> None:
        enqueue_note, dequeue_note, execute_note = NESTED_ANNOTATIONS
        for child in unit.nested_units:
            self.push(child, Phase.ENQUEUE, enqueue_note)
            self.push(child, Phase.DEQUEUE, dequeue_note)
            self.execute(child, execute_note)


def compile_steps(source_text: str) -> List[ExecutionStep]:
    """Compile `source_text` into an ordered list of execution steps.

    Never raises: text with no recognized construct gives an empty list.
    """
    units = scan_units(source_text)
    steps = StepEmitter().emit(units)
    logger.debug("compiled %d units into %d steps", len(units), len(steps))
    return steps
