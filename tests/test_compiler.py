"""Tests for the step compiler.

The compiler is pure, so these tests only compile text and inspect the
resulting steps. Expected orderings follow the six drain phases: call stack,
enqueue everything, microtasks, macrotasks (each followed by the microtasks
it scheduled), animation frames, idle callbacks.
"""

from typing import List

from evloop.compiler import compile_steps, scan_units
from evloop.compiler.scanner import derive_label, find_block_end, split_lines
from evloop.demo import DEFAULT_DEMO_CODE
from evloop.queue_types import ExecutionStep, Phase, QueueClass

ALL_QUEUES_SOURCE = """console.log("A - one");
setTimeout(() => {
  console.log("M - macro");
}, 0);
Promise.resolve().then(() => {
  console.log("P - promise");
});
queueMicrotask(() => {
  console.log("Q - queued");
});
requestAnimationFrame(() => {
  console.log("R - frame");
});
requestIdleCallback(() => {
  console.log("I - idle");
});
console.log("B - two");"""

NESTED_SOURCE = """setTimeout(() => {
  console.log("first");
  Promise.resolve().then(() => {
    console.log("inner");
  });
}, 0);
setTimeout(() => {
  console.log("second");
}, 0);
requestAnimationFrame(() => {
  console.log("frame");
});"""


def _outputs(steps: List[ExecutionStep]) -> List[str]:
    """Printed text in trace order."""
    return [s.output for s in steps if s.output is not None]


def _shape(steps: List[ExecutionStep]):
    """Compact (phase, label) view of a trace."""
    return [(s.phase, s.label) for s in steps]


def _index(steps: List[ExecutionStep], phase: Phase, label: str) -> int:
    for i, s in enumerate(steps):
        if s.phase is phase and s.label == label:
            return i
    raise AssertionError(f"no {phase.value} step for {label!r}")


def test_empty_source_compiles_to_nothing():
    assert compile_steps("") == []
    assert compile_steps("\n\n   \n") == []


def test_unrecognized_lines_are_ignored():
    """Arbitrary code with no known construct gives an empty trace."""
    source = "const x = 1;\nfunction f() { return x + 1; }\n  console.log('indented');"
    assert compile_steps(source) == []


def test_compilation_is_deterministic():
    """Recompiling the same text yields the same steps, ids included."""
    assert compile_steps(DEFAULT_DEMO_CODE) == compile_steps(DEFAULT_DEMO_CODE)
    assert compile_steps(NESTED_SOURCE) == compile_steps(NESTED_SOURCE)


def test_step_ids_are_unique():
    steps = compile_steps(DEFAULT_DEMO_CODE)
    assert len({s.id for s in steps}) == len(steps)


def test_output_follows_queue_priority():
    """One construct per queue prints in priority order, not source order."""
    steps = compile_steps(ALL_QUEUES_SOURCE)
    assert _outputs(steps) == [
        "A - one",
        "B - two",
        "P - promise",
        "Q - queued",
        "M - macro",
        "R - frame",
        "I - idle",
    ]
    assert len(steps) == 17


def test_priority_invariant_between_lanes():
    """Sync execution precedes micro, macro, animation and idle dequeues."""
    steps = compile_steps(ALL_QUEUES_SOURCE)

    def positions(queue_class, phase):
        return [i for i, s in enumerate(steps) if s.queue_class is queue_class and s.phase is phase]

    lanes = [
        positions(QueueClass.CALL_STACK, Phase.EXECUTE),
        positions(QueueClass.MICROTASK, Phase.DEQUEUE),
        positions(QueueClass.MACROTASK, Phase.DEQUEUE),
        positions(QueueClass.ANIMATION, Phase.DEQUEUE),
        positions(QueueClass.IDLE, Phase.DEQUEUE),
    ]
    for earlier, later in zip(lanes, lanes[1:]):
        assert earlier and later
        assert max(earlier) < min(later)


def test_enqueues_happen_in_source_order_before_any_drain():
    steps = compile_steps(ALL_QUEUES_SOURCE)
    enqueues = [s for s in steps[2:7]]
    assert all(s.phase is Phase.ENQUEUE for s in enqueues)
    assert [s.label for s in enqueues] == ["macro", "promise", "queued", "frame", "idle"]
    assert [s.source_line for s in enqueues] == [2, 5, 8, 11, 14]


def test_nested_continuation_runs_inside_its_macrotask():
    """The nested microtask's three steps sit between its macrotask's
    execute and the next macrotask's dequeue."""
    steps = compile_steps(NESTED_SOURCE)
    assert _shape(steps) == [
        (Phase.ENQUEUE, "first"),
        (Phase.ENQUEUE, "second"),
        (Phase.ENQUEUE, "frame"),
        (Phase.DEQUEUE, "first"),
        (Phase.EXECUTE, "first"),
        (Phase.ENQUEUE, "inner"),
        (Phase.DEQUEUE, "inner"),
        (Phase.EXECUTE, "inner"),
        (Phase.DEQUEUE, "second"),
        (Phase.EXECUTE, "second"),
        (Phase.DEQUEUE, "frame"),
        (Phase.EXECUTE, "frame"),
    ]
    first_exec = _index(steps, Phase.EXECUTE, "first")
    next_macro = _index(steps, Phase.DEQUEUE, "second")
    nested = [i for i, s in enumerate(steps) if s.label == "inner"]
    assert all(first_exec < i < next_macro for i in nested)
    assert {steps[i].queue_class for i in nested} == {QueueClass.MICROTASK}
    assert steps[nested[0]].source_line == 3


def test_nested_continuation_is_not_reported_at_top_level():
    """A microtask owned by a macrotask is never enqueued up front."""
    units = scan_units(NESTED_SOURCE)
    assert [u.label for u in units] == ["first", "second", "frame"]
    assert [u.label for u in units[0].nested_units] == ["inner"]


def test_nested_continuation_finishes_before_animation_lane():
    steps = compile_steps(NESTED_SOURCE)
    assert _index(steps, Phase.EXECUTE, "inner") < _index(steps, Phase.DEQUEUE, "frame")


def test_promise_chain_yields_one_microtask_per_then():
    source = """Promise.resolve()
  .then(() => {
    console.log("step - one");
    return 1;
  })
  .then((v) => {
    console.log("step - two");
  });"""
    units = scan_units(source)
    assert [(u.label, u.source_line, u.queue_class) for u in units] == [
        ("one", 2, QueueClass.MICROTASK),
        ("two", 6, QueueClass.MICROTASK),
    ]
    assert _outputs(compile_steps(source)) == ["step - one", "step - two"]


def test_bare_promise_resolve_schedules_nothing():
    assert compile_steps("Promise.resolve();") == []


def test_demo_program_output_order():
    steps = compile_steps(DEFAULT_DEMO_CODE)
    assert _outputs(steps) == [
        "1: Synchronous - Start",
        "11: Synchronous - End",
        "3: Microtask - Promise.then",
        "4: Microtask - queueMicrotask",
        "7: Microtask - Chained Promise 1",
        "8: Microtask - Chained Promise 2:",
        "2: Macrotask - setTimeout",
        "9: Macrotask - setTimeout 2",
        "10: Microtask inside Macrotask",
        "5: Animation - rAF callback",
        "6: Idle - requestIdleCallback",
    ]
    assert len(steps) == 29


def test_sync_steps_only_execute():
    steps = compile_steps(ALL_QUEUES_SOURCE)
    sync = [s for s in steps if s.queue_class is QueueClass.CALL_STACK]
    assert [s.phase for s in sync] == [Phase.EXECUTE, Phase.EXECUTE]
    assert [s.source_line for s in sync] == [1, 17]
    assert sync[0].code == 'console.log("A - one");'


def test_unit_steps_share_a_task_id():
    steps = compile_steps(ALL_QUEUES_SOURCE)
    macro = [s for s in steps if s.label == "macro"]
    assert [s.phase for s in macro] == [Phase.ENQUEUE, Phase.DEQUEUE, Phase.EXECUTE]
    assert len({s.task_id for s in macro}) == 1
    assert macro[0].code == "setTimeout(() => { ... }, 0)"


def test_only_execute_and_output_steps_carry_output():
    for s in compile_steps(DEFAULT_DEMO_CODE):
        if s.phase in (Phase.ENQUEUE, Phase.DEQUEUE):
            assert s.output is None


def test_extra_log_lines_become_output_steps():
    source = """setTimeout(() => {
  console.log("a");
  console.log("b");
}, 0);"""
    steps = compile_steps(source)
    assert [s.phase for s in steps] == [Phase.ENQUEUE, Phase.DEQUEUE, Phase.EXECUTE, Phase.OUTPUT]
    assert steps[2].output == "a"
    assert steps[3].output == "b"
    assert steps[3].source_line == 3


def test_single_line_registration_keeps_its_output():
    steps = compile_steps('setTimeout(() => console.log("quick"), 0);')
    assert _outputs(steps) == ["quick"]


def test_callback_without_output_uses_fallback_label():
    source = "requestIdleCallback(() => {\n  doWork();\n});"
    steps = compile_steps(source)
    assert {s.label for s in steps} == {"idle callback"}
    assert _outputs(steps) == []


def test_unterminated_block_is_bounded_by_source():
    """A missing closing delimiter ends the block at the last line."""
    source = 'setTimeout(() => {\n  console.log("x - lost");'
    steps = compile_steps(source)
    assert [s.phase for s in steps] == [Phase.ENQUEUE, Phase.DEQUEUE, Phase.EXECUTE]
    assert _outputs(steps) == ["x - lost"]
    assert find_block_end(split_lines(source), 0) == 1


def test_delimiters_inside_strings_are_not_counted():
    """A paren inside a string literal must not stretch the block."""
    source = """setTimeout(() => {
  console.log("open ( paren");
}, 0);
console.log("after");"""
    steps = compile_steps(source)
    assert _outputs(steps) == ["after", "open ( paren"]
    assert Phase.OUTPUT not in {s.phase for s in steps}


def test_registration_inside_microtask_stays_top_level():
    """Only macrotasks own nested work; other registrations surface on their own."""
    source = """queueMicrotask(() => {
  console.log("micro");
  setTimeout(() => {
    console.log("later");
  }, 0);
});"""
    units = scan_units(source)
    assert [(u.label, u.queue_class) for u in units] == [
        ("micro", QueueClass.MICROTASK),
        ("later", QueueClass.MACROTASK),
    ]
    assert units[0].extra_output == []


def test_derive_label():
    assert derive_label("1: Synchronous - Start", "x") == "Start"
    assert derive_label("a - b - c ", "x") == "c"
    assert derive_label("plain", "x") == "plain"
    assert derive_label(None, "fallback") == "fallback"


def test_log_without_literal_in_callback_prints_placeholder():
    """A logging call with no string literal still prints, as at top level."""
    steps = compile_steps("setTimeout(() => {\n  console.log(x);\n}, 0);")
    assert _outputs(steps) == ["output"]
    assert {s.label for s in steps} == {"output"}
    assert _outputs(compile_steps("console.log(x);")) == ["output"]


def test_log_without_literal_in_promise_chain_prints_placeholder():
    source = """Promise.resolve()
  .then(() => {
    console.log("first - one");
    return 1;
  })
  .then((val) => {
    console.log(val);
  });"""
    assert _outputs(compile_steps(source)) == ["first - one", "output"]


def test_line_numbers_count_newlines_only():
    """Form feeds and other separators inside a line do not shift numbering."""
    source = 'console.log("a\x0cb");\nconsole.log("c"); \nsetTimeout(() => {\r\n  console.log("d");\r\n}, 0);'
    steps = compile_steps(source)
    assert [s.source_line for s in steps] == [1, 2, 3, 3, 3]
    assert _outputs(steps) == ["a\x0cb", "c", "d"]
