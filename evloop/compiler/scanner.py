"""Pattern scanner that turns source text into scheduled units.

This is a line-oriented heuristic, not a parser. Each physical line is checked
against a small table of registration prefixes; when one matches, the body of
the registration is found by counting brace/paren depth from that line. Lines
that match nothing are skipped, so the scanner accepts any input.

Output lines inside a body belong to the innermost registration around them.
Microtask registrations found inside a `setTimeout` body are attached to that
macrotask as nested units and are not reported again at top level.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Set, Tuple

from evloop.queue_types import QueueClass

# Strings and line comments are matched first so their delimiters are skipped.
_DELIMITER_RE = re.compile(
    r'"(?:[^"\\]|\\.)*"|\'(?:[^\'\\]|\\.)*\'|`(?:[^`\\]|\\.)*`|//.*|[(){}]'
)
_LOG_RE = re.compile(r"console\.log\(\s*([\"'`])(.+?)\1")

LOG_PREFIX = "console.log("
THEN_MARKER = ".then("
LABEL_SEPARATOR = " - "


@dataclass(frozen=True)
class Registration:
    """A recognized scheduling call: prefix, lane and display text."""

    prefix: str
    queue_class: QueueClass
    code: str
    fallback_label: str


SET_TIMEOUT = Registration(
    "setTimeout(", QueueClass.MACROTASK, "setTimeout(() => { ... }, 0)", "setTimeout callback"
)
PROMISE_CHAIN = Registration(
    "Promise.resolve()", QueueClass.MICROTASK, ".then(() => { ... })", "Promise.then"
)
QUEUE_MICROTASK = Registration(
    "queueMicrotask(", QueueClass.MICROTASK, "queueMicrotask(() => { ... })", "queueMicrotask"
)
ANIMATION_FRAME = Registration(
    "requestAnimationFrame(",
    QueueClass.ANIMATION,
    "requestAnimationFrame(() => { ... })",
    "rAF callback",
)
IDLE_CALLBACK = Registration(
    "requestIdleCallback(",
    QueueClass.IDLE,
    "requestIdleCallback(() => { ... })",
    "idle callback",
)

REGISTRATIONS: Tuple[Registration, ...] = (
    SET_TIMEOUT,
    PROMISE_CHAIN,
    QUEUE_MICROTASK,
    ANIMATION_FRAME,
    IDLE_CALLBACK,
)


@dataclass
class ScheduledUnit:
    """
    One occurrence of synchronous or deferred work found in the source.

    `produced_output` is the first line the unit prints; any further lines
    printed directly by the same body go to `extra_output` as
    ``(source_line, text)`` pairs. `nested_units` is only filled for
    macrotasks and holds the microtasks their body schedules, in order.
    """

    source_text: str
    label: str
    queue_class: QueueClass
    source_line: int
    produced_output: Optional[str] = None
    extra_output: List[Tuple[int, str]] = field(default_factory=list)
    nested_units: List["ScheduledUnit"] = field(default_factory=list)

    def add_output(self, text: str, source_line: int) -> None:
        if self.produced_output is None:
            self.produced_output = text
        else:
            self.extra_output.append((source_line, text))


def match_registration(stripped: str) -> Optional[Registration]:
    """Return the registration whose prefix starts `stripped`, if any."""
    for reg in REGISTRATIONS:
        if stripped.startswith(reg.prefix):
            return reg
    return None


def extract_output(line: str) -> str:
    """Return the first string literal passed to a logging call in `line`."""
    m = _LOG_RE.search(line)
    return m.group(2) if m else "output"


def split_lines(source_text: str) -> List[str]:
    """Split on newlines only, dropping a trailing carriage return per line."""
    return [line[:-1] if line.endswith("\r") else line for line in source_text.split("\n")]


def log_outputs(text: str) -> List[str]:
    """Output of every logging call in `text`; `output` for a call with no literal."""
    found = [m.group(2) for m in _LOG_RE.finditer(text)]
    if not found and LOG_PREFIX in text:
        found.append("output")
    return found


def derive_label(output: Optional[str], fallback: str) -> str:
    """Short label: the text after the last ``" - "`` of `output`."""
    if not output:
        return fallback
    return output.split(LABEL_SEPARATOR)[-1].strip()


def count_delimiters(line: str) -> Tuple[int, int]:
    """Return ``(opened, closed)`` brace/paren counts outside strings and comments."""
    opened = closed = 0
    for m in _DELIMITER_RE.finditer(line):
        tok = m.group(0)
        if tok in ("(", "{"):
            opened += 1
        elif tok in (")", "}"):
            closed += 1
    return opened, closed


def find_block_end(lines: List[str], start: int) -> int:
    """Index of the line closing the block that opens at `lines[start]`.

    The block ends once depth drops to zero or below after having gone
    positive. Without a closing delimiter the block runs to the last line.
    """
    depth = 0
    started = False
    for i in range(start, len(lines)):
        opened, closed = count_delimiters(lines[i])
        depth += opened - closed
        if opened:
            started = True
        if started and depth <= 0:
            return i
    return len(lines) - 1


def registration_end(lines: List[str], start: int, reg: Registration) -> int:
    """Like `find_block_end`, but a promise chain also spans the `.then(...)`
    attachments on the lines that follow it.
    """
    end = find_block_end(lines, start)
    if reg is PROMISE_CHAIN:
        while end + 1 < len(lines) and lines[end + 1].strip().startswith("."):
            end = find_block_end(lines, end + 1)
    return end


def _inner_end(lines: List[str], index: int, limit: int) -> int:
    reg = match_registration(lines[index].strip())
    if reg is None:
        return index
    return min(registration_end(lines, index, reg), limit)


def _callback_unit(
    lines: List[str], start: int, end: int, reg: Registration, consumed: Set[int]
) -> ScheduledUnit:
    unit = ScheduledUnit(
        source_text=reg.code,
        label=reg.fallback_label,
        queue_class=reg.queue_class,
        source_line=start + 1,
    )
    head = lines[start].strip()[len(reg.prefix):]
    for text in log_outputs(head):
        unit.add_output(text, start + 1)

    i = start + 1
    while i <= end:
        stripped = lines[i].strip()
        inner = match_registration(stripped)
        if inner is not None:
            inner_end = _inner_end(lines, i, end)
            if reg.queue_class is QueueClass.MACROTASK and inner.queue_class is QueueClass.MICROTASK:
                unit.nested_units.extend(_units_for(lines, i, inner_end, inner, consumed))
                consumed.update(range(i, inner_end + 1))
            i = inner_end + 1
            continue
        for text in log_outputs(stripped):
            unit.add_output(text, i + 1)
        i += 1

    unit.label = derive_label(unit.produced_output, reg.fallback_label)
    return unit


def _chain_units(lines: List[str], start: int, end: int) -> List[ScheduledUnit]:
    """One microtask per ``.then(`` attached to a ``Promise.resolve()`` chain."""
    chain: List[ScheduledUnit] = []
    i = start
    while i <= end:
        text = lines[i].strip()
        if i == start:
            text = text[len(PROMISE_CHAIN.prefix):]
        elif match_registration(text) is not None:
            i = _inner_end(lines, i, end) + 1
            continue

        pieces = text.split(THEN_MARKER)
        for n, piece in enumerate(pieces):
            if n > 0:
                chain.append(
                    ScheduledUnit(
                        source_text=PROMISE_CHAIN.code,
                        label=PROMISE_CHAIN.fallback_label,
                        queue_class=QueueClass.MICROTASK,
                        source_line=i + 1,
                    )
                )
            if chain:
                for text in log_outputs(piece):
                    chain[-1].add_output(text, i + 1)
        i += 1

    for unit in chain:
        unit.label = derive_label(unit.produced_output, PROMISE_CHAIN.fallback_label)
    return chain


def _units_for(
    lines: List[str], start: int, end: int, reg: Registration, consumed: Set[int]
) -> List[ScheduledUnit]:
    if reg is PROMISE_CHAIN:
        return _chain_units(lines, start, end)
    return [_callback_unit(lines, start, end, reg, consumed)]


def scan_units(source_text: str) -> List[ScheduledUnit]:
    """Extract scheduled units from `source_text` in source order.

    A logging call at column 0 is synchronous call-stack work. Any line whose
    stripped text starts with a registration prefix yields one unit (or one
    per continuation, for promise chains), unless a surrounding macrotask
    already claimed it as nested work.
    """
    lines = split_lines(source_text)
    units: List[ScheduledUnit] = []
    consumed: Set[int] = set()

    for i, raw in enumerate(lines):
        if i in consumed:
            continue
        stripped = raw.strip()
        if raw.startswith(LOG_PREFIX):
            output = extract_output(stripped)
            units.append(
                ScheduledUnit(
                    source_text=stripped,
                    label=derive_label(output, "output"),
                    queue_class=QueueClass.CALL_STACK,
                    source_line=i + 1,
                    produced_output=output,
                )
            )
            continue
        reg = match_registration(stripped)
        if reg is None:
            continue
        end = registration_end(lines, i, reg)
        units.extend(_units_for(lines, i, end, reg, consumed))

    return units
