"""Step compiler: source text to an ordered execution-step trace."""

from .scanner import ScheduledUnit, scan_units
from .steps import compile_steps

__all__ = [
    "ScheduledUnit",
    "compile_steps",
    "scan_units",
]
