"""
Shared plumbing used by every domain package.

Public API:
- Result / result helpers
- Clock helpers (aware timestamps only)
- InvariantViolation
"""
from .results import Result
from .clock import Clock, SystemClock, FixedClock, ensure_aware
from .exceptions import InvariantViolation

__all__ = [
    "Result",
    "Clock",
    "SystemClock",
    "FixedClock",
    "ensure_aware",
    "InvariantViolation",
]
