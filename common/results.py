"""
Purpose: Result object returned by every governance operation.
What it does:
Expected business outcomes ("rate too low", "booking already reassigned")
are returned as values instead of raised, so callers can show them to the
user without try/except around normal control flow.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """Result object for governance operations."""
    success: bool
    value: Optional[T] = None
    error: Optional[Enum] = None
    message: str = ""

    @classmethod
    def ok(cls, value: Optional[T] = None, message: str = "") -> Result[T]:
        return cls(success=True, value=value, message=message)

    @classmethod
    def fail(cls, error: Enum, message: str = "") -> Result[T]:
        return cls(success=False, error=error, message=message)

    @property
    def error_code(self) -> Optional[str]:
        return self.error.value if self.error is not None else None

    def unwrap(self) -> T:
        """
        Return the value of a successful result.
        Calling this on a failure is a programming error.
        """
        if not self.success:
            raise ValueError(f"unwrap() on failed result: {self.error_code} {self.message}")
        return self.value
