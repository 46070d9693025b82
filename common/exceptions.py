"""Exceptions for programming errors in callers of the core."""


class InvariantViolation(AssertionError):
    """
    Raised when a caller asks for something the domain rules forbid outright,
    e.g. assigning a booking to a driver who already cancelled it.
    These are bugs in the caller, not user-facing outcomes.
    """
    pass
