"""
Error taxonomy for the help desk.

Every error carries a user-facing message; handlers display ``str(error)``
and recover to a displayable state.
"""


class HelpdeskError(Exception):
    """Base class for all recoverable help desk errors."""


class ValidationError(HelpdeskError):
    """
    Raised when submitted input is rejected.

    Empty or mismatched passwords, missing profile fields, no role selected.
    No state is mutated.
    """


class NotFoundError(HelpdeskError):
    """Raised when a username, group, display id or invitation code is unknown."""


class InvariantViolation(HelpdeskError):
    """Raised when an operation would break a stored invariant (e.g. last group admin)."""


class PersistenceError(HelpdeskError):
    """
    Raised when the backing store fails.

    Attributes:
        cause: The underlying exception
    """

    def __init__(self, action: str, cause: Exception):
        self.action = action
        self.cause = cause
        super().__init__(f"Error {action}: {cause}")
