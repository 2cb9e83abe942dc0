"""Exception hierarchy for the leave lifecycle engine.

Every error raised on purpose by the engine derives from :class:`LeaveError`.
Each subclass also inherits the closest builtin so callers that only know
``ValueError`` / ``PermissionError`` / ``LookupError`` / ``ConnectionError``
still handle them correctly.
"""

from __future__ import annotations

from dataclasses import dataclass

__all__ = [
    "AuthorizationError",
    "ConflictError",
    "LeaveError",
    "NotFoundError",
    "StorageError",
    "TransientInfrastructureError",
    "ValidationError",
    "Violation",
]


@dataclass(frozen=True, slots=True)
class Violation:
    """One broken request rule: a stable ``code`` plus a human message."""

    code: str
    message: str


class LeaveError(Exception):
    """Base class for all leave-engine errors."""


class ValidationError(LeaveError, ValueError):
    """The caller's input breaks one or more request rules.

    ``violations`` holds every broken rule, not just the first one.
    """

    def __init__(self, violations: list[Violation] | tuple[Violation, ...]) -> None:
        self.violations: tuple[Violation, ...] = tuple(violations)
        super().__init__("; ".join(v.message for v in self.violations) or "Invalid request")


class ConflictError(LeaveError):
    """The request clashes with existing state (overlap, balance, status)."""

    def __init__(
        self,
        message: str,
        violations: list[Violation] | tuple[Violation, ...] = (),
    ) -> None:
        self.violations: tuple[Violation, ...] = tuple(violations)
        super().__init__(message)


class NotFoundError(LeaveError, LookupError):
    """Unknown worker or request id."""


class AuthorizationError(LeaveError, PermissionError):
    """The acting approver does not manage the target worker."""


class TransientInfrastructureError(LeaveError, ConnectionError):
    """Storage or upstream I/O failed; the operation did not complete."""


class StorageError(TransientInfrastructureError):
    """The leave store could not complete an operation."""
