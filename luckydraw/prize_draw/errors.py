"""Error taxonomy for the draw engine."""

from __future__ import annotations


class DrawError(Exception):
    """Base class for every error raised or reported by the draw engine."""


class ValidationError(DrawError, ValueError):
    """Malformed tier, participant or snapshot data.

    Raised to the caller; the mutating operation is aborted and prior state
    is left untouched.
    """


class EmptyPoolError(DrawError):
    """A draw was attempted with no eligible participant."""


class IllegalTransitionError(DrawError):
    """The requested operation is not valid in the current draw phase."""


class StaleReportError(DrawError):
    """A selection report arrived for a draw session that was cancelled."""

    def __init__(self, token: int, current_token: int) -> None:
        self.token = token
        self.current_token = current_token
        super().__init__(
            f"Report for draw session {token} ignored (current session is {current_token})"
        )


__all__ = [
    "DrawError",
    "EmptyPoolError",
    "IllegalTransitionError",
    "StaleReportError",
    "ValidationError",
]
