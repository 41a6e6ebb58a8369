"""Exceptions raised by the scheduling core and its collaborators."""

from __future__ import annotations


class SchedulingError(Exception):
    """Base class for scheduling failures.

    Args:
        message: Human-readable description.
        schedule_id: The schedule the failure belongs to, when known.
    """

    def __init__(self, message: str, schedule_id: str | None = None) -> None:
        super().__init__(message)
        self.schedule_id = schedule_id


class TransientGenerationError(SchedulingError):
    """The Generator failed (network, validation, rate limit, timeout).

    The schedule stays due and is retried on the next scan.
    """


class PersistenceError(SchedulingError):
    """The Repository failed to record an outcome or advance a schedule."""


class NotificationError(SchedulingError):
    """A recipient could not be notified. Never reverses an advancement."""


class ConfigurationError(SchedulingError, ValueError):
    """A schedule carries an invalid frequency or recurrence config."""
