"""Exceptions surfaced synchronously to callers of the engine.

"Nothing to do" outcomes (no running timer, a superseded scheduled
callback) are not errors; operations report them as result dicts.
"""


class TimeTrackError(Exception):
    """Base class for engine errors."""


class ValidationError(TimeTrackError):
    """Bad input: archived project, invalid time range, bad setting."""


class NotFoundError(ValidationError):
    """A referenced record does not exist or is not visible to the caller."""


class AuthorizationError(TimeTrackError):
    """Caller is not signed in or may not use the referenced record."""


class ConflictError(TimeTrackError):
    """A uniqueness invariant of the timer store would be violated."""
