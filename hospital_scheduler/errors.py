"""
Business-rule failures raised by the rules engines.

None of these are transient, so nothing retries them. Every error carries
the full list of human-readable reasons so callers can explain a rejection.
"""


class SchedulingError(Exception):
    def __init__(self, message: str, reasons: list[str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.reasons = list(reasons) if reasons else [message]


class NotFoundError(SchedulingError):
    pass


class ValidationError(SchedulingError):
    pass


class AssignmentError(ValidationError):
    """Assignment rejected; `reasons` lists every failed check."""


class PermissionDeniedError(SchedulingError):
    pass


class InvalidStateError(SchedulingError):
    pass


class ConflictError(SchedulingError):
    pass
