from __future__ import annotations


class TrackerError(Exception):
    status_code = 500

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class Unauthenticated(TrackerError):
    status_code = 401


class ValidationError(TrackerError):
    status_code = 400


class NotFound(TrackerError):
    status_code = 404


class InvalidState(TrackerError):
    status_code = 409


def error_for_status(status_code: int, detail: str) -> TrackerError:
    for cls in (Unauthenticated, ValidationError, NotFound, InvalidState):
        if cls.status_code == status_code:
            return cls(detail)
    error = TrackerError(detail)
    error.status_code = status_code
    return error
