from __future__ import annotations


class ServiceError(Exception):
    """Base error for judging and scoring operations surfaced to callers."""

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ServiceError):
    """Missing or invalid input; nothing was written."""


class NotFound(ServiceError):
    status_code = 404


class Forbidden(ServiceError):
    status_code = 403


class ContestNotActive(ServiceError):
    """Contest submission outside the contest window."""


class ConcurrencyConflict(ServiceError):
    """A concurrent write won twice in a row; the caller should resubmit."""

    status_code = 409


class StatisticsUnavailable(ServiceError):
    status_code = 503
