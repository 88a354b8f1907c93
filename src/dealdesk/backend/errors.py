"""Exceptions raised by operations backends."""

from __future__ import annotations


class BackendError(Exception):
    """Base class for remote operations API failures."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class BackendUnavailableError(BackendError):
    """Transport failure, timeout, or 5xx response."""


class BackendRejectedError(BackendError):
    """The API answered but refused the request (4xx or `success: false`)."""
