"""Domain errors and their mapping onto HTTP status codes."""

from __future__ import annotations

from http import HTTPStatus

INTERNAL_ERROR_MESSAGE = "Internal server error"


class DomainError(Exception):
    """Base class for every error raised by the domain layer."""

    prefix = "Domain error"
    status: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR
    exposed = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.prefix}: {self.message}"


class DatabaseError(DomainError):
    """A storage operation failed."""

    prefix = "Database error"


class NotFoundError(DomainError):
    """A requested resource does not exist."""

    prefix = "Resource not found"
    status = HTTPStatus.NOT_FOUND
    exposed = True


class InvalidInputError(DomainError):
    """The caller supplied input that cannot be accepted."""

    prefix = "Invalid input"
    status = HTTPStatus.BAD_REQUEST
    exposed = True


class AuthenticationError(DomainError):
    """The caller could not be authenticated."""

    prefix = "Authentication error"
    status = HTTPStatus.UNAUTHORIZED
    exposed = True


class ThreadError(DomainError):
    """A background worker failed."""

    prefix = "Thread error"


def status_for(error: BaseException) -> tuple[int, str]:
    """Return the HTTP status code and body text to report for ``error``.

    Client-facing errors carry their own message; anything else is
    reported as a generic internal server error.
    """
    if isinstance(error, DomainError) and error.exposed:
        return int(error.status), error.message
    return int(HTTPStatus.INTERNAL_SERVER_ERROR), INTERNAL_ERROR_MESSAGE