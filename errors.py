"""
Error taxonomy for the Portfolio API

Every failure a handler can report maps to one of these classes. The
status code travels with the exception; the message is always safe to show
to the caller.

Usage:
    from errors import NotFoundError

    if not tag:
        raise NotFoundError("Tag not found")
"""
import functools
from typing import Awaitable, Callable, Optional

from fastapi.responses import JSONResponse

from logging_config import get_logger
from responses import send_error

logger = get_logger("errors")


class ApiError(Exception):
    """Base class for failures that become an error envelope."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class ValidationError(ApiError):
    """Malformed, missing or out-of-range input."""

    status_code = 400


class AuthenticationError(ApiError):
    """Missing, invalid or expired credentials."""

    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class AuthorizationError(ApiError):
    """Authenticated, but the role does not allow the action."""

    status_code = 403

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message)


class NotFoundError(ApiError):
    status_code = 404


class ConflictError(ApiError):
    """Uniqueness violation, found before the write or reported by the store."""

    status_code = 409


class ConfigurationError(ApiError):
    """The server itself is misconfigured."""

    status_code = 500


def envelope_errors(func: Callable[..., Awaitable[JSONResponse]]) -> Callable[..., Awaitable[JSONResponse]]:
    """Make a handler the boundary for its own failures.

    ApiError subclasses turn into an error envelope with their status code.
    Anything else is logged with its traceback and reported as a generic 500.
    """

    @functools.wraps(func)
    async def wrapper(*args, **kwargs) -> JSONResponse:
        try:
            return await func(*args, **kwargs)
        except ApiError as exc:
            return send_error(exc.status_code, exc.message)
        except Exception:
            logger.exception("Unhandled error in %s", func.__name__)
            return send_error(500, "Server error")

    return wrapper
