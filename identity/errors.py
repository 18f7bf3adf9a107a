"""
Translation of domain exceptions into HTTP responses.

Every error response uses the ``BaseResponse`` envelope.  Internal failures
are logged with full detail but answered with a generic message.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from identity.exceptions import (
    CacheUnavailableError,
    DuplicateEmailError,
    IdentityError,
    InternalError,
    InvalidCredentialsError,
    InvalidTokenError,
    UserNotFoundError,
)
from identity.schemas import BaseResponse

logger = logging.getLogger(__name__)

# (status code, envelope message) per exception class; first match wins.
_ERROR_MAP: list[tuple[type[IdentityError], int, str]] = [
    (DuplicateEmailError, 409, "User already exists"),
    (UserNotFoundError, 404, "User not found"),
    (InvalidCredentialsError, 401, "Login failed"),
    (InvalidTokenError, 401, "Authentication failed"),
    (CacheUnavailableError, 503, "Session store unavailable"),
    (InternalError, 500, "Internal server error"),
]


def _envelope(status_code: int, message: str, error: str | None) -> JSONResponse:
    body = BaseResponse(success=False, message=message, error=error)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


async def identity_error_handler(request: Request, exc: IdentityError) -> JSONResponse:
    for exc_type, status_code, message in _ERROR_MAP:
        if isinstance(exc, exc_type):
            break
    else:
        status_code, message = 500, "Internal server error"

    if status_code >= 500:
        logger.error("%s %s failed: %r", request.method, request.url.path, exc)
        return _envelope(status_code, message, None)

    # Every token failure reads the same to the caller; the specific reason
    # is only in the logs.
    if isinstance(exc, InvalidTokenError):
        logger.info("%s %s unauthenticated: %s", request.method, request.url.path, exc)
        return _envelope(status_code, message, "invalid or expired token")
    return _envelope(status_code, message, str(exc))


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info("%s %s rejected: invalid request", request.method, request.url.path)
    body = BaseResponse(
        success=False,
        message="Validation failed",
        data=jsonable_encoder(exc.errors()),
        error="request validation failed",
    )
    return JSONResponse(status_code=422, content=jsonable_encoder(body))


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(IdentityError, identity_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
