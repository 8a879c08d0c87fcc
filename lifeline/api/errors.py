from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from lifeline.application.errors import (
    AccessDeniedError,
    AppError,
    HandoffTokenExpiredError,
    IllegalTransitionError,
    InvalidHandoffTokenError,
    InvalidOtpFormatError,
    NotFoundError,
    OtpLockedError,
    OtpMismatchError,
    RateLimitExceededError,
    StorageFailureError,
)

logger = logging.getLogger(__name__)

# Most specific first; lookup walks the exception's MRO.
ERROR_STATUS: dict[type[AppError], tuple[int, str]] = {
    InvalidOtpFormatError: (status.HTTP_400_BAD_REQUEST, "invalid_otp_format"),
    NotFoundError: (status.HTTP_404_NOT_FOUND, "not_found"),
    RateLimitExceededError: (status.HTTP_429_TOO_MANY_REQUESTS, "rate_limited"),
    OtpMismatchError: (status.HTTP_401_UNAUTHORIZED, "otp_mismatch"),
    InvalidHandoffTokenError: (status.HTTP_401_UNAUTHORIZED, "invalid_handoff_token"),
    AccessDeniedError: (status.HTTP_403_FORBIDDEN, "access_denied"),
    IllegalTransitionError: (status.HTTP_409_CONFLICT, "illegal_transition"),
    HandoffTokenExpiredError: (status.HTTP_410_GONE, "handoff_token_expired"),
    OtpLockedError: (status.HTTP_423_LOCKED, "otp_locked"),
    StorageFailureError: (status.HTTP_500_INTERNAL_SERVER_ERROR, "storage_failure"),
}


def _resolve(exc: AppError) -> tuple[int, str]:
    for klass in type(exc).__mro__:
        if klass in ERROR_STATUS:
            return ERROR_STATUS[klass]
    return status.HTTP_500_INTERNAL_SERVER_ERROR, "internal_error"


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    status_code, kind = _resolve(exc)
    headers: dict[str, str] = {}
    retry_after = getattr(exc, "retry_after", None)
    if retry_after is not None:
        headers["Retry-After"] = str(retry_after)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc, exc_info=exc)
        detail = "Internal error, please retry"
    else:
        logger.info("%s %s rejected (%s): %s", request.method, request.url.path, kind, exc)
        detail = str(exc)
    return JSONResponse(status_code=status_code, content={"error": kind, "detail": detail}, headers=headers)


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
