from __future__ import annotations


class AppError(RuntimeError):
    """Base application-level error."""


class NotFoundError(AppError):
    """Referenced emergency does not exist."""


class AccessDeniedError(AppError):
    """RBAC/permission failure."""


class RateLimitExceededError(AppError):
    def __init__(self, retry_after: int) -> None:
        super().__init__(f"Too many requests, retry after {retry_after}s")
        self.retry_after = retry_after


class InvalidOtpFormatError(AppError):
    """Submitted code is not exactly six digits."""


class OtpMismatchError(AppError):
    """Submitted code does not match the outstanding one."""


class OtpLockedError(AppError):
    def __init__(self, retry_after: int) -> None:
        super().__init__(f"Verification locked after repeated failures, retry after {retry_after}s")
        self.retry_after = retry_after


class IllegalTransitionError(AppError):
    def __init__(self, from_status: str, to_status: str, message: str | None = None) -> None:
        super().__init__(message or f"Transition {from_status} -> {to_status} is not allowed")
        self.from_status = from_status
        self.to_status = to_status


class InvalidHandoffTokenError(AppError):
    """Handoff token is malformed or its signature does not verify."""


class HandoffTokenExpiredError(AppError):
    """Handoff token is past its expiry."""


class StorageFailureError(AppError):
    """Persistence collaborator failed."""
