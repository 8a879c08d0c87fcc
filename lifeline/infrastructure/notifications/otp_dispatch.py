from __future__ import annotations

import logging
from typing import Protocol

from lifeline.infrastructure.security.otp import mask_phone


class OtpNotifier(Protocol):
    def send_otp(self, *, emergency_id: str, phone: str | None, otp: str, mode: str) -> None: ...


class LoggingOtpNotifier:
    """Stand-in for SMS delivery: records that a code went out, never the code."""

    def __init__(self) -> None:
        self._logger = logging.getLogger(__name__)

    def send_otp(self, *, emergency_id: str, phone: str | None, otp: str, mode: str) -> None:
        self._logger.info(
            "OTP dispatched for emergency %s (%s) to %s",
            emergency_id,
            mode,
            mask_phone(phone) or "no phone on file",
        )
