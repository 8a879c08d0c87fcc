from __future__ import annotations

import re
import secrets

from lifeline.domain.constants import OTP_LENGTH

_OTP_PATTERN = re.compile(rf"[0-9]{{{OTP_LENGTH}}}")


def generate_otp() -> str:
    """Uniform six-digit code in [100000, 999999]."""
    return str(100000 + secrets.randbelow(900000))


def is_valid_otp_format(value: object) -> bool:
    return isinstance(value, str) and _OTP_PATTERN.fullmatch(value) is not None


def mask_phone(phone: str | None) -> str | None:
    if not phone:
        return None
    return f"{phone[:4]}****"
