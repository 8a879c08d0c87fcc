from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from lifeline.domain.constants import HANDOFF_TOKEN_TTL_SECONDS

TOKEN_TYPE = "handoff"


class HandoffTokenError(ValueError):
    """Token could not be decoded or its signature does not verify."""


class HandoffTokenExpired(HandoffTokenError):
    pass


@dataclass(frozen=True, slots=True)
class HandoffClaims:
    emergency_id: str
    blood_group: str
    units: int
    otp: str
    expires_at: datetime


def _sign(secret: str, emergency_id: str, otp: str, expires_at: str) -> str:
    message = f"{emergency_id}|{otp}|{expires_at}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def _format_ts(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(UTC).replace(tzinfo=None)
    return value.replace(microsecond=0).isoformat() + "Z"


def _parse_ts(value: str) -> datetime:
    text = value[:-1] if value.endswith("Z") else value
    return datetime.fromisoformat(text)


def encode_handoff_token(
    *,
    emergency_id: str,
    blood_group: str,
    units: int,
    otp: str,
    secret: str,
    now: datetime,
    ttl_seconds: int = HANDOFF_TOKEN_TTL_SECONDS,
) -> tuple[str, datetime]:
    """Pack a QR-sized handoff credential.

    The signature is an HMAC-SHA256 over emergency id, OTP and expiry, so a
    token cannot be re-pointed at another emergency or outlive its expiry
    without detection. Returns the token and its (naive UTC) expiry.
    """
    expires_at = _parse_ts(_format_ts(now + timedelta(seconds=ttl_seconds)))
    expires_text = _format_ts(expires_at)
    payload = {
        "type": TOKEN_TYPE,
        "emergencyId": emergency_id,
        "bloodGroup": blood_group,
        "units": units,
        "otp": otp,
        "expiresAt": expires_text,
        "signature": _sign(secret, emergency_id, otp, expires_text),
    }
    raw = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("="), expires_at


def decode_handoff_token(token: str, *, secret: str, now: datetime) -> HandoffClaims:
    try:
        padded = token + "=" * (-len(token) % 4)
        payload = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
    except (binascii.Error, UnicodeError, ValueError) as exc:
        raise HandoffTokenError("Malformed handoff token") from exc
    if not isinstance(payload, dict) or payload.get("type") != TOKEN_TYPE:
        raise HandoffTokenError("Not a handoff token")

    try:
        emergency_id = str(payload["emergencyId"])
        otp = str(payload["otp"])
        expires_text = str(payload["expiresAt"])
        signature = str(payload["signature"]).encode("utf-8")
        expected = _sign(secret, emergency_id, otp, expires_text).encode("ascii")
    except (KeyError, UnicodeError) as exc:
        raise HandoffTokenError("Incomplete handoff token") from exc
    if not hmac.compare_digest(signature, expected):
        raise HandoffTokenError("Handoff token signature mismatch")

    try:
        claims = HandoffClaims(
            emergency_id=emergency_id,
            blood_group=str(payload["bloodGroup"]),
            units=int(payload["units"]),
            otp=otp,
            expires_at=_parse_ts(expires_text),
        )
    except (KeyError, TypeError, ValueError, OverflowError) as exc:
        raise HandoffTokenError("Incomplete handoff token") from exc
    current = now.astimezone(UTC).replace(tzinfo=None) if now.tzinfo is not None else now
    if current >= claims.expires_at:
        raise HandoffTokenExpired("Handoff token expired")
    return claims
