from __future__ import annotations

import base64
import json
from datetime import datetime, timedelta

import pytest

from lifeline.infrastructure.security.handoff_token import (
    HandoffTokenError,
    HandoffTokenExpired,
    decode_handoff_token,
    encode_handoff_token,
)

SECRET = "unit-test-secret"
NOW = datetime(2026, 6, 1, 9, 30, 15, 123456)


def _encode(**overrides):
    params = {
        "emergency_id": "em-1",
        "blood_group": "O-",
        "units": 2,
        "otp": "482913",
        "secret": SECRET,
        "now": NOW,
    }
    params.update(overrides)
    return encode_handoff_token(**params)


def _payload(token: str) -> dict:
    return json.loads(base64.urlsafe_b64decode(token + "=" * (-len(token) % 4)))


def _rewritten(old: str, new: str) -> str:
    token, _ = _encode()
    raw = base64.urlsafe_b64decode(token + "=" * (-len(token) % 4)).decode("utf-8")
    return base64.urlsafe_b64encode(raw.replace(old, new).encode("utf-8")).decode("ascii")


def test_token_recovers_identity_before_expiry() -> None:
    token, expires_at = _encode()

    claims = decode_handoff_token(token, secret=SECRET, now=NOW + timedelta(seconds=299))

    assert claims.emergency_id == "em-1"
    assert claims.otp == "482913"
    assert claims.blood_group == "O-"
    assert claims.units == 2
    assert claims.expires_at == expires_at == datetime(2026, 6, 1, 9, 35, 15)


def test_payload_shape() -> None:
    token, _ = _encode()
    payload = _payload(token)
    assert payload["type"] == "handoff"
    assert payload["expiresAt"] == "2026-06-01T09:35:15Z"
    assert set(payload) == {"type", "emergencyId", "bloodGroup", "units", "otp", "expiresAt", "signature"}


def test_token_after_ttl_is_expired() -> None:
    token, _ = _encode()
    with pytest.raises(HandoffTokenExpired):
        decode_handoff_token(token, secret=SECRET, now=NOW + timedelta(seconds=301))


def test_reassigned_token_fails_signature() -> None:
    token, _ = _encode()
    payload = _payload(token)
    payload["emergencyId"] = "em-2"
    forged = base64.urlsafe_b64encode(json.dumps(payload).encode()).decode().rstrip("=")

    with pytest.raises(HandoffTokenError, match="signature"):
        decode_handoff_token(forged, secret=SECRET, now=NOW)


def test_extended_expiry_fails_signature() -> None:
    token, _ = _encode()
    payload = _payload(token)
    payload["expiresAt"] = "2030-01-01T00:00:00Z"
    forged = base64.urlsafe_b64encode(json.dumps(payload).encode()).decode().rstrip("=")

    with pytest.raises(HandoffTokenError):
        decode_handoff_token(forged, secret=SECRET, now=NOW)


def test_other_key_is_rejected() -> None:
    token, _ = _encode()
    with pytest.raises(HandoffTokenError):
        decode_handoff_token(token, secret="another-secret", now=NOW)


@pytest.mark.parametrize(
    "garbage",
    [
        "",
        "not-base64!!",
        base64.urlsafe_b64encode(b"[1,2]").decode(),
        _rewritten('"units":2', '"units":Infinity'),
        _rewritten('"units":2', '"units":NaN'),
        _rewritten('"signature":"', '"signature":"\u00e9'),
    ],
)
def test_malformed_tokens_are_rejected(garbage: str) -> None:
    with pytest.raises(HandoffTokenError):
        decode_handoff_token(garbage, secret=SECRET, now=NOW)
