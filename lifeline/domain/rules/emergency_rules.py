from __future__ import annotations

from types import MappingProxyType
from typing import Final

from lifeline.domain.constants import (
    MAX_ESCALATION_LEVEL,
    TERMINAL_STATUSES,
    EmergencyStatus,
    VerificationMode,
)

_S = EmergencyStatus

_NON_TERMINAL: Final[frozenset[EmergencyStatus]] = frozenset(set(EmergencyStatus) - TERMINAL_STATUSES)

# target status -> statuses it may be entered from
_ALLOWED_SOURCES = MappingProxyType(
    {
        _S.HOSPITAL_VERIFIED: frozenset({_S.CREATED}),
        _S.ACCEPTED: frozenset({_S.HOSPITAL_VERIFIED}),
        _S.IN_TRANSIT: frozenset({_S.ACCEPTED}),
        _S.FULFILLED: _NON_TERMINAL,
        _S.AUTO_CLOSED: _NON_TERMINAL,
        _S.EXPIRED: _NON_TERMINAL,
    }
)

ADMIN_OVERRIDE_TARGETS: Final[frozenset[EmergencyStatus]] = frozenset({_S.FULFILLED, _S.AUTO_CLOSED})

# terminal status -> column recording when it was reached
ENDING_TIMESTAMP_FIELD: Final = MappingProxyType(
    {
        _S.FULFILLED: "fulfilled_at",
        _S.AUTO_CLOSED: "auto_closed_at",
        _S.EXPIRED: "expired_at",
    }
)


class TransitionError(ValueError):
    def __init__(self, from_status: str, to_status: str) -> None:
        super().__init__(f"Transition {from_status} -> {to_status} is not allowed")
        self.from_status = from_status
        self.to_status = to_status


def is_terminal(status: EmergencyStatus | str) -> bool:
    return EmergencyStatus(status) in TERMINAL_STATUSES


def can_transition(from_status: EmergencyStatus | str, to_status: EmergencyStatus | str) -> bool:
    sources = _ALLOWED_SOURCES.get(EmergencyStatus(to_status))
    return sources is not None and EmergencyStatus(from_status) in sources


def validate_status_transition(from_status: EmergencyStatus | str, to_status: EmergencyStatus | str) -> None:
    if not can_transition(from_status, to_status):
        raise TransitionError(str(from_status), str(to_status))


def target_status_for_mode(mode: VerificationMode | str) -> EmergencyStatus:
    if VerificationMode(mode) is VerificationMode.HANDOFF:
        return _S.FULFILLED
    return _S.HOSPITAL_VERIFIED


def transition_side_effects(to_status: EmergencyStatus | str, now) -> dict[str, object]:
    """Column values written alongside a status change."""
    target = EmergencyStatus(to_status)
    values: dict[str, object] = {"status": target.value, "updated_at": now}
    ending_field = ENDING_TIMESTAMP_FIELD.get(target)
    if ending_field is not None:
        values[ending_field] = now
        values["verification_otp"] = None
        values["otp_failed_attempts"] = 0
        values["otp_locked_until"] = None
    elif target is _S.ACCEPTED:
        values["accepted_at"] = now
    elif target is _S.IN_TRANSIT:
        values["dispatched_at"] = now
    return values


def next_escalation_level(current: int) -> int:
    return min(max(current, 0) + 1, MAX_ESCALATION_LEVEL)
