from __future__ import annotations

from enum import StrEnum
from typing import Final


class BloodGroup(StrEnum):
    A_POS = "A+"
    A_NEG = "A-"
    B_POS = "B+"
    B_NEG = "B-"
    AB_POS = "AB+"
    AB_NEG = "AB-"
    O_POS = "O+"
    O_NEG = "O-"

    @classmethod
    def values(cls) -> list[str]:
        return [item.value for item in cls]


class ConditionType(StrEnum):
    TRAUMA = "trauma"
    SURGERY = "surgery"
    DENGUE = "dengue"
    OTHER = "other"

    @classmethod
    def values(cls) -> list[str]:
        return [item.value for item in cls]


class EmergencyStatus(StrEnum):
    CREATED = "created"
    HOSPITAL_VERIFIED = "hospital_verified"
    ACCEPTED = "accepted"
    IN_TRANSIT = "in_transit"
    FULFILLED = "fulfilled"
    AUTO_CLOSED = "auto_closed"
    EXPIRED = "expired"

    @classmethod
    def values(cls) -> list[str]:
        return [item.value for item in cls]


class UrgencyLevel(StrEnum):
    STABLE = "stable"
    WARNING = "warning"
    CRITICAL = "critical"


class VerificationMode(StrEnum):
    EMERGENCY = "emergency"
    HANDOFF = "handoff"


TERMINAL_STATUSES: Final[frozenset[EmergencyStatus]] = frozenset(
    {EmergencyStatus.FULFILLED, EmergencyStatus.AUTO_CLOSED, EmergencyStatus.EXPIRED}
)

# Indexed by escalation_level.
ESCALATION_LABELS: Final[tuple[str, ...]] = ("Local", "District", "State", "Admin", "Disaster")
MAX_ESCALATION_LEVEL: Final[int] = len(ESCALATION_LABELS) - 1

MIN_UNITS: Final[int] = 1
MAX_UNITS: Final[int] = 10

OTP_LENGTH: Final[int] = 6
HANDOFF_TOKEN_TTL_SECONDS: Final[int] = 300
OTP_RESEND_COOLDOWN_SECONDS: Final[int] = 60

ENTITY_EMERGENCY: Final[str] = "emergency"
ENTITY_SECURITY: Final[str] = "security"


def escalation_label(level: int) -> str:
    return ESCALATION_LABELS[max(0, min(level, MAX_ESCALATION_LEVEL))]
