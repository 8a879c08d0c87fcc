from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType
from typing import Final

from lifeline.domain.constants import BloodGroup, ConditionType, UrgencyLevel
from lifeline.domain.models.blood import RARITY_WEIGHT

CONDITION_WEIGHT: Final[Mapping[ConditionType, float]] = MappingProxyType(
    {
        ConditionType.TRAUMA: 1.0,
        ConditionType.DENGUE: 0.9,
        ConditionType.SURGERY: 0.7,
        ConditionType.OTHER: 0.5,
    }
)

RARITY_FACTOR: Final[float] = 0.30
CONDITION_FACTOR: Final[float] = 0.30
TIME_FACTOR: Final[float] = 0.25
DISTANCE_FACTOR: Final[float] = 0.15

TIME_SATURATION_MINUTES: Final[float] = 120.0
DISTANCE_SATURATION_KM: Final[float] = 50.0

CRITICAL_THRESHOLD: Final[float] = 70.0
WARNING_THRESHOLD: Final[float] = 40.0


def rarity_score(blood_group: BloodGroup | str) -> float:
    return (100.0 - RARITY_WEIGHT[BloodGroup(blood_group)]) / 100.0


def _saturating(value: float, ceiling: float) -> float:
    # Negative inputs (clock skew, bad distance) count as zero.
    return min(max(value, 0.0) / ceiling, 1.0)


def criticality_score(
    blood_group: BloodGroup | str,
    condition: ConditionType | str,
    elapsed_minutes: float,
    distance_km: float,
) -> float:
    """Composite 0-100 urgency metric.

    Weighted sum of blood rarity, condition severity, time waiting (saturates at
    two hours) and distance (saturates at 50 km).
    """
    score = (
        rarity_score(blood_group) * RARITY_FACTOR
        + CONDITION_WEIGHT[ConditionType(condition)] * CONDITION_FACTOR
        + _saturating(elapsed_minutes, TIME_SATURATION_MINUTES) * TIME_FACTOR
        + _saturating(distance_km, DISTANCE_SATURATION_KM) * DISTANCE_FACTOR
    ) * 100.0
    return min(max(score, 0.0), 100.0)


def urgency_level(score: float) -> UrgencyLevel:
    if score >= CRITICAL_THRESHOLD:
        return UrgencyLevel.CRITICAL
    if score >= WARNING_THRESHOLD:
        return UrgencyLevel.WARNING
    return UrgencyLevel.STABLE
