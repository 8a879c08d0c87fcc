from __future__ import annotations

import pytest

from lifeline.domain.calculations.criticality import criticality_score, rarity_score, urgency_level
from lifeline.domain.constants import BloodGroup, ConditionType, UrgencyLevel


def test_rare_trauma_case_at_saturation_is_critical() -> None:
    score = criticality_score("O-", "trauma", elapsed_minutes=120, distance_km=50)

    assert rarity_score("O-") == pytest.approx(0.934)
    assert score == pytest.approx(98.02)
    assert urgency_level(score) is UrgencyLevel.CRITICAL


def test_time_and_distance_saturate() -> None:
    at_cap = criticality_score("A+", "surgery", elapsed_minutes=120, distance_km=50)
    beyond = criticality_score("A+", "surgery", elapsed_minutes=10_000, distance_km=900)
    assert beyond == pytest.approx(at_cap)


def test_negative_inputs_count_as_zero() -> None:
    assert criticality_score("B+", "other", elapsed_minutes=-30, distance_km=-5) == pytest.approx(
        criticality_score("B+", "other", elapsed_minutes=0, distance_km=0)
    )


def test_rarer_group_never_scores_lower() -> None:
    ordered = sorted(BloodGroup, key=rarity_score)
    scores = [criticality_score(group, "dengue", 30, 10) for group in ordered]
    assert scores == sorted(scores)


@pytest.mark.parametrize("group", list(BloodGroup))
@pytest.mark.parametrize("condition", list(ConditionType))
def test_score_stays_within_range(group: BloodGroup, condition: ConditionType) -> None:
    score = criticality_score(group, condition, 45, 12.5)
    assert 0.0 <= score <= 100.0


@pytest.mark.parametrize(
    ("score", "expected"),
    [
        (0.0, UrgencyLevel.STABLE),
        (39.99, UrgencyLevel.STABLE),
        (40.0, UrgencyLevel.WARNING),
        (69.99, UrgencyLevel.WARNING),
        (70.0, UrgencyLevel.CRITICAL),
        (100.0, UrgencyLevel.CRITICAL),
    ],
)
def test_urgency_thresholds(score: float, expected: UrgencyLevel) -> None:
    assert urgency_level(score) is expected


def test_unknown_blood_group_is_rejected() -> None:
    with pytest.raises(ValueError):
        criticality_score("Z+", "trauma", 0, 0)
