from __future__ import annotations

from datetime import datetime

from lifeline.domain.constants import BloodGroup, ConditionType
from lifeline.domain.rules.intake_rules import clean_phone, clean_text, validate_intake


def test_invalid_payload_is_sanitised_with_warnings() -> None:
    result = validate_intake({"bloodGroup": "Z+", "units": 50, "condition": "flu", "lat": 999, "lng": 10})

    data = result.sanitized
    assert data.blood_group is BloodGroup.O_POS
    assert data.units_required == 10
    assert data.condition is ConditionType.OTHER
    assert (data.latitude, data.longitude) == (0.0, 0.0)
    assert len(result.warnings) == 4


def test_clean_payload_has_no_warnings() -> None:
    result = validate_intake(
        {
            "bloodGroup": "ab-",
            "unitsRequired": "3",
            "condition": "Trauma",
            "latitude": "12.97",
            "longitude": 77.59,
            "patientName": "Ravi",
            "patientPhone": "+91 98765-43210",
            "distanceKm": 4.2,
        }
    )

    assert result.warnings == []
    data = result.sanitized
    assert data.blood_group is BloodGroup.AB_NEG
    assert data.units_required == 3
    assert data.condition is ConditionType.TRAUMA
    assert data.latitude == 12.97
    assert data.distance_km == 4.2


def test_missing_fields_default_and_warn() -> None:
    result = validate_intake({})

    data = result.sanitized
    assert data.blood_group is BloodGroup.O_POS
    assert data.units_required == 1
    assert data.patient_name == "Anonymous"
    # blood group, units, condition, coordinates
    assert len(result.warnings) == 4


def test_non_mapping_payload_never_raises() -> None:
    result = validate_intake(["not", "an", "object"])
    assert result.sanitized.condition is ConditionType.OTHER
    assert "Payload is not an object" in result.warnings


def test_units_below_range_are_clamped_up() -> None:
    result = validate_intake({"bloodGroup": "A+", "units": 0, "condition": "other", "lat": 1, "lng": 1})
    assert result.sanitized.units_required == 1
    assert len(result.warnings) == 1


def test_boolean_units_are_not_numbers() -> None:
    result = validate_intake({"bloodGroup": "A+", "units": True, "condition": "other", "lat": 1, "lng": 1})
    assert result.sanitized.units_required == 1
    assert result.warnings == ["Units missing or not a number, defaulted to 1"]


def test_text_fields_are_stripped_of_markup_characters() -> None:
    assert clean_text("<script>alert('x')</script>", 100) == "scriptalert(x)/script"
    assert clean_text("a" * 600, 500) == "a" * 500
    assert clean_text("  <>  ", 10) is None
    assert clean_phone("+1 (555) 010-9999 ext") == "+1 555 010-9999"


def test_queued_at_is_normalised_to_naive_utc() -> None:
    result = validate_intake(
        {
            "bloodGroup": "O+",
            "units": 1,
            "condition": "other",
            "lat": 0,
            "lng": 0,
            "offlineId": "offline-42<>",
            "queuedAt": "2026-03-01T10:00:00+02:00",
        }
    )

    assert result.sanitized.queued_at == datetime(2026, 3, 1, 8, 0)
    assert result.sanitized.offline_id == "offline-42"
    assert result.warnings == []


def test_queued_at_outside_datetime_range_is_ignored() -> None:
    result = validate_intake({"bloodGroup": "O+", "queuedAt": "0001-01-01T00:00:00+05:00"})

    assert result.sanitized.queued_at is None
    assert "Invalid queuedAt timestamp, ignored" in result.warnings


def test_bad_distance_warns_only_when_supplied() -> None:
    base = {"bloodGroup": "O+", "units": 1, "condition": "other", "lat": 0, "lng": 0}
    assert validate_intake(base).warnings == []
    result = validate_intake({**base, "distanceKm": -3})
    assert result.sanitized.distance_km == 0.0
    assert result.warnings == ["Invalid distance, defaulted to 0"]
