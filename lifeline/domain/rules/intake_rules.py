from __future__ import annotations

import math
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from lifeline.domain.constants import MAX_UNITS, MIN_UNITS, BloodGroup, ConditionType

DEFAULT_BLOOD_GROUP = BloodGroup.O_POS
DEFAULT_CONDITION = ConditionType.OTHER
DEFAULT_PATIENT_NAME = "Anonymous"

PATIENT_NAME_MAX = 100
PHONE_MAX = 20
ADDRESS_MAX = 500
OFFLINE_ID_MAX = 64

_UNSAFE_TEXT = re.compile(r"[<>\"'\\]")
_PHONE_DISALLOWED = re.compile(r"[^\d+\-\s]")
_OFFLINE_ID_DISALLOWED = re.compile(r"[^A-Za-z0-9_.:\-]")


@dataclass(slots=True)
class SanitizedEmergency:
    blood_group: BloodGroup
    units_required: int
    condition: ConditionType
    latitude: float
    longitude: float
    patient_name: str
    patient_phone: str | None = None
    address: str | None = None
    distance_km: float = 0.0
    offline_id: str | None = None
    queued_at: datetime | None = None


@dataclass(slots=True)
class IntakeResult:
    sanitized: SanitizedEmergency
    warnings: list[str] = field(default_factory=list)


def validate_intake(raw: Any) -> IntakeResult:
    """Best-effort normalisation of an untrusted emergency payload.

    Never raises. Bad values are replaced by safe defaults or clamped and a
    human-readable warning is recorded for each correction, so a request is
    never blocked on its content.
    """
    warnings: list[str] = []
    if not isinstance(raw, Mapping):
        warnings.append("Payload is not an object")
        raw = {}

    blood_group = _parse_blood_group(raw.get("bloodGroup"), warnings)
    units = _parse_units(_first_present(raw, "unitsRequired", "units"), warnings)
    condition = _parse_condition(raw.get("condition"), warnings)
    latitude, longitude = _parse_coordinates(
        _first_present(raw, "latitude", "lat"),
        _first_present(raw, "longitude", "lng"),
        warnings,
    )
    distance_km = _parse_distance(raw.get("distanceKm"), warnings)
    queued_at = _parse_queued_at(raw.get("queuedAt"), warnings)

    patient_name = clean_text(raw.get("patientName"), PATIENT_NAME_MAX) or DEFAULT_PATIENT_NAME
    sanitized = SanitizedEmergency(
        blood_group=blood_group,
        units_required=units,
        condition=condition,
        latitude=latitude,
        longitude=longitude,
        patient_name=patient_name,
        patient_phone=clean_phone(raw.get("patientPhone")),
        address=clean_text(raw.get("address"), ADDRESS_MAX),
        distance_km=distance_km,
        offline_id=_clean_offline_id(raw.get("offlineId")),
        queued_at=queued_at,
    )
    return IntakeResult(sanitized=sanitized, warnings=warnings)


def clean_text(value: Any, max_length: int) -> str | None:
    if value is None:
        return None
    text = _UNSAFE_TEXT.sub("", str(value)).strip()
    return text[:max_length] or None


def clean_phone(value: Any) -> str | None:
    if value is None:
        return None
    text = _PHONE_DISALLOWED.sub("", str(value)).strip()
    return text[:PHONE_MAX] or None


def _clean_offline_id(value: Any) -> str | None:
    if value is None:
        return None
    text = _OFFLINE_ID_DISALLOWED.sub("", str(value))
    return text[:OFFLINE_ID_MAX] or None


def _first_present(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if raw.get(key) is not None:
            return raw[key]
    return None


def _parse_blood_group(value: Any, warnings: list[str]) -> BloodGroup:
    if isinstance(value, str) and value.strip().upper() in BloodGroup.values():
        return BloodGroup(value.strip().upper())
    if value is None:
        warnings.append(f"Blood group missing, defaulted to {DEFAULT_BLOOD_GROUP}")
    else:
        warnings.append(f"Invalid blood group: {value!s:.20}, defaulted to {DEFAULT_BLOOD_GROUP}")
    return DEFAULT_BLOOD_GROUP


def _parse_units(value: Any, warnings: list[str]) -> int:
    units = _as_int(value)
    if units is None:
        warnings.append(f"Units missing or not a number, defaulted to {MIN_UNITS}")
        return MIN_UNITS
    clamped = min(max(units, MIN_UNITS), MAX_UNITS)
    if clamped != units:
        warnings.append(f"Units {units} outside {MIN_UNITS}..{MAX_UNITS}, clamped to {clamped}")
    return clamped


def _parse_condition(value: Any, warnings: list[str]) -> ConditionType:
    if isinstance(value, str) and value.strip().lower() in ConditionType.values():
        return ConditionType(value.strip().lower())
    if value is None:
        warnings.append(f"Condition missing, defaulted to {DEFAULT_CONDITION}")
    else:
        warnings.append(f"Invalid condition type: {value!s:.20}, defaulted to {DEFAULT_CONDITION}")
    return DEFAULT_CONDITION


def _parse_coordinates(lat_raw: Any, lng_raw: Any, warnings: list[str]) -> tuple[float, float]:
    lat = _as_float(lat_raw)
    lng = _as_float(lng_raw)
    if lat is None or lng is None or abs(lat) > 90.0 or abs(lng) > 180.0:
        warnings.append("Invalid coordinates, defaulted to 0,0")
        return 0.0, 0.0
    return lat, lng


def _parse_distance(value: Any, warnings: list[str]) -> float:
    if value is None:
        return 0.0
    distance = _as_float(value)
    if distance is None or distance < 0:
        warnings.append("Invalid distance, defaulted to 0")
        return 0.0
    return distance


def _parse_queued_at(value: Any, warnings: list[str]) -> datetime | None:
    if value is None:
        return None
    text = str(value).strip()
    if text.endswith("Z"):
        text = f"{text[:-1]}+00:00"
    try:
        parsed = datetime.fromisoformat(text)
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(UTC).replace(tzinfo=None)
    except (ValueError, OverflowError):
        warnings.append("Invalid queuedAt timestamp, ignored")
        return None
    return parsed


def _as_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    number = _as_float(value)
    if number is None:
        return None
    return int(number)


def _as_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(str(value).strip()) if not isinstance(value, (int, float)) else float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number
