from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

VerificationModeLiteral = Literal["emergency", "handoff"]


class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class EmergencyDto(WireModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    offline_id: str | None = None
    patient_id: str | None = None
    patient_name: str
    patient_phone: str | None = None
    blood_group: str
    units_required: int
    condition: str
    location_lat: float
    location_lng: float
    location_address: str | None = None
    distance_km: float
    criticality_score: float
    urgency_level: str
    status: str
    escalation_level: int
    escalation_label: str
    hospital_id: str | None = None
    assigned_volunteer_id: str | None = None
    created_at: datetime
    updated_at: datetime
    accepted_at: datetime | None = None
    dispatched_at: datetime | None = None
    fulfilled_at: datetime | None = None
    auto_closed_at: datetime | None = None
    expired_at: datetime | None = None
    expires_at: datetime
    version: int


class EmergencyCreatedDto(WireModel):
    emergency_id: str
    blood_group: str
    criticality_score: float
    urgency_level: str
    expires_at: datetime
    requires_verification: bool = True
    duplicate: bool = False
    validation_warnings: list[str] = Field(default_factory=list)
    eligible_donors: list[str] = Field(default_factory=list)
    otp: str | None = None


class VerifyOtpRequest(WireModel):
    emergency_id: str = Field(..., min_length=1)
    otp: str = Field(..., min_length=1)
    mode: VerificationModeLiteral = "emergency"


class OtpVerificationResult(WireModel):
    emergency_id: str
    mode: VerificationModeLiteral
    new_status: str
    message: str


class ResendOtpRequest(WireModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    emergency_id: str = Field(..., min_length=1)
    mode: VerificationModeLiteral = "emergency"


class OtpIssuedDto(WireModel):
    emergency_id: str
    message: str = "New OTP generated"
    resend_cooldown_seconds: int
    otp: str | None = None


class HandoffTokenDto(WireModel):
    emergency_id: str
    token: str
    expires_at: datetime
    otp: str


class RedeemHandoffRequest(WireModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    token: str = Field(..., min_length=1, max_length=4096)


class AcceptEmergencyRequest(WireModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    hospital_id: str | None = Field(default=None, max_length=128)


class DispatchEmergencyRequest(WireModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    volunteer_id: str | None = Field(default=None, max_length=128)


class OverrideEmergencyRequest(WireModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    status: Literal["fulfilled", "auto_closed"] = "fulfilled"
    reason: str | None = Field(default=None, max_length=500)


class EscalationResultDto(WireModel):
    emergency_id: str
    escalation_level: int
    escalation_label: str
    escalation_levels: list[str]
    changed: bool
    criticality_score: float
    urgency_level: str


class ExpirySweepResultDto(WireModel):
    count: int = 0
    expired_ids: list[str] = Field(default_factory=list)


class AuditEventDto(WireModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    event_ts: datetime
    actor_id: str | None = None
    actor_role: str | None = None
    entity_type: str
    entity_id: str
    action: str
    payload: dict[str, Any] = Field(default_factory=dict)
