from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    MetaData,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase

from lifeline.domain.constants import BloodGroup, EmergencyStatus, escalation_label

naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    # avoid constraint_name token to allow unnamed CheckConstraint
    "ck": "ck_%(table_name)s_%(column_0_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=naming_convention)


class Base(DeclarativeBase):
    metadata = metadata


def utc_now() -> datetime:
    # Stored naive; every timestamp in the database is UTC.
    return datetime.now(UTC).replace(tzinfo=None)


def _quoted(values: list[str]) -> str:
    return ",".join(f"'{value}'" for value in values)


class Emergency(Base):
    __tablename__ = "emergencies"

    id = Column(String, primary_key=True)
    offline_id = Column(String, unique=True, nullable=True)
    patient_id = Column(String, nullable=True)
    patient_name = Column(String(100), nullable=False)
    patient_phone = Column(String(20), nullable=True)

    blood_group = Column(String(3), nullable=False)
    units_required = Column(Integer, nullable=False)
    condition = Column(String, nullable=False)
    location_lat = Column(Float, nullable=False)
    location_lng = Column(Float, nullable=False)
    location_address = Column(String(500), nullable=True)
    distance_km = Column(Float, nullable=False, default=0.0)

    criticality_score = Column(Float, nullable=False)
    urgency_level = Column(String, nullable=False)

    status = Column(String, nullable=False, default=EmergencyStatus.CREATED.value)
    escalation_level = Column(Integer, nullable=False, default=0)
    verification_otp = Column(String(6), nullable=True)
    otp_failed_attempts = Column(Integer, nullable=False, default=0)
    otp_locked_until = Column(DateTime, nullable=True)

    hospital_id = Column(String, nullable=True)
    assigned_volunteer_id = Column(String, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now)
    queued_at = Column(DateTime, nullable=True)
    accepted_at = Column(DateTime, nullable=True)
    dispatched_at = Column(DateTime, nullable=True)
    fulfilled_at = Column(DateTime, nullable=True)
    auto_closed_at = Column(DateTime, nullable=True)
    expired_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=False)

    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint(f"status in ({_quoted(EmergencyStatus.values())})", name="ck_emergencies_status"),
        CheckConstraint(f"blood_group in ({_quoted(BloodGroup.values())})", name="ck_emergencies_blood_group"),
        CheckConstraint("units_required between 1 and 10", name="ck_emergencies_units_required"),
        CheckConstraint("escalation_level between 0 and 4", name="ck_emergencies_escalation_level"),
        Index("ix_emergencies_status_expires_at", "status", "expires_at"),
    )

    @property
    def escalation_label(self) -> str:
        return escalation_label(int(self.escalation_level or 0))


class AuditLog(Base):
    __tablename__ = "audit_log"

    id = Column(Integer, primary_key=True)
    event_ts = Column(DateTime, nullable=False, default=utc_now)
    actor_id = Column(String, nullable=True)
    actor_role = Column(String, nullable=True)
    ip_address = Column(String, nullable=True)
    entity_type = Column(String, nullable=False)
    entity_id = Column(String, nullable=False)
    action = Column(String, nullable=False)
    payload_json = Column(Text, nullable=True)

    __table_args__ = (
        Index("ix_audit_log_entity_type_entity_id", "entity_type", "entity_id"),
        Index("ix_audit_log_event_ts", "event_ts"),
    )
