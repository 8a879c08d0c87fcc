"""Emergencies and audit log"""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_emergencies_audit"
down_revision = None
branch_labels = None
depends_on = None

_STATUSES = "'created','hospital_verified','accepted','in_transit','fulfilled','auto_closed','expired'"
_BLOOD_GROUPS = "'A+','A-','B+','B-','AB+','AB-','O+','O-'"


def upgrade() -> None:
    op.create_table(
        "emergencies",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("offline_id", sa.String(), nullable=True),
        sa.Column("patient_id", sa.String(), nullable=True),
        sa.Column("patient_name", sa.String(length=100), nullable=False),
        sa.Column("patient_phone", sa.String(length=20), nullable=True),
        sa.Column("blood_group", sa.String(length=3), nullable=False),
        sa.Column("units_required", sa.Integer(), nullable=False),
        sa.Column("condition", sa.String(), nullable=False),
        sa.Column("location_lat", sa.Float(), nullable=False),
        sa.Column("location_lng", sa.Float(), nullable=False),
        sa.Column("location_address", sa.String(length=500), nullable=True),
        sa.Column("distance_km", sa.Float(), nullable=False),
        sa.Column("criticality_score", sa.Float(), nullable=False),
        sa.Column("urgency_level", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("escalation_level", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("verification_otp", sa.String(length=6), nullable=True),
        sa.Column("otp_failed_attempts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("otp_locked_until", sa.DateTime(), nullable=True),
        sa.Column("hospital_id", sa.String(), nullable=True),
        sa.Column("assigned_volunteer_id", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("queued_at", sa.DateTime(), nullable=True),
        sa.Column("accepted_at", sa.DateTime(), nullable=True),
        sa.Column("dispatched_at", sa.DateTime(), nullable=True),
        sa.Column("fulfilled_at", sa.DateTime(), nullable=True),
        sa.Column("auto_closed_at", sa.DateTime(), nullable=True),
        sa.Column("expired_at", sa.DateTime(), nullable=True),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.PrimaryKeyConstraint("id", name="pk_emergencies"),
        sa.UniqueConstraint("offline_id", name="uq_emergencies_offline_id"),
        sa.CheckConstraint(f"status in ({_STATUSES})", name="ck_emergencies_status"),
        sa.CheckConstraint(f"blood_group in ({_BLOOD_GROUPS})", name="ck_emergencies_blood_group"),
        sa.CheckConstraint("units_required between 1 and 10", name="ck_emergencies_units_required"),
        sa.CheckConstraint("escalation_level between 0 and 4", name="ck_emergencies_escalation_level"),
    )
    op.create_index("ix_emergencies_status_expires_at", "emergencies", ["status", "expires_at"], unique=False)

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("event_ts", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
        sa.Column("actor_id", sa.String(), nullable=True),
        sa.Column("actor_role", sa.String(), nullable=True),
        sa.Column("ip_address", sa.String(), nullable=True),
        sa.Column("entity_type", sa.String(), nullable=False),
        sa.Column("entity_id", sa.String(), nullable=False),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("payload_json", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_audit_log"),
    )
    op.create_index("ix_audit_log_event_ts", "audit_log", ["event_ts"], unique=False)
    op.create_index("ix_audit_log_entity_type_entity_id", "audit_log", ["entity_type", "entity_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_audit_log_entity_type_entity_id", table_name="audit_log")
    op.drop_index("ix_audit_log_event_ts", table_name="audit_log")
    op.drop_table("audit_log")
    op.drop_index("ix_emergencies_status_expires_at", table_name="emergencies")
    op.drop_table("emergencies")
