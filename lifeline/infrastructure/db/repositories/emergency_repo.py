from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from lifeline.domain.constants import TERMINAL_STATUSES
from lifeline.infrastructure.db.models_sqlalchemy import Emergency


class EmergencyRepository:
    def get_by_id(self, session: Session, emergency_id: str) -> Emergency | None:
        return session.get(Emergency, emergency_id)

    def get_by_offline_id(self, session: Session, offline_id: str) -> Emergency | None:
        stmt = select(Emergency).where(Emergency.offline_id == offline_id)
        return session.execute(stmt).scalar_one_or_none()

    def create(self, session: Session, *, payload: dict[str, Any]) -> Emergency:
        row = Emergency(id=str(uuid4()), version=1, **payload)
        session.add(row)
        session.flush()  # populate defaults
        return row

    def compare_and_set(
        self,
        session: Session,
        emergency_id: str,
        *,
        expected_version: int,
        values: dict[str, Any],
        expected_status: str | None = None,
        expected_otp: str | None = None,
    ) -> Emergency | None:
        """Apply ``values`` only if the row is still in the observed state.

        Returns the refreshed row, or None when a concurrent writer got there
        first (or the guard no longer matches).
        """
        stmt = (
            update(Emergency)
            .where(Emergency.id == emergency_id, Emergency.version == expected_version)
            .values(**values, version=expected_version + 1)
            .execution_options(synchronize_session=False)
        )
        if expected_status is not None:
            stmt = stmt.where(Emergency.status == expected_status)
        if expected_otp is not None:
            stmt = stmt.where(Emergency.verification_otp == expected_otp)
        result = session.execute(stmt)
        if result.rowcount != 1:
            return None
        row = session.get(Emergency, emergency_id, populate_existing=True)
        return row

    def list_overdue(self, session: Session, now: datetime, limit: int = 500) -> list[Emergency]:
        stmt = (
            select(Emergency)
            .where(
                Emergency.status.not_in([status.value for status in TERMINAL_STATUSES]),
                Emergency.expires_at <= now,
            )
            .order_by(Emergency.expires_at.asc())
            .limit(limit)
        )
        return list(session.execute(stmt).scalars())

    def register_failed_attempt(
        self,
        session: Session,
        emergency_id: str,
        *,
        max_failures: int,
        locked_until: datetime,
    ) -> bool:
        """Count one mismatched code; returns True when this attempt triggered a lockout."""
        session.execute(
            update(Emergency)
            .where(Emergency.id == emergency_id)
            .values(otp_failed_attempts=Emergency.otp_failed_attempts + 1)
            .execution_options(synchronize_session=False)
        )
        attempts = session.execute(
            select(Emergency.otp_failed_attempts).where(Emergency.id == emergency_id)
        ).scalar_one()
        if attempts < max_failures:
            return False
        session.execute(
            update(Emergency)
            .where(Emergency.id == emergency_id)
            .values(otp_failed_attempts=0, otp_locked_until=locked_until)
            .execution_options(synchronize_session=False)
        )
        return True
