from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from lifeline.infrastructure.db.models_sqlalchemy import AuditLog, utc_now


class AuditLogRepository:
    """Insert-only access to the audit trail."""

    def add_event(
        self,
        session: Session,
        *,
        actor_id: str | None,
        entity_type: str,
        entity_id: str,
        action: str,
        actor_role: str | None = None,
        ip_address: str | None = None,
        payload_json: str | None = None,
        event_ts: datetime | None = None,
    ) -> AuditLog:
        entry = AuditLog(
            event_ts=event_ts or utc_now(),
            actor_id=actor_id,
            actor_role=actor_role,
            ip_address=ip_address,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            payload_json=payload_json,
        )
        session.add(entry)
        return entry

    def list_for_entity(self, session: Session, entity_type: str, entity_id: str, limit: int = 200) -> list[AuditLog]:
        stmt = (
            select(AuditLog)
            .where(AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id)
            .order_by(AuditLog.event_ts.asc(), AuditLog.id.asc())
            .limit(limit)
        )
        return list(session.execute(stmt).scalars())
