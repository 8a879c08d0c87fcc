from __future__ import annotations

import json
from collections.abc import Callable
from datetime import datetime
from typing import Any

from lifeline.application.dto.auth_dto import ActorContext
from lifeline.application.dto.emergency_dto import AuditEventDto
from lifeline.application.errors import AccessDeniedError
from lifeline.application.security.role_matrix import Permission, has_permission
from lifeline.domain.constants import ENTITY_EMERGENCY
from lifeline.infrastructure.db.models_sqlalchemy import utc_now
from lifeline.infrastructure.db.repositories.audit_repo import AuditLogRepository
from lifeline.infrastructure.db.session import session_scope

AUDIT_SCHEMA = "emergency.audit.v1"


class AuditWriter:
    def __init__(self, audit_repo: AuditLogRepository | None = None) -> None:
        self.audit_repo = audit_repo or AuditLogRepository()

    def record(
        self,
        session,
        *,
        actor: ActorContext,
        entity_id: str,
        action: str,
        now: datetime,
        status_from: str | None = None,
        status_to: str | None = None,
        details: dict[str, Any] | None = None,
        entity_type: str = ENTITY_EMERGENCY,
    ) -> None:
        payload_json = json.dumps(
            {
                "schema": AUDIT_SCHEMA,
                "event": {
                    "ts": now.isoformat(),
                    "action": action,
                    "status_from": status_from,
                    "status_to": status_to,
                },
                "details": details or {},
            },
            ensure_ascii=False,
            default=str,
        )
        self.audit_repo.add_event(
            session,
            actor_id=actor.actor_id,
            actor_role=actor.role,
            ip_address=actor.ip_address,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            payload_json=payload_json,
            event_ts=now,
        )


def require_permission(
    session_factory: Callable,
    writer: AuditWriter,
    actor: ActorContext,
    permission: Permission,
    *,
    entity_id: str,
    now: datetime,
) -> None:
    """Raise AccessDeniedError, after committing an audit record, unless allowed."""
    if has_permission(actor.role, permission):
        return
    with session_factory() as session:
        writer.record(
            session,
            actor=actor,
            entity_id=entity_id,
            action="access_denied",
            now=now,
            details={"permission": permission},
        )
    raise AccessDeniedError(f"Role '{actor.role}' may not {permission.replace('_', ' ')}")


class AuditService:
    def __init__(
        self,
        audit_repo: AuditLogRepository | None = None,
        session_factory: Callable = session_scope,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.audit_repo = audit_repo or AuditLogRepository()
        self.writer = AuditWriter(self.audit_repo)
        self.session_factory = session_factory
        self._clock = clock

    def emergency_trail(self, emergency_id: str, actor: ActorContext, limit: int = 200) -> list[AuditEventDto]:
        require_permission(
            self.session_factory, self.writer, actor, "view_audit", entity_id=emergency_id, now=self._clock()
        )
        with self.session_factory() as session:
            rows = self.audit_repo.list_for_entity(session, ENTITY_EMERGENCY, emergency_id, limit=limit)
            return [
                AuditEventDto(
                    id=int(row.id),
                    event_ts=row.event_ts,
                    actor_id=row.actor_id,
                    actor_role=row.actor_role,
                    entity_type=str(row.entity_type),
                    entity_id=str(row.entity_id),
                    action=str(row.action),
                    payload=_load_payload(row.payload_json),
                )
                for row in rows
            ]


def _load_payload(value: str | None) -> dict[str, Any]:
    if not value:
        return {}
    try:
        loaded = json.loads(value)
    except ValueError:
        return {"raw": value}
    return loaded if isinstance(loaded, dict) else {"value": loaded}
