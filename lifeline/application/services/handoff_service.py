from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from lifeline.application.dto.auth_dto import ActorContext
from lifeline.application.dto.emergency_dto import HandoffTokenDto
from lifeline.application.errors import IllegalTransitionError, NotFoundError
from lifeline.application.services.audit_service import AuditWriter
from lifeline.application.services.otp_service import OtpService
from lifeline.config import Settings, settings
from lifeline.domain.constants import HANDOFF_TOKEN_TTL_SECONDS, VerificationMode
from lifeline.domain.rules.emergency_rules import is_terminal
from lifeline.infrastructure.db.models_sqlalchemy import utc_now
from lifeline.infrastructure.db.repositories.audit_repo import AuditLogRepository
from lifeline.infrastructure.db.repositories.emergency_repo import EmergencyRepository
from lifeline.infrastructure.db.session import session_scope
from lifeline.infrastructure.security.handoff_token import encode_handoff_token


class HandoffService:
    """Mints the short-lived signed token shown as a QR code at the handoff point."""

    def __init__(
        self,
        otp_service: OtpService,
        repo: EmergencyRepository | None = None,
        audit_repo: AuditLogRepository | None = None,
        session_factory: Callable = session_scope,
        config: Settings = settings,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.otp_service = otp_service
        self.repo = repo or EmergencyRepository()
        self.audit = AuditWriter(audit_repo)
        self.session_factory = session_factory
        self.config = config
        self._clock = clock
        self._logger = logging.getLogger(__name__)

    def issue_token(self, emergency_id: str, actor: ActorContext) -> HandoffTokenDto:
        now = self._clock()
        with self.session_factory() as session:
            row = self.repo.get_by_id(session, emergency_id)
            if row is None:
                raise NotFoundError("Emergency not found")
            if is_terminal(str(row.status)):
                raise IllegalTransitionError(
                    str(row.status), str(row.status), f"Emergency is already {row.status}"
                )
            otp = row.verification_otp
            if otp is None:
                otp, _ = self.otp_service.issue_in_session(
                    session, row, actor, VerificationMode.HANDOFF, now=now, action="otp_issued"
                )
            token, expires_at = encode_handoff_token(
                emergency_id=str(row.id),
                blood_group=str(row.blood_group),
                units=int(row.units_required),
                otp=str(otp),
                secret=self.config.handoff_secret,
                now=now,
                ttl_seconds=HANDOFF_TOKEN_TTL_SECONDS,
            )
            self.audit.record(
                session,
                actor=actor,
                entity_id=str(row.id),
                action="handoff_token_issued",
                now=now,
                details={"expires_at": expires_at, "ttl_seconds": HANDOFF_TOKEN_TTL_SECONDS},
            )
        self._logger.info("Handoff token issued for emergency %s", emergency_id)
        return HandoffTokenDto(emergency_id=emergency_id, token=token, expires_at=expires_at, otp=str(otp))
