from __future__ import annotations

import hmac
import logging
import math
from collections.abc import Callable
from datetime import datetime, timedelta

from lifeline.application.dto.auth_dto import ActorContext
from lifeline.application.dto.emergency_dto import OtpIssuedDto, OtpVerificationResult, ResendOtpRequest
from lifeline.application.errors import (
    AppError,
    HandoffTokenExpiredError,
    IllegalTransitionError,
    InvalidHandoffTokenError,
    InvalidOtpFormatError,
    NotFoundError,
    OtpLockedError,
    OtpMismatchError,
)
from lifeline.application.services.audit_service import AuditWriter
from lifeline.config import Settings, settings
from lifeline.domain.constants import ENTITY_SECURITY, OTP_RESEND_COOLDOWN_SECONDS, VerificationMode
from lifeline.domain.rules.emergency_rules import (
    TransitionError,
    is_terminal,
    target_status_for_mode,
    transition_side_effects,
    validate_status_transition,
)
from lifeline.infrastructure.db.models_sqlalchemy import Emergency, utc_now
from lifeline.infrastructure.db.repositories.audit_repo import AuditLogRepository
from lifeline.infrastructure.db.repositories.emergency_repo import EmergencyRepository
from lifeline.infrastructure.db.session import session_scope
from lifeline.infrastructure.notifications.otp_dispatch import LoggingOtpNotifier, OtpNotifier
from lifeline.infrastructure.security.handoff_token import (
    HandoffTokenError,
    HandoffTokenExpired,
    decode_handoff_token,
)
from lifeline.infrastructure.security.otp import generate_otp, is_valid_otp_format, mask_phone

_SUCCESS_ACTION = {
    VerificationMode.EMERGENCY: "otp_verified",
    VerificationMode.HANDOFF: "blood_handoff_verified",
}
_SUCCESS_MESSAGE = {
    VerificationMode.EMERGENCY: "Emergency verified successfully",
    VerificationMode.HANDOFF: "Blood handoff verified successfully",
}


class OtpService:
    """One-time codes for hospital verification and the physical handoff.

    Only one code is ever outstanding per emergency: issuing a new one replaces
    the old. Verification runs format -> lookup -> lockout -> comparison ->
    transition legality, and every attempt that reaches storage is audited,
    including the ones that fail.
    """

    def __init__(
        self,
        repo: EmergencyRepository | None = None,
        audit_repo: AuditLogRepository | None = None,
        session_factory: Callable = session_scope,
        notifier: OtpNotifier | None = None,
        config: Settings = settings,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.repo = repo or EmergencyRepository()
        self.audit = AuditWriter(audit_repo)
        self.session_factory = session_factory
        self.notifier = notifier or LoggingOtpNotifier()
        self.config = config
        self._clock = clock
        self._logger = logging.getLogger(__name__)

    def generate(
        self,
        emergency_id: str,
        actor: ActorContext,
        mode: VerificationMode | str = VerificationMode.EMERGENCY,
        *,
        action: str = "otp_issued",
    ) -> str:
        mode = VerificationMode(mode)
        now = self._clock()
        with self.session_factory() as session:
            row = self._get_or_raise(session, emergency_id)
            otp, phone = self.issue_in_session(session, row, actor, mode, now=now, action=action)
        self.notifier.send_otp(emergency_id=emergency_id, phone=phone, otp=otp, mode=mode.value)
        return otp

    def issue_in_session(
        self,
        session,
        row: Emergency,
        actor: ActorContext,
        mode: VerificationMode,
        *,
        now: datetime,
        action: str,
    ) -> tuple[str, str | None]:
        if is_terminal(str(row.status)):
            raise IllegalTransitionError(
                str(row.status),
                str(row.status),
                f"Emergency is {row.status}; no verification can be pending",
            )
        otp = generate_otp()
        updated = self.repo.compare_and_set(
            session,
            str(row.id),
            expected_version=int(row.version),
            expected_status=str(row.status),
            values={
                "verification_otp": otp,
                "otp_failed_attempts": 0,
                "otp_locked_until": None,
                "updated_at": now,
            },
        )
        if updated is None:
            raise IllegalTransitionError(
                str(row.status), str(row.status), "Emergency changed while issuing a new code, retry"
            )
        self.audit.record(
            session,
            actor=actor,
            entity_id=str(row.id),
            action=action,
            now=now,
            details={"mode": mode.value, "phone": mask_phone(updated.patient_phone)},
        )
        return otp, updated.patient_phone

    def resend(self, request: ResendOtpRequest, actor: ActorContext) -> OtpIssuedDto:
        # The 60 s cooldown is enforced by the caller; the gate itself always re-issues.
        otp = self.generate(request.emergency_id, actor, request.mode, action="otp_resent")
        return OtpIssuedDto(
            emergency_id=request.emergency_id,
            resend_cooldown_seconds=OTP_RESEND_COOLDOWN_SECONDS,
            otp=None if self.config.is_production else otp,
        )

    def verify(
        self,
        emergency_id: str,
        submitted_otp: str,
        mode: VerificationMode | str,
        actor: ActorContext,
    ) -> OtpVerificationResult:
        if not is_valid_otp_format(submitted_otp):
            raise InvalidOtpFormatError("OTP must be exactly 6 digits")
        mode = VerificationMode(mode)
        now = self._clock()
        failure: AppError

        with self.session_factory() as session:
            row = self.repo.get_by_id(session, emergency_id)
            if row is None:
                self._record_failure(session, actor, emergency_id, mode, now, reason="not_found")
                failure = NotFoundError("Emergency not found")
            elif row.otp_locked_until is not None and row.otp_locked_until > now:
                self._record_failure(session, actor, emergency_id, mode, now, reason="locked")
                retry_after = math.ceil((row.otp_locked_until - now).total_seconds())
                failure = OtpLockedError(max(1, retry_after))
            elif row.verification_otp is None or not hmac.compare_digest(str(row.verification_otp), submitted_otp):
                failure = self._record_mismatch(session, actor, row, mode, now)
            else:
                outcome = self._apply_verified(session, actor, row, submitted_otp, mode, now)
                if isinstance(outcome, OtpVerificationResult):
                    return outcome
                failure = outcome
        raise failure

    def redeem_handoff_token(self, token: str, actor: ActorContext) -> OtpVerificationResult:
        now = self._clock()
        try:
            claims = decode_handoff_token(token, secret=self.config.handoff_secret, now=now)
        except HandoffTokenExpired as exc:
            self._audit_token_rejection(actor, now, reason="expired")
            raise HandoffTokenExpiredError(str(exc)) from exc
        except HandoffTokenError as exc:
            self._audit_token_rejection(actor, now, reason="invalid")
            raise InvalidHandoffTokenError(str(exc)) from exc
        return self.verify(claims.emergency_id, claims.otp, VerificationMode.HANDOFF, actor)

    def _apply_verified(
        self,
        session,
        actor: ActorContext,
        row: Emergency,
        submitted_otp: str,
        mode: VerificationMode,
        now: datetime,
    ) -> OtpVerificationResult | AppError:
        emergency_id = str(row.id)
        status_from = str(row.status)
        target = target_status_for_mode(mode)
        try:
            validate_status_transition(status_from, target)
        except TransitionError as exc:
            self._record_failure(
                session, actor, emergency_id, mode, now, reason="illegal_transition", status_from=status_from
            )
            return IllegalTransitionError(exc.from_status, exc.to_status)

        values = transition_side_effects(target, now)
        values["otp_failed_attempts"] = 0
        values["otp_locked_until"] = None
        updated = self.repo.compare_and_set(
            session,
            emergency_id,
            expected_version=int(row.version),
            expected_status=status_from,
            expected_otp=submitted_otp,
            values=values,
        )
        if updated is None:
            # Another verifier consumed the code first.
            self._record_failure(session, actor, emergency_id, mode, now, reason="concurrent_update")
            return OtpMismatchError("Invalid OTP")

        self.audit.record(
            session,
            actor=actor,
            entity_id=emergency_id,
            action=_SUCCESS_ACTION[mode],
            now=now,
            status_from=status_from,
            status_to=target.value,
            details={"mode": mode.value},
        )
        self._logger.info("Emergency %s %s -> %s via %s OTP", emergency_id, status_from, target.value, mode.value)
        return OtpVerificationResult(
            emergency_id=emergency_id,
            mode=mode.value,
            new_status=target.value,
            message=_SUCCESS_MESSAGE[mode],
        )

    def _record_mismatch(
        self,
        session,
        actor: ActorContext,
        row: Emergency,
        mode: VerificationMode,
        now: datetime,
    ) -> AppError:
        locked = self.repo.register_failed_attempt(
            session,
            str(row.id),
            max_failures=self.config.otp_max_failures,
            locked_until=now + timedelta(seconds=self.config.otp_lockout_seconds),
        )
        self._record_failure(session, actor, str(row.id), mode, now, reason="mismatch", locked=locked)
        if locked:
            self._logger.warning("OTP verification locked for emergency %s after repeated failures", row.id)
        return OtpMismatchError("Invalid OTP")

    def _record_failure(
        self,
        session,
        actor: ActorContext,
        emergency_id: str,
        mode: VerificationMode,
        now: datetime,
        *,
        reason: str,
        status_from: str | None = None,
        locked: bool = False,
    ) -> None:
        details: dict[str, object] = {"mode": mode.value, "reason": reason}
        if locked:
            details["locked"] = True
        self.audit.record(
            session,
            actor=actor,
            entity_id=emergency_id,
            action="otp_verification_failed",
            now=now,
            status_from=status_from,
            details=details,
        )

    def _audit_token_rejection(self, actor: ActorContext, now: datetime, *, reason: str) -> None:
        with self.session_factory() as session:
            self.audit.record(
                session,
                actor=actor,
                entity_id="-",
                entity_type=ENTITY_SECURITY,
                action="handoff_token_rejected",
                now=now,
                details={"reason": reason},
            )

    def _get_or_raise(self, session, emergency_id: str) -> Emergency:
        row = self.repo.get_by_id(session, emergency_id)
        if row is None:
            raise NotFoundError("Emergency not found")
        return row
