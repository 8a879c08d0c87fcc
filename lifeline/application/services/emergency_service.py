from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.exc import IntegrityError

from lifeline.application.dto.auth_dto import ActorContext
from lifeline.application.dto.emergency_dto import (
    AcceptEmergencyRequest,
    DispatchEmergencyRequest,
    EmergencyCreatedDto,
    EmergencyDto,
    EscalationResultDto,
    ExpirySweepResultDto,
    OverrideEmergencyRequest,
)
from lifeline.application.errors import (
    AppError,
    IllegalTransitionError,
    NotFoundError,
    RateLimitExceededError,
    StorageFailureError,
)
from lifeline.application.services.audit_service import AuditWriter, require_permission
from lifeline.config import Settings, settings
from lifeline.domain.calculations.criticality import criticality_score, urgency_level
from lifeline.domain.constants import ESCALATION_LABELS, EmergencyStatus, VerificationMode, escalation_label
from lifeline.domain.models.blood import compatible_donors
from lifeline.domain.rules.emergency_rules import (
    ADMIN_OVERRIDE_TARGETS,
    TransitionError,
    is_terminal,
    next_escalation_level,
    transition_side_effects,
    validate_status_transition,
)
from lifeline.domain.rules.intake_rules import validate_intake
from lifeline.infrastructure.db.models_sqlalchemy import Emergency, utc_now
from lifeline.infrastructure.db.repositories.audit_repo import AuditLogRepository
from lifeline.infrastructure.db.repositories.emergency_repo import EmergencyRepository
from lifeline.infrastructure.db.session import session_scope
from lifeline.infrastructure.notifications.otp_dispatch import LoggingOtpNotifier, OtpNotifier
from lifeline.infrastructure.ratelimit.rate_limiter import InMemoryRateLimiter, RateLimiter
from lifeline.infrastructure.security.otp import generate_otp

# Optimistic escalation retries before giving up on a hot record.
_CAS_ATTEMPTS = 3


def emergency_to_dto(row: Emergency) -> EmergencyDto:
    return EmergencyDto(
        id=str(row.id),
        offline_id=row.offline_id,
        patient_id=row.patient_id,
        patient_name=str(row.patient_name),
        patient_phone=row.patient_phone,
        blood_group=str(row.blood_group),
        units_required=int(row.units_required),
        condition=str(row.condition),
        location_lat=float(row.location_lat),
        location_lng=float(row.location_lng),
        location_address=row.location_address,
        distance_km=float(row.distance_km),
        criticality_score=float(row.criticality_score),
        urgency_level=str(row.urgency_level),
        status=str(row.status),
        escalation_level=int(row.escalation_level),
        escalation_label=row.escalation_label,
        hospital_id=row.hospital_id,
        assigned_volunteer_id=row.assigned_volunteer_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
        accepted_at=row.accepted_at,
        dispatched_at=row.dispatched_at,
        fulfilled_at=row.fulfilled_at,
        auto_closed_at=row.auto_closed_at,
        expired_at=row.expired_at,
        expires_at=row.expires_at,
        version=int(row.version),
    )


def _elapsed_minutes(row: Emergency, now: datetime) -> float:
    started = row.queued_at or row.created_at
    return (now - started).total_seconds() / 60.0


class EmergencyService:
    """Intake, lifecycle transitions and administrative actions for emergencies."""

    def __init__(
        self,
        repo: EmergencyRepository | None = None,
        audit_repo: AuditLogRepository | None = None,
        session_factory: Callable = session_scope,
        rate_limiter: RateLimiter | None = None,
        notifier: OtpNotifier | None = None,
        config: Settings = settings,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.repo = repo or EmergencyRepository()
        self.audit = AuditWriter(audit_repo)
        self.session_factory = session_factory
        self.config = config
        self.rate_limiter = rate_limiter or InMemoryRateLimiter(
            max_requests=config.rate_limit_max,
            window_seconds=config.rate_limit_window_seconds,
        )
        self.notifier = notifier or LoggingOtpNotifier()
        self._clock = clock
        self._logger = logging.getLogger(__name__)

    # ------------------------------------------------------------------ intake

    def create_emergency(
        self,
        raw: Mapping[str, Any] | Any,
        *,
        source_key: str | None,
        actor: ActorContext | None = None,
    ) -> EmergencyCreatedDto:
        decision = self.rate_limiter.hit(source_key or "unknown")
        if not decision.allowed:
            self._logger.warning("Emergency intake rate limited for %s", source_key)
            raise RateLimitExceededError(decision.retry_after)

        actor = actor or ActorContext.anonymous(source_key)
        intake = validate_intake(raw)
        data = intake.sanitized
        now = self._clock()

        if data.offline_id:
            with self.session_factory() as session:
                existing = self.repo.get_by_offline_id(session, data.offline_id)
                if existing is not None:
                    return self._created_dto(existing, intake.warnings, duplicate=True)

        elapsed = (now - data.queued_at).total_seconds() / 60.0 if data.queued_at else 0.0
        score = criticality_score(data.blood_group, data.condition, elapsed, data.distance_km)
        urgency = urgency_level(score)
        otp = generate_otp()
        payload = {
            "offline_id": data.offline_id,
            "patient_id": actor.actor_id,
            "patient_name": data.patient_name,
            "patient_phone": data.patient_phone,
            "blood_group": data.blood_group.value,
            "units_required": data.units_required,
            "condition": data.condition.value,
            "location_lat": data.latitude,
            "location_lng": data.longitude,
            "location_address": data.address,
            "distance_km": data.distance_km,
            "criticality_score": score,
            "urgency_level": urgency.value,
            "status": EmergencyStatus.CREATED.value,
            "escalation_level": 0,
            "verification_otp": otp,
            "otp_failed_attempts": 0,
            "created_at": now,
            "updated_at": now,
            "queued_at": data.queued_at,
            "expires_at": now + timedelta(minutes=self.config.emergency_ttl_minutes),
        }

        try:
            with self.session_factory() as session:
                row = self.repo.create(session, payload=payload)
                self.audit.record(
                    session,
                    actor=actor,
                    entity_id=str(row.id),
                    action="emergency_created",
                    now=now,
                    status_to=EmergencyStatus.CREATED.value,
                    details={
                        "blood_group": data.blood_group.value,
                        "criticality_score": round(score, 2),
                        "urgency_level": urgency.value,
                        "offline_id": data.offline_id,
                        "validation_warnings": intake.warnings,
                    },
                )
                created = self._created_dto(row, intake.warnings, duplicate=False)
        except StorageFailureError as exc:
            # Two replays of the same offline submission raced on the unique key.
            if not (data.offline_id and isinstance(exc.__cause__, IntegrityError)):
                raise
            with self.session_factory() as session:
                existing = self.repo.get_by_offline_id(session, data.offline_id)
                if existing is None:
                    raise
                return self._created_dto(existing, intake.warnings, duplicate=True)

        self._logger.info(
            "Emergency %s created: %s, score %.2f (%s)",
            created.emergency_id,
            data.blood_group.value,
            score,
            urgency.value,
        )
        self.notifier.send_otp(
            emergency_id=created.emergency_id,
            phone=data.patient_phone,
            otp=otp,
            mode=VerificationMode.EMERGENCY.value,
        )
        if not self.config.is_production:
            created = created.model_copy(update={"otp": otp})
        return created

    def get_emergency(self, emergency_id: str) -> EmergencyDto:
        with self.session_factory() as session:
            row = self.repo.get_by_id(session, emergency_id)
            if row is None:
                raise NotFoundError("Emergency not found")
            return emergency_to_dto(row)

    # ------------------------------------------------------------- transitions

    def accept(self, emergency_id: str, request: AcceptEmergencyRequest, actor: ActorContext) -> EmergencyDto:
        self._require(actor, "accept_emergency", emergency_id)
        hospital_id = request.hospital_id or actor.actor_id
        return self._transition(
            emergency_id,
            EmergencyStatus.ACCEPTED,
            actor,
            action="emergency_accepted",
            extra_values={"hospital_id": hospital_id},
            details={"hospital_id": hospital_id},
        )

    def dispatch(self, emergency_id: str, request: DispatchEmergencyRequest, actor: ActorContext) -> EmergencyDto:
        self._require(actor, "dispatch_emergency", emergency_id)
        volunteer_id = request.volunteer_id or actor.actor_id
        return self._transition(
            emergency_id,
            EmergencyStatus.IN_TRANSIT,
            actor,
            action="emergency_dispatched",
            extra_values={"assigned_volunteer_id": volunteer_id},
            details={"volunteer_id": volunteer_id},
        )

    def override(self, emergency_id: str, request: OverrideEmergencyRequest, actor: ActorContext) -> EmergencyDto:
        self._require(actor, "override_emergency", emergency_id)
        target = EmergencyStatus(request.status)
        if target not in ADMIN_OVERRIDE_TARGETS:
            raise IllegalTransitionError("*", target.value, f"Override to {target.value} is not permitted")
        return self._transition(
            emergency_id,
            target,
            actor,
            action="admin_override_emergency",
            details={"reason": request.reason},
        )

    def escalate(self, emergency_id: str, actor: ActorContext) -> EscalationResultDto:
        """Raise the escalation tier by one and rescore.

        At the top tier this is a no-op that still reports the current state.
        Closed emergencies still climb tiers but keep their final score.
        """
        self._require(actor, "force_escalation", emergency_id)
        for _ in range(_CAS_ATTEMPTS):
            now = self._clock()
            failure: AppError | None = None
            result: EscalationResultDto | None = None
            with self.session_factory() as session:
                row = self.repo.get_by_id(session, emergency_id)
                if row is None:
                    failure = NotFoundError("Emergency not found")
                else:
                    result = self._apply_escalation(session, actor, row, now)
            if failure is not None:
                raise failure
            if result is not None:
                return result
        raise IllegalTransitionError("*", "*", "Emergency is being updated concurrently, retry")

    def expire_overdue(self, actor: ActorContext | None = None) -> ExpirySweepResultDto:
        actor = actor or ActorContext.system()
        now = self._clock()
        require_permission(
            self.session_factory, self.audit, actor, "expire_emergencies", entity_id="*", now=now
        )
        expired_ids: list[str] = []
        with self.session_factory() as session:
            for row in self.repo.list_overdue(session, now):
                status_from = str(row.status)
                updated = self.repo.compare_and_set(
                    session,
                    str(row.id),
                    expected_version=int(row.version),
                    expected_status=status_from,
                    values=transition_side_effects(EmergencyStatus.EXPIRED, now),
                )
                if updated is None:
                    continue
                self.audit.record(
                    session,
                    actor=actor,
                    entity_id=str(row.id),
                    action="emergency_expired",
                    now=now,
                    status_from=status_from,
                    status_to=EmergencyStatus.EXPIRED.value,
                    details={"expires_at": row.expires_at},
                )
                expired_ids.append(str(row.id))
        if expired_ids:
            self._logger.info("Expired %d overdue emergencies", len(expired_ids))
        return ExpirySweepResultDto(count=len(expired_ids), expired_ids=expired_ids)

    # ----------------------------------------------------------------- helpers

    def _require(self, actor: ActorContext, permission, emergency_id: str) -> None:
        require_permission(
            self.session_factory, self.audit, actor, permission, entity_id=emergency_id, now=self._clock()
        )

    def _transition(
        self,
        emergency_id: str,
        target: EmergencyStatus,
        actor: ActorContext,
        *,
        action: str,
        extra_values: dict[str, Any] | None = None,
        details: dict[str, Any] | None = None,
    ) -> EmergencyDto:
        now = self._clock()
        failure: AppError
        with self.session_factory() as session:
            row = self.repo.get_by_id(session, emergency_id)
            if row is None:
                raise NotFoundError("Emergency not found")
            status_from = str(row.status)
            try:
                validate_status_transition(status_from, target)
            except TransitionError as exc:
                self._audit_rejection(session, actor, row, target.value, now, reason="illegal_transition")
                failure = IllegalTransitionError(exc.from_status, exc.to_status)
            else:
                values = transition_side_effects(target, now)
                values.update(extra_values or {})
                updated = self.repo.compare_and_set(
                    session,
                    emergency_id,
                    expected_version=int(row.version),
                    expected_status=status_from,
                    values=values,
                )
                if updated is None:
                    self._audit_rejection(session, actor, row, target.value, now, reason="concurrent_update")
                    failure = IllegalTransitionError(
                        status_from, target.value, "Emergency changed concurrently, reload and retry"
                    )
                else:
                    self.audit.record(
                        session,
                        actor=actor,
                        entity_id=emergency_id,
                        action=action,
                        now=now,
                        status_from=status_from,
                        status_to=target.value,
                        details=details,
                    )
                    self._logger.info("Emergency %s %s -> %s", emergency_id, status_from, target.value)
                    return emergency_to_dto(updated)
        raise failure

    def _apply_escalation(
        self,
        session,
        actor: ActorContext,
        row: Emergency,
        now: datetime,
    ) -> EscalationResultDto | None:
        current = int(row.escalation_level)
        level = next_escalation_level(current)
        changed = level != current
        if changed and not is_terminal(str(row.status)):
            score = criticality_score(row.blood_group, row.condition, _elapsed_minutes(row, now), row.distance_km)
        else:
            score = float(row.criticality_score)
        urgency = urgency_level(score)
        if changed:
            updated = self.repo.compare_and_set(
                session,
                str(row.id),
                expected_version=int(row.version),
                expected_status=str(row.status),
                values={
                    "escalation_level": level,
                    "criticality_score": score,
                    "urgency_level": urgency.value,
                    "updated_at": now,
                },
            )
            if updated is None:
                return None
        self.audit.record(
            session,
            actor=actor,
            entity_id=str(row.id),
            action="emergency_escalated",
            now=now,
            details={
                "from_level": current,
                "to_level": level,
                "changed": changed,
                "criticality_score": round(score, 2),
            },
        )
        if changed:
            self._logger.info("Emergency %s escalated to %s", row.id, escalation_label(level))
        return EscalationResultDto(
            emergency_id=str(row.id),
            escalation_level=level,
            escalation_label=escalation_label(level),
            escalation_levels=list(ESCALATION_LABELS),
            changed=changed,
            criticality_score=score,
            urgency_level=urgency.value,
        )

    def _audit_rejection(
        self,
        session,
        actor: ActorContext,
        row: Emergency,
        status_to: str,
        now: datetime,
        *,
        reason: str,
    ) -> None:
        self.audit.record(
            session,
            actor=actor,
            entity_id=str(row.id),
            action="transition_rejected",
            now=now,
            status_from=str(row.status),
            status_to=status_to,
            details={"reason": reason},
        )

    def _created_dto(self, row: Emergency, warnings: list[str], *, duplicate: bool) -> EmergencyCreatedDto:
        return EmergencyCreatedDto(
            emergency_id=str(row.id),
            blood_group=str(row.blood_group),
            criticality_score=float(row.criticality_score),
            urgency_level=str(row.urgency_level),
            expires_at=row.expires_at,
            requires_verification=str(row.status) == EmergencyStatus.CREATED.value,
            duplicate=duplicate,
            validation_warnings=list(warnings),
            eligible_donors=[group.value for group in compatible_donors(row.blood_group)],
        )
