from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from lifeline.application.services.audit_service import AuditService
from lifeline.application.services.emergency_service import EmergencyService
from lifeline.application.services.handoff_service import HandoffService
from lifeline.application.services.otp_service import OtpService
from lifeline.config import Settings, settings
from lifeline.infrastructure.db.models_sqlalchemy import utc_now
from lifeline.infrastructure.db.repositories.audit_repo import AuditLogRepository
from lifeline.infrastructure.db.repositories.emergency_repo import EmergencyRepository
from lifeline.infrastructure.db.session import session_scope
from lifeline.infrastructure.notifications.otp_dispatch import LoggingOtpNotifier, OtpNotifier
from lifeline.infrastructure.ratelimit.rate_limiter import RateLimiter, build_rate_limiter


@dataclass
class Container:
    config: Settings
    emergency_repo: EmergencyRepository
    audit_repo: AuditLogRepository
    rate_limiter: RateLimiter

    emergency_service: EmergencyService
    otp_service: OtpService
    handoff_service: HandoffService
    audit_service: AuditService


def build_container(
    *,
    config: Settings = settings,
    session_factory: Callable = session_scope,
    rate_limiter: RateLimiter | None = None,
    notifier: OtpNotifier | None = None,
    clock: Callable[[], datetime] = utc_now,
) -> Container:
    emergency_repo = EmergencyRepository()
    audit_repo = AuditLogRepository()
    notifier = notifier or LoggingOtpNotifier()
    if rate_limiter is None:
        rate_limiter = build_rate_limiter(
            max_requests=config.rate_limit_max,
            window_seconds=config.rate_limit_window_seconds,
            redis_url=config.redis_url,
        )

    otp_service = OtpService(
        repo=emergency_repo,
        audit_repo=audit_repo,
        session_factory=session_factory,
        notifier=notifier,
        config=config,
        clock=clock,
    )
    emergency_service = EmergencyService(
        repo=emergency_repo,
        audit_repo=audit_repo,
        session_factory=session_factory,
        rate_limiter=rate_limiter,
        notifier=notifier,
        config=config,
        clock=clock,
    )
    handoff_service = HandoffService(
        otp_service,
        repo=emergency_repo,
        audit_repo=audit_repo,
        session_factory=session_factory,
        config=config,
        clock=clock,
    )
    audit_service = AuditService(audit_repo=audit_repo, session_factory=session_factory, clock=clock)

    return Container(
        config=config,
        emergency_repo=emergency_repo,
        audit_repo=audit_repo,
        rate_limiter=rate_limiter,
        emergency_service=emergency_service,
        otp_service=otp_service,
        handoff_service=handoff_service,
        audit_service=audit_service,
    )
