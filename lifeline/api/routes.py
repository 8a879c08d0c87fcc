from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, status

from lifeline.api.dependencies import get_actor, get_container, source_key
from lifeline.application.dto.auth_dto import ActorContext
from lifeline.application.dto.emergency_dto import (
    AcceptEmergencyRequest,
    AuditEventDto,
    DispatchEmergencyRequest,
    EmergencyCreatedDto,
    EmergencyDto,
    EscalationResultDto,
    ExpirySweepResultDto,
    HandoffTokenDto,
    OtpIssuedDto,
    OtpVerificationResult,
    OverrideEmergencyRequest,
    RedeemHandoffRequest,
    ResendOtpRequest,
    VerifyOtpRequest,
)
from lifeline.container import Container

router = APIRouter()
emergencies = APIRouter(prefix="/emergencies", tags=["emergencies"])
admin = APIRouter(prefix="/admin/emergencies", tags=["admin"])


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@emergencies.post("", status_code=status.HTTP_201_CREATED, response_model=EmergencyCreatedDto)
def create_emergency(
    payload: Any = Body(default=None),
    key: str = Depends(source_key),
    actor: ActorContext = Depends(get_actor),
    container: Container = Depends(get_container),
) -> EmergencyCreatedDto:
    return container.emergency_service.create_emergency(payload, source_key=key, actor=actor)


@emergencies.post("/verify-otp", response_model=OtpVerificationResult)
def verify_otp(
    request: VerifyOtpRequest,
    actor: ActorContext = Depends(get_actor),
    container: Container = Depends(get_container),
) -> OtpVerificationResult:
    return container.otp_service.verify(request.emergency_id, request.otp, request.mode, actor)


@emergencies.post("/resend-otp", response_model=OtpIssuedDto)
def resend_otp(
    request: ResendOtpRequest,
    actor: ActorContext = Depends(get_actor),
    container: Container = Depends(get_container),
) -> OtpIssuedDto:
    return container.otp_service.resend(request, actor)


@emergencies.post("/handoff/redeem", response_model=OtpVerificationResult)
def redeem_handoff(
    request: RedeemHandoffRequest,
    actor: ActorContext = Depends(get_actor),
    container: Container = Depends(get_container),
) -> OtpVerificationResult:
    return container.otp_service.redeem_handoff_token(request.token, actor)


@emergencies.get("/{emergency_id}", response_model=EmergencyDto)
def get_emergency(emergency_id: str, container: Container = Depends(get_container)) -> EmergencyDto:
    return container.emergency_service.get_emergency(emergency_id)


@emergencies.post("/{emergency_id}/handoff-token", response_model=HandoffTokenDto)
def issue_handoff_token(
    emergency_id: str,
    actor: ActorContext = Depends(get_actor),
    container: Container = Depends(get_container),
) -> HandoffTokenDto:
    return container.handoff_service.issue_token(emergency_id, actor)


@emergencies.post("/{emergency_id}/accept", response_model=EmergencyDto)
def accept_emergency(
    emergency_id: str,
    request: AcceptEmergencyRequest | None = None,
    actor: ActorContext = Depends(get_actor),
    container: Container = Depends(get_container),
) -> EmergencyDto:
    return container.emergency_service.accept(emergency_id, request or AcceptEmergencyRequest(), actor)


@emergencies.post("/{emergency_id}/dispatch", response_model=EmergencyDto)
def dispatch_emergency(
    emergency_id: str,
    request: DispatchEmergencyRequest | None = None,
    actor: ActorContext = Depends(get_actor),
    container: Container = Depends(get_container),
) -> EmergencyDto:
    return container.emergency_service.dispatch(emergency_id, request or DispatchEmergencyRequest(), actor)


@admin.post("/expire-overdue", response_model=ExpirySweepResultDto)
def expire_overdue(
    actor: ActorContext = Depends(get_actor),
    container: Container = Depends(get_container),
) -> ExpirySweepResultDto:
    return container.emergency_service.expire_overdue(actor)


@admin.post("/{emergency_id}/escalate", response_model=EscalationResultDto)
def escalate_emergency(
    emergency_id: str,
    actor: ActorContext = Depends(get_actor),
    container: Container = Depends(get_container),
) -> EscalationResultDto:
    return container.emergency_service.escalate(emergency_id, actor)


@admin.post("/{emergency_id}/override", response_model=EmergencyDto)
def override_emergency(
    emergency_id: str,
    request: OverrideEmergencyRequest,
    actor: ActorContext = Depends(get_actor),
    container: Container = Depends(get_container),
) -> EmergencyDto:
    return container.emergency_service.override(emergency_id, request, actor)


@admin.get("/{emergency_id}/audit", response_model=list[AuditEventDto])
def audit_trail(
    emergency_id: str,
    limit: int = 200,
    actor: ActorContext = Depends(get_actor),
    container: Container = Depends(get_container),
) -> list[AuditEventDto]:
    return container.audit_service.emergency_trail(emergency_id, actor, limit=max(1, min(limit, 1000)))


router.include_router(emergencies)
router.include_router(admin)
