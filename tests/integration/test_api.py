from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine

from lifeline.api.app import create_app
from lifeline.config import Settings
from lifeline.container import build_container
from lifeline.infrastructure.db.models_sqlalchemy import Base
from lifeline.infrastructure.db.session import SessionFactory, make_session_scope
from lifeline.infrastructure.ratelimit.rate_limiter import InMemoryRateLimiter

ADMIN_HEADERS = {"X-Actor-Id": "admin-1", "X-Actor-Role": "admin"}
BODY = {"bloodGroup": "B+", "units": 1, "condition": "trauma", "lat": 19.07, "lng": 72.87}


def make_session_factory(db_path: Path) -> SessionFactory:
    engine = create_engine(f"sqlite:///{db_path.as_posix()}", future=True)
    Base.metadata.create_all(engine)
    return make_session_scope(engine)


class SilentNotifier:
    def send_otp(self, **kwargs) -> None:
        return None


@pytest.fixture
def client(tmp_path: Path) -> TestClient:
    container = build_container(
        config=Settings(environment="development", handoff_secret="api-secret"),
        session_factory=make_session_factory(tmp_path / "api.db"),
        rate_limiter=InMemoryRateLimiter(max_requests=5, window_seconds=60),
        notifier=SilentNotifier(),
    )
    return TestClient(create_app(container))


def create(client: TestClient, **headers) -> dict:
    response = client.post("/emergencies", json=BODY, headers=headers)
    assert response.status_code == 201
    return response.json()


def test_health(client: TestClient) -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_create_returns_camel_case_summary(client: TestClient) -> None:
    data = create(client)

    assert set(data) >= {"emergencyId", "bloodGroup", "criticalityScore", "urgencyLevel", "expiresAt", "otp"}
    assert data["requiresVerification"] is True
    assert data["validationWarnings"] == []
    assert data["eligibleDonors"] == ["O-", "O+", "B-", "B+"]

    fetched = client.get(f"/emergencies/{data['emergencyId']}").json()
    assert fetched["status"] == "created"
    assert fetched["escalationLabel"] == "Local"
    assert "verificationOtp" not in fetched


def test_unparseable_payload_is_sanitised_not_rejected(client: TestClient) -> None:
    response = client.post("/emergencies", json={"bloodGroup": "Z+", "units": 50, "condition": "flu", "lat": 999, "lng": 10})
    assert response.status_code == 201
    assert len(response.json()["validationWarnings"]) == 4


def test_rate_limit_uses_forwarded_address(client: TestClient) -> None:
    for _ in range(5):
        create(client, **{"X-Forwarded-For": "203.0.113.9, 10.0.0.1"})

    limited = client.post("/emergencies", json=BODY, headers={"X-Forwarded-For": "203.0.113.9"})
    assert limited.status_code == 429
    assert 0 < int(limited.headers["Retry-After"]) <= 60
    assert limited.json()["error"] == "rate_limited"

    create(client, **{"X-Forwarded-For": "198.51.100.4"})


def test_verify_status_codes(client: TestClient) -> None:
    data = create(client)
    url = "/emergencies/verify-otp"

    short = client.post(url, json={"emergencyId": data["emergencyId"], "otp": "12345", "mode": "emergency"})
    assert short.status_code == 400
    assert short.json()["error"] == "invalid_otp_format"

    padded = client.post(url, json={"emergencyId": data["emergencyId"], "otp": f" {data['otp']} ", "mode": "emergency"})
    assert padded.status_code == 400

    wrong = client.post(url, json={"emergencyId": data["emergencyId"], "otp": "000000", "mode": "emergency"})
    assert wrong.status_code == 401

    missing = client.post(url, json={"emergencyId": "nope", "otp": "123456", "mode": "emergency"})
    assert missing.status_code == 404

    ok = client.post(url, json={"emergencyId": data["emergencyId"], "otp": data["otp"], "mode": "emergency"})
    assert ok.status_code == 200
    assert ok.json()["newStatus"] == "hospital_verified"

    again = client.post(url, json={"emergencyId": data["emergencyId"], "otp": data["otp"], "mode": "emergency"})
    assert again.status_code == 409

    bad_mode = client.post(url, json={"emergencyId": data["emergencyId"], "otp": data["otp"], "mode": "other"})
    assert bad_mode.status_code == 422


def test_resend_returns_fresh_code(client: TestClient) -> None:
    data = create(client)
    response = client.post("/emergencies/resend-otp", json={"emergencyId": data["emergencyId"]})
    assert response.status_code == 200
    assert response.json()["resendCooldownSeconds"] == 60
    assert len(response.json()["otp"]) == 6


def test_handoff_token_round_trip(client: TestClient) -> None:
    data = create(client)
    issued = client.post(f"/emergencies/{data['emergencyId']}/handoff-token")
    assert issued.status_code == 200
    token = issued.json()["token"]

    redeemed = client.post("/emergencies/handoff/redeem", json={"token": token})
    assert redeemed.status_code == 200
    assert redeemed.json()["newStatus"] == "fulfilled"

    assert client.post("/emergencies/handoff/redeem", json={"token": token}).status_code == 401
    assert client.post("/emergencies/handoff/redeem", json={"token": "garbage"}).status_code == 401


def test_accept_and_dispatch_need_roles(client: TestClient) -> None:
    data = create(client)
    emergency_id = data["emergencyId"]
    client.post("/emergencies/verify-otp", json={"emergencyId": emergency_id, "otp": data["otp"]})

    denied = client.post(f"/emergencies/{emergency_id}/accept", headers={"X-Actor-Role": "patient"})
    assert denied.status_code == 403

    accepted = client.post(
        f"/emergencies/{emergency_id}/accept",
        json={"hospitalId": "H-22"},
        headers={"X-Actor-Id": "staff-1", "X-Actor-Role": "hospital_staff"},
    )
    assert accepted.status_code == 200
    assert accepted.json()["hospitalId"] == "H-22"

    dispatched = client.post(
        f"/emergencies/{emergency_id}/dispatch",
        headers={"X-Actor-Id": "vol-5", "X-Actor-Role": "volunteer"},
    )
    assert dispatched.status_code == 200
    assert dispatched.json()["assignedVolunteerId"] == "vol-5"


def test_admin_endpoints(client: TestClient) -> None:
    data = create(client)
    emergency_id = data["emergencyId"]

    assert client.post(f"/admin/emergencies/{emergency_id}/escalate").status_code == 403
    escalated = client.post(f"/admin/emergencies/{emergency_id}/escalate", headers=ADMIN_HEADERS)
    assert escalated.status_code == 200
    assert escalated.json()["escalationLabel"] == "District"

    closed = client.post(
        f"/admin/emergencies/{emergency_id}/override",
        json={"status": "auto_closed", "reason": "test"},
        headers=ADMIN_HEADERS,
    )
    assert closed.status_code == 200
    assert closed.json()["status"] == "auto_closed"

    again = client.post(
        f"/admin/emergencies/{emergency_id}/override", json={"status": "fulfilled"}, headers=ADMIN_HEADERS
    )
    assert again.status_code == 409

    bad_target = client.post(
        f"/admin/emergencies/{emergency_id}/override", json={"status": "created"}, headers=ADMIN_HEADERS
    )
    assert bad_target.status_code == 422

    sweep = client.post("/admin/emergencies/expire-overdue", headers=ADMIN_HEADERS)
    assert sweep.status_code == 200
    assert sweep.json() == {"count": 0, "expiredIds": []}

    trail = client.get(f"/admin/emergencies/{emergency_id}/audit", headers=ADMIN_HEADERS)
    assert trail.status_code == 200
    actions = [event["action"] for event in trail.json()]
    assert actions[0] == "emergency_created"
    assert "admin_override_emergency" in actions
    assert "access_denied" in actions


def test_unknown_role_header_is_treated_as_anonymous(client: TestClient) -> None:
    data = create(client)
    response = client.get(
        f"/admin/emergencies/{data['emergencyId']}/audit", headers={"X-Actor-Role": "superuser"}
    )
    assert response.status_code == 403
