"""
Tests for the onboarding HTTP endpoints.

Supabase access is replaced by patching the module-level client accessors.
"""

import uuid
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from nality.web.app import app
from nality.web.auth import AuthenticatedUser, get_current_user


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def service_client(mock_supabase):
    with patch("onboarding.api.get_service_client", return_value=mock_supabase):
        yield mock_supabase


@pytest.fixture
def signed_in():
    app.dependency_overrides[get_current_user] = lambda: AuthenticatedUser(
        id="user-1", email="max@example.com"
    )
    yield
    app.dependency_overrides.pop(get_current_user, None)


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_not_found_uses_error_envelope(self, client):
        response = client.get("/api/onboarding/alt/nothing-here")
        assert response.status_code == 404
        assert "error" in response.json()


class TestConfigEndpoint:
    def test_returns_graph(self, client):
        response = client.get("/api/onboarding/alt/config")
        assert response.status_code == 200
        data = response.json()
        assert [o["id"] for o in data["entry"]["options"]] == [f"entry_{i}" for i in range(1, 6)]
        assert [s["id"] for s in data["paths"]["C"]["steps"]] == ["C1", "C2"]


class TestPendingEndpoint:
    """POST /api/onboarding/alt/pending"""

    def test_rejects_invalid_payload_without_storage(self, client, service_client):
        response = client.post("/api/onboarding/alt/pending", json={"registration": {}})

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid payload"
        assert response.json()["issues"]
        service_client.table.assert_not_called()

    def test_rejects_invalid_email_without_storage(self, client, service_client, registration_payload):
        body = {**registration_payload, "registration": {**registration_payload["registration"], "email": "invalid"}}

        response = client.post("/api/onboarding/alt/pending", json=body)

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid payload"
        service_client.table.assert_not_called()

    def test_rejects_malformed_json(self, client, service_client):
        response = client.post(
            "/api/onboarding/alt/pending",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid payload"
        service_client.table.assert_not_called()

    def test_rejects_deeply_nested_json(self, client, service_client):
        response = client.post(
            "/api/onboarding/alt/pending",
            content=b"[" * 100000 + b"]" * 100000,
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid payload"
        service_client.table.assert_not_called()

    def test_rejects_inconsistent_entry(self, client, service_client, registration_payload):
        body = {**registration_payload, "path": "C"}
        response = client.post("/api/onboarding/alt/pending", json=body)
        assert response.status_code == 400
        service_client.table.assert_not_called()

    def test_stores_pending_registration(self, client, service_client, registration_payload):
        token = uuid.UUID("11111111-2222-4333-8444-555555555555")
        with patch("onboarding.pending.uuid.uuid4", return_value=token):
            response = client.post("/api/onboarding/alt/pending", json=registration_payload)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["token"] == str(token)
        assert data["expiresAt"].endswith("Z")

        table = service_client.table.return_value
        service_client.table.assert_any_call("alt_onboarding_pending")
        table.eq.assert_any_call("email", "max@example.com")
        inserted = table.insert.call_args[0][0]
        assert inserted["token"] == str(token)
        assert inserted["email"] == "max@example.com"

    def test_storage_failure(self, client, service_client, registration_payload):
        service_client.table.return_value.execute.side_effect = RuntimeError("db down")

        response = client.post("/api/onboarding/alt/pending", json=registration_payload)

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to store onboarding link"}


class TestCompleteEndpoint:
    """POST /api/onboarding/alt/complete"""

    def test_requires_authentication(self, client, registration_payload):
        response = client.post("/api/onboarding/alt/complete", json=registration_payload)
        assert response.status_code == 401
        assert response.json() == {"error": "Authentication required"}

    def test_rejects_invalid_bearer(self, client, registration_payload):
        auth_client = MagicMock()
        auth_client.auth.get_user.side_effect = RuntimeError("invalid JWT")
        with patch("nality.web.auth.get_client", return_value=auth_client):
            response = client.post(
                "/api/onboarding/alt/complete",
                json=registration_payload,
                headers={"Authorization": "Bearer bad-token"},
            )
        assert response.status_code == 401

    def test_accepts_valid_bearer(self, client, service_client, registration_payload):
        auth_client = MagicMock()
        auth_client.auth.get_user.return_value = MagicMock(user=MagicMock(id="user-7", email="max@example.com"))
        with patch("nality.web.auth.get_client", return_value=auth_client):
            response = client.post(
                "/api/onboarding/alt/complete",
                json=registration_payload,
                headers={"Authorization": "Bearer good-token"},
            )

        assert response.status_code == 200
        assert response.json()["userId"] == "user-7"
        auth_client.auth.get_user.assert_called_once_with("good-token")
        assert set(AuthenticatedUser.model_fields) == {"id", "email"}

    def test_direct_finalize(self, client, service_client, signed_in, registration_payload):
        response = client.post("/api/onboarding/alt/complete", json=registration_payload)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["userId"] == "user-1"
        assert set(data) == {"success", "userId", "completedAt"}
        service_client.table.assert_called_with("users")

    def test_direct_finalize_needs_address_preference(self, client, service_client, signed_in, registration_payload):
        body = {**registration_payload, "addressPreference": None}
        response = client.post("/api/onboarding/alt/complete", json=body)
        assert response.status_code == 400
        service_client.table.assert_not_called()

    def test_unknown_token(self, client, service_client, signed_in):
        response = client.post("/api/onboarding/alt/complete", json={"pendingToken": "missing"})
        assert response.status_code == 400
        assert "invalid" in response.json()["error"]

    def test_foreign_token(self, client, service_client, signed_in, registration_payload):
        service_client.table.return_value.execute.return_value = MagicMock(data=[{
            "token": "tok-1",
            "email": "other@example.com",
            "payload": registration_payload,
            "expires_at": "2999-01-01T00:00:00.000Z",
            "consumed_at": None,
        }])
        response = client.post("/api/onboarding/alt/complete", json={"pendingToken": "tok-1"})
        assert response.status_code == 403
