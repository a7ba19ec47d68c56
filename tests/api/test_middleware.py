"""Tests for API middleware."""

from fastapi.testclient import TestClient

from agentcheckout.infrastructure.payment_gateway import SimulatedPaymentGateway

TEST_API_KEY = "test-api-key"


class TestRequestIdMiddleware:
    """Tests for request ID correlation middleware."""

    def test_generates_request_id_if_not_provided(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        # UUID format
        assert len(response.headers["X-Request-ID"]) == 36

    def test_uses_provided_request_id(self, client: TestClient) -> None:
        response = client.get("/health", headers={"X-Request-ID": "custom-request-id-12345"})
        assert response.headers["X-Request-ID"] == "custom-request-id-12345"

    def test_request_id_in_error_body(self, client: TestClient) -> None:
        response = client.get("/orders/ord_missing", headers={"X-Request-ID": "req-42"})
        assert response.json()["request_id"] == "req-42"


class TestApiKeyMiddleware:
    """Tests for API key authentication middleware."""

    def test_disabled_without_key(self, client: TestClient) -> None:
        assert client.post("/sessions").status_code == 201

    def test_public_endpoints_dont_require_auth(self, auth_client: TestClient) -> None:
        assert auth_client.get("/health").status_code == 200
        assert auth_client.get("/ready").status_code == 200

    def test_protected_endpoints_require_auth(self, auth_client: TestClient) -> None:
        response = auth_client.post("/sessions")
        assert response.status_code == 401
        assert response.json()["error_code"] == "UNAUTHORIZED"
        assert response.headers["WWW-Authenticate"] == "Bearer"
        assert "X-Request-ID" in response.headers

    def test_invalid_auth_format_rejected(self, auth_client: TestClient) -> None:
        response = auth_client.post("/sessions", headers={"Authorization": "InvalidFormat"})
        assert response.status_code == 401

    def test_invalid_api_key_rejected(self, auth_client: TestClient) -> None:
        response = auth_client.post("/sessions", headers={"Authorization": "Bearer wrong"})
        assert response.status_code == 401

    def test_valid_api_key_accepted(self, auth_client: TestClient) -> None:
        response = auth_client.post("/sessions", headers={"Authorization": f"Bearer {TEST_API_KEY}"})
        assert response.status_code == 201

    def test_webhooks_are_public(self, auth_client: TestClient, gateway: SimulatedPaymentGateway) -> None:
        """Gateway notifications authenticate by signature, not API key."""
        body, signature = gateway.build_notification("sim_cs_unknown", succeeded=False)
        response = auth_client.post("/webhooks/payments", content=body, headers={"X-Payment-Signature": signature})
        assert response.status_code == 200
        assert response.json()["status"] == "ignored"
