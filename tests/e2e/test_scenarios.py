"""E2E scenarios for agent checkout.

1. Token purchase through the operations endpoint, with tax
2. Redirect purchase confirmed by a gateway notification
3. Duplicate gateway notifications
4. Redirect failure, then retry with a token
5. Cancel during redirect, then a late success is refunded
6. Token limited to the total it was minted for
7. Refund after fulfillment
"""

from fastapi import status
from fastapi.testclient import TestClient

from agentcheckout.domain.entities import Order
from agentcheckout.infrastructure.payment_gateway import SimulatedPaymentGateway

ILLINOIS_BUYER = {
    "email": "buyer@example.com",
    "name": "Ada Buyer",
    "address": {"line1": "1 Main St", "city": "Springfield", "state": "IL", "postal_code": "62701"},
}


def op(client: TestClient, kind: str, **arguments) -> dict:
    response = client.post("/operations", json={"kind": kind, **arguments})
    assert response.status_code == status.HTTP_200_OK
    return response.json()


def start_session(client: TestClient, *products: str) -> str:
    session_id = client.post("/sessions").json()["session_id"]
    for product_id in products:
        client.post(f"/sessions/{session_id}/items", json={"product_id": product_id})
    client.put(f"/sessions/{session_id}/buyer", json=ILLINOIS_BUYER)
    return session_id


def notify(client: TestClient, gateway: SimulatedPaymentGateway, gateway_ref: str, succeeded: bool = True) -> dict:
    body, signature = gateway.build_notification(gateway_ref, succeeded=succeeded, reason="Card expired")
    response = client.post("/webhooks/payments", content=body, headers={"X-Payment-Signature": signature})
    assert response.status_code == status.HTTP_200_OK
    return response.json()


# ============================================================================
# Scenario 1: Token Purchase
# ============================================================================


class TestScenario1TokenPurchase:
    """An agent buys through tagged operations only."""

    def test_token_purchase(self, e2e_client: TestClient, fulfilled: list[Order]) -> None:
        products = op(e2e_client, "search_products", query="ebook")
        assert products["success"] is True

        added = op(e2e_client, "add_item", product_id="ebook-mcp-basics", quantity=2)
        session_id = added["data"]["session_id"]
        added = op(e2e_client, "add_item", session_id=session_id, product_id="ebook-mcp-basics", quantity=1)
        assert added["data"]["items"][0]["quantity"] == 3
        assert added["data"]["totals"]["subtotal"] == 8997

        buyer = op(e2e_client, "set_buyer", session_id=session_id, **ILLINOIS_BUYER)
        assert buyer["data"]["totals"]["tax"] == 899
        assert buyer["data"]["totals"]["total"] == 8997 + 899

        token = op(e2e_client, "submit_token_payment", session_id=session_id, payment_method_id="pm_card_visa")
        assert token["data"]["max_amount"] == 9896

        receipt = op(e2e_client, "complete_with_token_result", session_id=session_id, token=token["data"]["token"])
        assert receipt["success"] is True
        assert receipt["data"]["totals"]["total"] == 9896

        status_result = op(e2e_client, "get_status", session_id=session_id)
        assert status_result["data"]["status"] == "completed"
        assert [str(o.id) for o in fulfilled] == [receipt["data"]["order_id"]]

    def test_edit_after_completion_rejected(self, e2e_client: TestClient) -> None:
        session_id = start_session(e2e_client, "ebook-mcp-basics")
        e2e_client.post(f"/sessions/{session_id}/complete", json={"token": "tok_visa"})

        result = op(e2e_client, "add_item", session_id=session_id, product_id="consulting-1hr")
        assert result["error"]["kind"] == "SessionNotEditable"


# ============================================================================
# Scenario 2 and 3: Redirect Purchase and Duplicate Notifications
# ============================================================================


class TestScenario2RedirectPurchase:
    def test_redirect_purchase(
        self, e2e_client: TestClient, gateway: SimulatedPaymentGateway, fulfilled: list[Order]
    ) -> None:
        session_id = start_session(e2e_client, "template-mcp-starter")
        link = e2e_client.post(f"/sessions/{session_id}/payment-link").json()

        session = e2e_client.get(f"/sessions/{session_id}").json()
        assert session["status"] == "processing"
        assert session["payment"]["url"] == link["url"]

        result = notify(e2e_client, gateway, link["gateway_ref"])

        assert result["status"] == "processed"
        order = e2e_client.get(f"/orders/{result['order_id']}").json()
        assert order["totals"]["total"] == 4900 + 490
        assert len(fulfilled) == 1


class TestScenario3DuplicateNotifications:
    def test_duplicate_notifications(
        self, e2e_client: TestClient, gateway: SimulatedPaymentGateway, fulfilled: list[Order]
    ) -> None:
        session_id = start_session(e2e_client, "ebook-mcp-basics")
        link = e2e_client.post(f"/sessions/{session_id}/payment-link").json()
        body, signature = gateway.build_notification(link["gateway_ref"])

        statuses = [
            e2e_client.post("/webhooks/payments", content=body, headers={"X-Payment-Signature": signature}).json()[
                "status"
            ]
            for _ in range(3)
        ]

        assert statuses == ["processed", "duplicate", "duplicate"]
        assert e2e_client.get("/orders").json()["total"] == 1
        assert len(fulfilled) == 1


# ============================================================================
# Scenario 4: Failure then Retry
# ============================================================================


class TestScenario4FailureThenRetry:
    def test_redirect_failure_then_token(self, e2e_client: TestClient, gateway: SimulatedPaymentGateway) -> None:
        session_id = start_session(e2e_client, "ebook-mcp-basics")
        link = e2e_client.post(f"/sessions/{session_id}/payment-link").json()

        notify(e2e_client, gateway, link["gateway_ref"], succeeded=False)
        session = e2e_client.get(f"/sessions/{session_id}").json()
        assert session["status"] == "failed"
        assert session["failure_reason"] == "Card expired"

        response = e2e_client.post(f"/sessions/{session_id}/complete", json={"token": "tok_visa"})
        assert response.status_code == status.HTTP_200_OK

        session = e2e_client.get(f"/sessions/{session_id}").json()
        assert session["status"] == "completed"
        assert session["payment"]["attempt"] == 2
        assert session["payment"]["strategy"] == "token"

    def test_decline_then_retry(self, e2e_client: TestClient) -> None:
        session_id = start_session(e2e_client, "ebook-mcp-basics")

        declined = e2e_client.post(f"/sessions/{session_id}/complete", json={"token": "tok_decline"})
        assert declined.status_code == status.HTTP_402_PAYMENT_REQUIRED

        retried = e2e_client.post(f"/sessions/{session_id}/complete", json={"token": "tok_visa"})
        assert retried.status_code == status.HTTP_200_OK


# ============================================================================
# Scenario 5: Cancel during Redirect
# ============================================================================


class TestScenario5CancelDuringRedirect:
    def test_late_success_refunded(
        self, e2e_client: TestClient, gateway: SimulatedPaymentGateway, fulfilled: list[Order]
    ) -> None:
        session_id = start_session(e2e_client, "ebook-mcp-basics")
        link = e2e_client.post(f"/sessions/{session_id}/payment-link").json()

        cancelled = e2e_client.post(f"/sessions/{session_id}/cancel").json()
        assert cancelled["status"] == "cancelled"
        assert gateway.expired_refs == [link["gateway_ref"]]

        result = notify(e2e_client, gateway, link["gateway_ref"])

        assert result["status"] == "refunded"
        assert len(gateway.refunds) == 1
        assert fulfilled == []
        assert e2e_client.get(f"/sessions/{session_id}").json()["status"] == "cancelled"


# ============================================================================
# Scenario 6: Token Limits
# ============================================================================


class TestScenario6TokenLimits:
    def test_cart_grew_after_minting(self, e2e_client: TestClient) -> None:
        session_id = start_session(e2e_client, "ebook-mcp-basics")
        token = e2e_client.post(
            f"/sessions/{session_id}/payment-token", json={"payment_method_id": "pm_card_visa"}
        ).json()
        e2e_client.post(f"/sessions/{session_id}/items", json={"product_id": "course-advanced-mcp"})

        response = e2e_client.post(f"/sessions/{session_id}/complete", json={"token": token["token"]})

        assert response.status_code == status.HTTP_402_PAYMENT_REQUIRED
        assert "limit" in response.json()["details"]["reason"]

        fresh = e2e_client.post(
            f"/sessions/{session_id}/payment-token", json={"payment_method_id": "pm_card_visa"}
        ).json()
        response = e2e_client.post(f"/sessions/{session_id}/complete", json={"token": fresh["token"]})
        assert response.status_code == status.HTTP_200_OK


# ============================================================================
# Scenario 7: Refund
# ============================================================================


class TestScenario7Refund:
    def test_refund_after_fulfillment(self, e2e_client: TestClient, gateway: SimulatedPaymentGateway) -> None:
        session_id = start_session(e2e_client, "consulting-1hr")
        receipt = e2e_client.post(f"/sessions/{session_id}/complete", json={"token": "tok_visa"}).json()
        order_id = receipt["order_id"]

        assert e2e_client.post(f"/orders/{order_id}/fulfill").json()["status"] == "fulfilled"
        refunded = e2e_client.post(f"/orders/{order_id}/refund", json={"reason": "Not needed"})

        assert refunded.json()["status"] == "refunded"
        assert gateway.refunds == [receipt["gateway_payment_id"]]

        again = e2e_client.post(f"/orders/{order_id}/refund")
        assert again.status_code == status.HTTP_409_CONFLICT
