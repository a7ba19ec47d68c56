"""Shared fixtures for E2E tests.

The full application runs in-process with the simulated gateway, a flat
tax rate and a fulfillment hook that records every order it sees.
"""

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from agentcheckout.application.totals import TotalsCalculator
from agentcheckout.container import Container, build_container
from agentcheckout.domain.entities import Order
from agentcheckout.domain.value_objects import Address, FulfillmentResult
from agentcheckout.infrastructure.catalog import Catalog
from agentcheckout.infrastructure.config import Settings
from agentcheckout.infrastructure.payment_gateway import SimulatedPaymentGateway
from agentcheckout.main import create_app


def illinois_tax(address: Address | None, subtotal: int) -> int:
    """10% tax for Illinois addresses, none elsewhere."""
    if address is not None and address.state == "IL":
        return subtotal // 10
    return 0


@pytest.fixture
def fulfilled() -> list[Order]:
    return []


@pytest.fixture
def e2e_container(gateway: SimulatedPaymentGateway, fulfilled: list[Order]) -> Container:
    async def record(order: Order) -> FulfillmentResult:
        fulfilled.append(order)
        return FulfillmentResult.success()

    settings = Settings(_env_file=None, webhook_secret="test-webhook-secret", gateway_timeout_seconds=1.0)
    return build_container(
        settings,
        catalog=Catalog.demo(),
        gateway=gateway,
        totals=TotalsCalculator(tax=illinois_tax),
        fulfillment_hook=record,
    )


@pytest.fixture
def e2e_client(e2e_container: Container) -> Iterator[TestClient]:
    with TestClient(create_app(e2e_container), headers={"X-Request-ID": "e2e-test-request"}) as client:
        yield client
