"""Shared route dependencies and error mapping."""

from typing import NoReturn

from fastapi import HTTPException, Request, status

from agentcheckout.application.operations import CheckoutTools, ErrorOutput
from agentcheckout.container import Container

STATUS_BY_KIND: dict[str, int] = {
    "SessionNotFound": status.HTTP_404_NOT_FOUND,
    "ProductNotFound": status.HTTP_404_NOT_FOUND,
    "ItemNotInCart": status.HTTP_404_NOT_FOUND,
    "OrderNotFound": status.HTTP_404_NOT_FOUND,
    "InvalidQuantity": status.HTTP_400_BAD_REQUEST,
    "EmptyCart": status.HTTP_400_BAD_REQUEST,
    "MissingBuyerInfo": status.HTTP_400_BAD_REQUEST,
    "CurrencyMismatch": status.HTTP_400_BAD_REQUEST,
    "InvalidAmount": status.HTTP_400_BAD_REQUEST,
    "InvalidPaymentInstrument": status.HTTP_400_BAD_REQUEST,
    "InvalidInput": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "PaymentAlreadyInProgress": status.HTTP_409_CONFLICT,
    "SessionNotEditable": status.HTTP_409_CONFLICT,
    "InvalidStateTransition": status.HTTP_409_CONFLICT,
    "DuplicateOrderAttempt": status.HTTP_409_CONFLICT,
    "PaymentDeclined": status.HTTP_402_PAYMENT_REQUIRED,
    "GatewayUnavailable": status.HTTP_503_SERVICE_UNAVAILABLE,
}


def status_for_kind(kind: str) -> int:
    """HTTP status for an error kind; unknown kinds map to 400."""
    return STATUS_BY_KIND.get(kind, status.HTTP_400_BAD_REQUEST)


def raise_error(error: ErrorOutput) -> NoReturn:
    """Raise an HTTPException carrying an operation error."""
    raise HTTPException(
        status_code=status_for_kind(error.kind),
        detail={"error_code": error.kind, "message": error.message, "details": error.details},
    )


def get_container(request: Request) -> Container:
    """The service container attached to the application."""
    return request.app.state.container


def get_tools(request: Request) -> CheckoutTools:
    """The operation dispatcher."""
    return get_container(request).tools
