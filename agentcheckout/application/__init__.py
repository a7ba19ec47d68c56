"""Application layer module.

Contains the services that drive checkout sessions: the session store,
cart engine, totals calculator, payment orchestrator, order factory and
the operation dispatcher used by both transports.
"""

from agentcheckout.application.cart import CartEngine
from agentcheckout.application.operations import CheckoutTools, Operation, OperationResult
from agentcheckout.application.order_factory import OrderFactory, OrderRepository
from agentcheckout.application.payment_orchestrator import PaymentOrchestrator
from agentcheckout.application.session_store import SessionStore
from agentcheckout.application.totals import TotalsCalculator

__all__ = [
    "CartEngine",
    "CheckoutTools",
    "Operation",
    "OperationResult",
    "OrderFactory",
    "OrderRepository",
    "PaymentOrchestrator",
    "SessionStore",
    "TotalsCalculator",
]
