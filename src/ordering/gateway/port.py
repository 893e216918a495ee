"""Payment gateway port (abstract interface).

Defines the contract that all payment gateway adapters must implement:
hosted checkout sessions, session expiry, refunds, and webhook verification.
This enables swapping between FakeGateway (dev/test) and StripeGateway
(production) without changing any domain or application code.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

CHECKOUT_COMPLETED = "checkout.session.completed"


@dataclass(frozen=True)
class CheckoutLineItem:
    name: str
    unit_amount: int  # pence
    quantity: int
    description: str | None = None


@dataclass(frozen=True)
class CheckoutSession:
    """A hosted checkout page issued by the gateway."""

    session_id: str
    url: str


@dataclass(frozen=True)
class RefundResult:
    """Result of a refund attempt."""

    success: bool
    gateway_refund_id: str | None = None
    gateway_status: str | None = None
    failure_reason: str | None = None


@dataclass(frozen=True)
class WebhookEvent:
    """The parts of a gateway callback the ordering domain acts on."""

    event_type: str
    session_id: str | None = None
    transaction_id: str | None = None
    metadata: dict = field(default_factory=dict)

    @property
    def order_id(self):
        return self.metadata.get("order_id")


def parse_checkout_event(payload) -> WebhookEvent:
    """Parse a Stripe-shaped event body into a WebhookEvent.

    Shape: {"type": ..., "data": {"object": {"id", "payment_intent", "metadata"}}}
    """
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8")
    body = json.loads(payload) if isinstance(payload, str) else payload

    obj = (body.get("data") or {}).get("object") or {}
    return WebhookEvent(
        event_type=body.get("type", "unknown"),
        session_id=obj.get("id"),
        transaction_id=obj.get("payment_intent"),
        metadata=dict(obj.get("metadata") or {}),
    )


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    def create_checkout_session(
        self,
        line_items: list[CheckoutLineItem],
        success_url: str,
        cancel_url: str,
        metadata: dict,
        customer_email: str | None,
        idempotency_key: str,
    ) -> CheckoutSession:
        """Create a hosted checkout session. Raises GatewayError on failure."""
        ...

    @abstractmethod
    def expire_checkout_session(self, session_id: str) -> None:
        """Invalidate a session so it can no longer be paid."""
        ...

    @abstractmethod
    def create_refund(
        self,
        gateway_transaction_id: str,
        amount: int,
        reason: str,
        idempotency_key: str | None = None,
    ) -> RefundResult:
        """Refund a captured payment (amount in pence)."""
        ...

    @abstractmethod
    def verify_webhook_signature(
        self,
        payload: str | bytes,
        signature: str,
    ) -> bool:
        """Verify that a webhook payload is authentically from the gateway."""
        ...

    def parse_webhook_event(self, payload: str | bytes) -> WebhookEvent:
        """Parse a verified webhook body."""
        return parse_checkout_event(payload)
