"""Configurable fake payment gateway for development and testing.

This adapter simulates hosted checkout without any external calls. It can be
configured at runtime to succeed or fail, and records every call so tests can
assert on what was requested.
"""

from uuid import uuid4

from ordering.errors import GatewayError
from ordering.gateway.port import (
    CheckoutLineItem,
    CheckoutSession,
    PaymentGateway,
    RefundResult,
)

TEST_SIGNATURE = "test-signature"


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.refunds_succeed: bool = True
        self.failure_reason: str = "Gateway unavailable"
        self.calls: list[dict] = []
        self.expired_sessions: list[str] = []

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Gateway unavailable",
        refunds_succeed: bool = True,
    ) -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.refunds_succeed = refunds_succeed

    def calls_to(self, method: str) -> list[dict]:
        return [call for call in self.calls if call["method"] == method]

    def create_checkout_session(
        self,
        line_items: list[CheckoutLineItem],
        success_url: str,
        cancel_url: str,
        metadata: dict,
        customer_email: str | None,
        idempotency_key: str,
    ) -> CheckoutSession:
        self.calls.append(
            {
                "method": "create_checkout_session",
                "line_items": list(line_items),
                "success_url": success_url,
                "cancel_url": cancel_url,
                "metadata": dict(metadata),
                "customer_email": customer_email,
                "idempotency_key": idempotency_key,
            }
        )

        if not self.should_succeed:
            raise GatewayError(self.failure_reason, idempotency_key=idempotency_key)

        session_id = f"cs_fake_{uuid4().hex[:16]}"
        return CheckoutSession(session_id=session_id, url=f"https://checkout.fake/pay/{session_id}")

    def expire_checkout_session(self, session_id: str) -> None:
        self.calls.append({"method": "expire_checkout_session", "session_id": session_id})
        self.expired_sessions.append(session_id)

    def create_refund(
        self,
        gateway_transaction_id: str,
        amount: int,
        reason: str,
        idempotency_key: str | None = None,
    ) -> RefundResult:
        self.calls.append(
            {
                "method": "create_refund",
                "gateway_transaction_id": gateway_transaction_id,
                "amount": amount,
                "reason": reason,
                "idempotency_key": idempotency_key,
            }
        )

        if not self.should_succeed:
            raise GatewayError(self.failure_reason, gateway_transaction_id=gateway_transaction_id)
        if self.refunds_succeed:
            return RefundResult(
                success=True,
                gateway_refund_id=f"re_fake_{uuid4().hex[:12]}",
                gateway_status="succeeded",
            )
        return RefundResult(
            success=False,
            gateway_status="failed",
            failure_reason="Refund declined",
        )

    def verify_webhook_signature(self, payload, signature: str) -> bool:  # noqa: ARG002
        return signature == TEST_SIGNATURE
