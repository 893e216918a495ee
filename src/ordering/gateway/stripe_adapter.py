"""Stripe payment gateway adapter (stripe-python SDK).

Hosted Checkout sessions in payment mode; the webhook signature is checked
with stripe.Webhook.construct_event before any payload is trusted.
"""

import stripe

from ordering.domain import logger
from ordering.errors import GatewayError
from ordering.gateway.port import (
    CheckoutLineItem,
    CheckoutSession,
    PaymentGateway,
    RefundResult,
)


class StripeGateway(PaymentGateway):
    """Production Stripe gateway adapter."""

    def __init__(self, api_key: str, webhook_secret: str, currency: str = "gbp") -> None:
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.currency = currency.lower()

    def create_checkout_session(
        self,
        line_items: list[CheckoutLineItem],
        success_url: str,
        cancel_url: str,
        metadata: dict,
        customer_email: str | None,
        idempotency_key: str,
    ) -> CheckoutSession:
        stripe_line_items = [
            {
                "price_data": {
                    "currency": self.currency,
                    "product_data": {
                        "name": item.name,
                        **({"description": item.description} if item.description else {}),
                    },
                    "unit_amount": item.unit_amount,
                },
                "quantity": item.quantity,
            }
            for item in line_items
        ]
        try:
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                mode="payment",
                payment_method_types=["card"],
                line_items=stripe_line_items,
                success_url=success_url,
                cancel_url=cancel_url,
                customer_email=customer_email,
                metadata={key: str(value) for key, value in metadata.items()},
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as exc:
            logger.error("stripe_checkout_failed", error=str(exc), error_type=type(exc).__name__)
            raise GatewayError("Payment provider could not start checkout", idempotency_key=idempotency_key) from exc
        return CheckoutSession(session_id=session.id, url=session.url)

    def expire_checkout_session(self, session_id: str) -> None:
        try:
            stripe.checkout.Session.expire(session_id, api_key=self.api_key)
        except stripe.StripeError as exc:
            raise GatewayError("Payment provider could not expire checkout session", session_id=session_id) from exc

    def create_refund(
        self,
        gateway_transaction_id: str,
        amount: int,
        reason: str,
        idempotency_key: str | None = None,
    ) -> RefundResult:
        try:
            refund = stripe.Refund.create(
                api_key=self.api_key,
                payment_intent=gateway_transaction_id,
                amount=amount,
                metadata={"reason": reason[:500]},
                idempotency_key=idempotency_key or f"refund-{gateway_transaction_id}-{amount}",
            )
        except stripe.StripeError as exc:
            logger.error("stripe_refund_failed", error=str(exc), payment_intent=gateway_transaction_id)
            raise GatewayError("Payment provider could not issue refund", payment_intent=gateway_transaction_id) from exc

        if refund.status in ("succeeded", "pending"):
            return RefundResult(success=True, gateway_refund_id=refund.id, gateway_status=refund.status)
        return RefundResult(
            success=False,
            gateway_refund_id=refund.id,
            gateway_status=refund.status,
            failure_reason=getattr(refund, "failure_reason", None) or "Refund failed",
        )

    def verify_webhook_signature(self, payload, signature: str) -> bool:
        if not self.webhook_secret or not signature:
            return False
        try:
            stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except (stripe.SignatureVerificationError, ValueError) as exc:
            logger.warning("webhook_signature_invalid", error=str(exc))
            return False
        return True
