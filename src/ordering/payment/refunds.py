"""Refunds of captured payments.

refund_payment() is shared by cancellation, late payments and the admin
RefundPayment command, which can also return part of a payment.
"""

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from ordering.domain import logger, ordering
from ordering.gateway import get_gateway
from ordering.money import to_pence
from ordering.payment.payment import PaymentRecord

NO_TRANSACTION_REASON = "No payment intent found for this payment"


def refund_payment(payment: PaymentRecord, reason: str, amount=None) -> bool:
    """Record refund intent, ask the gateway to refund, and store the outcome.

    Runs inside the caller's unit of work. GatewayError propagates so the
    caller's writes roll back; a declined refund is stored as failed for
    follow-up and reported by returning False. `amount` (pence) defaults to
    whatever has not been refunded yet.
    """
    repo = current_domain.repository_for(PaymentRecord)

    already_refunded = payment.amount_refunded or 0
    payment.request_refund(reason=reason, amount=amount)
    repo.add(payment)

    # Nothing the gateway could refund against
    if not payment.gateway_transaction_id:
        payment.mark_refund_failed(NO_TRANSACTION_REASON)
        logger.error(
            "payment_refund_impossible",
            payment_id=str(payment.id),
            order_id=str(payment.order_id),
            reason=NO_TRANSACTION_REASON,
        )
        repo.add(payment)
        return False

    result = get_gateway().create_refund(
        gateway_transaction_id=payment.gateway_transaction_id,
        amount=payment.refund_amount,
        reason=reason,
        idempotency_key=f"refund-{payment.id}-{already_refunded}-{payment.refund_amount}",
    )
    if result.success:
        payment.mark_refunded(result.gateway_refund_id)
        logger.info(
            "payment_refunded",
            payment_id=str(payment.id),
            order_id=str(payment.order_id),
            amount=payment.refund_amount,
            amount_refunded=payment.amount_refunded,
        )
    else:
        payment.mark_refund_failed(result.failure_reason)
        logger.error(
            "payment_refund_declined",
            payment_id=str(payment.id),
            order_id=str(payment.order_id),
            reason=result.failure_reason,
        )
    repo.add(payment)
    return result.success


@ordering.command(part_of="PaymentRecord")
class RefundPayment:
    """Admin refund of a succeeded payment, in full or in part."""

    payment_id = Identifier(required=True)
    amount = String(max_length=20)  # decimal pounds; omitted means the full remainder
    reason = String(max_length=500)
    actor_id = Identifier()


@ordering.command_handler(part_of=PaymentRecord)
class RefundPaymentHandler:
    @handle(RefundPayment)
    def refund(self, command):
        payment = current_domain.repository_for(PaymentRecord).get(command.payment_id)

        amount = None
        if command.amount:
            try:
                amount = to_pence(command.amount)
            except ValueError:
                raise ValidationError({"amount": [f"Invalid amount: {command.amount}"]})

        reason = command.reason or "Admin refund"
        refunded = refund_payment(payment, reason=reason, amount=amount)
        if command.actor_id:
            payment.annotate(refunded_by=str(command.actor_id))
            current_domain.repository_for(PaymentRecord).add(payment)

        logger.info(
            "admin_refund_processed",
            payment_id=str(payment.id),
            amount=payment.refund_amount,
            refunded=refunded,
            actor_id=command.actor_id,
        )
        return {
            "payment_id": str(payment.id),
            "refunded": refunded,
            "refund_amount": payment.refund_amount,
            "amount_refunded": payment.amount_refunded or 0,
            "status": payment.status,
            "refund_status": payment.refund_status,
        }
