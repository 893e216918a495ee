"""Order payment — checkout sessions and webhook confirmation.

RequestPayment / RetryPayment issue a hosted checkout session for an unpaid
order, superseding any previous session. ConfirmPayment is the webhook entry
point: it books the order and records the payment exactly once per gateway
session.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from protean import handle
from protean.fields import Boolean, Identifier, String
from protean.utils.globals import current_domain

from ordering.cart.saved_cart import SavedCart
from ordering.config import get_settings
from ordering.domain import logger, ordering
from ordering.errors import GatewayError, IllegalTransitionError
from ordering.gateway import get_gateway
from ordering.gateway.port import CheckoutLineItem
from ordering.order.order import ActorRole, Order, OrderStatus
from ordering.order.timeline import append_timeline_entry
from ordering.payment.payment import PaymentRecord
from ordering.payment.refunds import refund_payment
from ordering.reminder.reminder import ReminderRecord

DELIVERY_LINE_NAME = "Pickup & Delivery"


@dataclass(frozen=True)
class CheckoutRedirect:
    order_id: str
    session_id: str
    url: str
    reused: bool = False


@dataclass(frozen=True)
class PaymentConfirmation:
    order_id: str
    gateway_session_id: str
    payment_id: str | None = None
    duplicate: bool = False
    booked: bool = False
    refunded: bool = False


@ordering.command(part_of="Order")
class RequestPayment:
    order_id = Identifier(required=True)
    force_new_session = Boolean(default=False)


@ordering.command(part_of="Order")
class RetryPayment:
    order_id = Identifier(required=True)


@ordering.command(part_of="Order")
class ConfirmPayment:
    gateway_session_id = String(required=True, max_length=255)
    gateway_transaction_id = String(max_length=255)
    order_id = Identifier(required=True)


def checkout_line_items(order) -> list[CheckoutLineItem]:
    line_items = [
        CheckoutLineItem(
            name=item.service_name,
            unit_amount=item.unit_price,
            quantity=item.quantity,
            description=item.description or None,
        )
        for item in order.items
    ]
    line_items.append(CheckoutLineItem(name=DELIVERY_LINE_NAME, unit_amount=order.delivery_fee, quantity=1))
    return line_items


@ordering.command_handler(part_of=Order)
class OrderPaymentHandler:
    @handle(RequestPayment)
    def request_payment(self, command):
        return self._checkout(command.order_id, force_new_session=command.force_new_session)

    @handle(RetryPayment)
    def retry_payment(self, command):
        return self._checkout(command.order_id, force_new_session=True)

    def _checkout(self, order_id, force_new_session):
        repo = current_domain.repository_for(Order)
        order = repo.get(order_id)
        if order.current_status != OrderStatus.PENDING_PAYMENT:
            raise IllegalTransitionError({"status": [f"Order {order.order_number} is not awaiting payment"]})

        settings = get_settings()
        now = datetime.now(UTC)
        ttl = timedelta(minutes=settings.checkout_session_ttl_minutes)
        if not force_new_session and order.has_live_checkout(now, ttl):
            return CheckoutRedirect(
                order_id=str(order.id),
                session_id=order.checkout_session_id,
                url=order.checkout_url,
                reused=True,
            )

        gateway = get_gateway()
        attempt = order.checkout_attempts or 0
        session = gateway.create_checkout_session(
            line_items=checkout_line_items(order),
            success_url=f"{settings.app_url}/book/success?order={order.id}",
            cancel_url=f"{settings.app_url}/book/checkout?recover={order.id}",
            metadata={"order_id": str(order.id), "order_number": order.order_number},
            customer_email=order.customer_email,
            idempotency_key=f"checkout-{order.id}-{attempt + 1}",
        )

        claimed = repo.claim_checkout_session(
            order.id,
            expected_attempts=attempt,
            session_id=session.session_id,
            url=session.url,
            created_at=now,
        )
        if not claimed:
            # A concurrent request attached its own session first; keep that one live
            self._expire_quietly(gateway, session.session_id, order_id=str(order.id))
            winner = repo.fresh(order.id)
            if winner is None or winner.current_status != OrderStatus.PENDING_PAYMENT:
                raise IllegalTransitionError({"status": [f"Order {order.order_number} is not awaiting payment"]})
            return CheckoutRedirect(
                order_id=str(order.id),
                session_id=winner.checkout_session_id,
                url=winner.checkout_url,
                reused=True,
            )

        if order.checkout_session_id:
            self._expire_quietly(gateway, order.checkout_session_id, order_id=str(order.id))

        logger.info(
            "checkout_session_created",
            order_id=str(order.id),
            session_id=session.session_id,
            attempt=attempt + 1,
        )
        return CheckoutRedirect(order_id=str(order.id), session_id=session.session_id, url=session.url)

    @staticmethod
    def _expire_quietly(gateway, session_id, order_id):
        try:
            gateway.expire_checkout_session(session_id)
        except GatewayError as exc:
            # The session times out on the gateway side anyway
            logger.warning("checkout_session_expire_failed", order_id=order_id, session_id=session_id, error=str(exc))

    @handle(ConfirmPayment)
    def confirm_payment(self, command):
        payments = current_domain.repository_for(PaymentRecord)
        existing = payments.find_by_session(command.gateway_session_id)
        if existing is not None:
            logger.info(
                "payment_confirmation_duplicate",
                order_id=str(command.order_id),
                session_id=command.gateway_session_id,
            )
            return PaymentConfirmation(
                order_id=str(existing.order_id),
                gateway_session_id=command.gateway_session_id,
                payment_id=str(existing.id),
                duplicate=True,
            )

        orders = current_domain.repository_for(Order)
        order = orders.get(command.order_id)
        now = datetime.now(UTC)

        booked = orders.transition(
            order.id,
            expected_status=OrderStatus.PENDING_PAYMENT,
            changes={"status": OrderStatus.BOOKED.value, "updated_at": now},
        )

        record = PaymentRecord.capture(
            order_id=order.id,
            gateway_session_id=command.gateway_session_id,
            gateway_transaction_id=command.gateway_transaction_id,
            amount=order.total,
            metadata={"order_number": order.order_number, "customer_email": order.customer_email},
            at=now,
        )

        if not booked:
            return self._record_late_payment(orders, payments, order, record)

        payments.add(record)
        append_timeline_entry(
            order.id,
            OrderStatus.PENDING_PAYMENT,
            OrderStatus.BOOKED,
            ActorRole.SYSTEM,
            notes=f"Payment confirmed ({command.gateway_session_id})",
            occurred_at=now,
        )
        recovered = self._mark_reminders_recovered(order.id, now)
        cart_deleted = current_domain.repository_for(SavedCart).delete_for_customer(order.customer_id)

        logger.info(
            "payment_confirmed",
            order_id=str(order.id),
            order_number=order.order_number,
            amount=order.total,
            reminders_recovered=recovered,
            saved_cart_deleted=bool(cart_deleted),
        )
        return PaymentConfirmation(
            order_id=str(order.id),
            gateway_session_id=command.gateway_session_id,
            payment_id=str(record.id),
            booked=True,
        )

    def _record_late_payment(self, orders, payments, order, record):
        """The order left pending_payment before this payment arrived.

        The money has been captured, so it is recorded and refunded rather
        than dropped.
        """
        concurrent = payments.find_by_session(record.gateway_session_id)
        if concurrent is not None:
            # A parallel delivery of the same webhook booked the order
            return PaymentConfirmation(
                order_id=str(order.id),
                gateway_session_id=record.gateway_session_id,
                payment_id=str(concurrent.id),
                duplicate=True,
            )

        status = orders.current_status(order.id)
        record.annotate(late_payment=True, order_status=status.value if status else None)
        payments.add(record)
        logger.warning(
            "payment_for_unpayable_order",
            order_id=str(order.id),
            order_status=status.value if status else None,
            session_id=record.gateway_session_id,
        )
        refunded = refund_payment(record, reason=f"Order {order.order_number} was no longer awaiting payment")
        return PaymentConfirmation(
            order_id=str(order.id),
            gateway_session_id=record.gateway_session_id,
            payment_id=str(record.id),
            refunded=refunded,
        )

    @staticmethod
    def _mark_reminders_recovered(order_id, at) -> int:
        repo = current_domain.repository_for(ReminderRecord)
        recovered = 0
        for reminder in repo.for_order(order_id):
            if reminder.mark_recovered(at):
                repo.add(reminder)
                recovered += 1
        return recovered
