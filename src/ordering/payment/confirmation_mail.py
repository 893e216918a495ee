"""Sends the order confirmation email once a payment has booked an order."""

from protean import handle
from protean.utils.globals import current_domain

from ordering.domain import logger, ordering
from ordering.mail import get_mailer
from ordering.money import format_price
from ordering.order.order import Order, OrderStatus
from ordering.payment.events import PaymentConfirmed
from ordering.payment.payment import PaymentRecord
from ordering.templates import ORDER_CONFIRMATION


def confirmation_variables(order) -> dict:
    return {
        "customer_name": order.customer_name,
        "order_number": order.order_number,
        "items": [
            {
                "name": item.service_name,
                "quantity": item.quantity,
                "price": format_price(item.line_total),
            }
            for item in order.items
        ],
        "subtotal": format_price(order.subtotal),
        "delivery_fee": format_price(order.delivery_fee),
        "total": format_price(order.total),
        "pickup_date": order.pickup_date.isoformat() if order.pickup_date else None,
        "pickup_slot": order.pickup_slot,
    }


@ordering.event_handler(part_of=PaymentRecord)
class PaymentConfirmationMailer:
    @handle(PaymentConfirmed)
    def send_order_confirmation(self, event: PaymentConfirmed):
        payment = current_domain.repository_for(PaymentRecord).get(event.payment_id)
        if payment.details.get("late_payment"):
            return
        order = current_domain.repository_for(Order).get(event.order_id)
        if order.current_status != OrderStatus.BOOKED or not order.customer_email:
            return

        # The booking stands even if the email does not go out
        try:
            result = get_mailer().send(ORDER_CONFIRMATION, order.customer_email, confirmation_variables(order))
        except Exception as exc:
            logger.error("order_confirmation_email_error", order_id=str(order.id), error=str(exc))
            return

        if result.success:
            logger.info("order_confirmation_email_sent", order_id=str(order.id), message_id=result.message_id)
        else:
            logger.warning("order_confirmation_email_failed", order_id=str(order.id), error=result.error)
