"""Domain events for the PaymentRecord aggregate."""

from protean.fields import DateTime, Identifier, Integer, String

from ordering.domain import ordering


@ordering.event(part_of="PaymentRecord")
class PaymentConfirmed:
    """The gateway confirmed a checkout session and the order was booked."""

    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    gateway_session_id = String(required=True)
    amount = Integer(required=True)
    confirmed_at = DateTime(required=True)


@ordering.event(part_of="PaymentRecord")
class RefundRequested:
    """A refund for a captured payment was requested from the gateway."""

    __version__ = 1

    payment_id = Identifier(required=True)
    order_id = Identifier(required=True)
    amount = Integer(required=True)
    reason = String(required=True)
    requested_at = DateTime(required=True)
