"""Domain events for the Order aggregate and its status timeline."""

from protean.fields import DateTime, Identifier, Integer, String, Text

from ordering.domain import ordering


@ordering.event(part_of="Order")
class OrderPlaced:
    """A customer placed an order; it now awaits payment."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    customer_id = Identifier(required=True)
    subtotal = Integer(required=True)
    delivery_fee = Integer(required=True)
    total = Integer(required=True)
    placed_at = DateTime(required=True)


@ordering.event(part_of="OrderTimelineEntry")
class OrderStatusChanged:
    """An order moved from one lifecycle status to another."""

    __version__ = 1

    order_id = Identifier(required=True)
    from_status = String(required=True)
    to_status = String(required=True)
    actor_role = String(required=True)
    actor_id = Identifier()
    notes = Text()
    occurred_at = DateTime(required=True)
