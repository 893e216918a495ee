"""Saved cart — the customer's in-progress, not-yet-paid booking.

One live cart per customer. The client syncs it on every change (debounced);
the abandonment sweep reads it, payment confirmation deletes it, and cleanup
deletes it after a long inactivity window.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import Date, DateTime, Identifier, Integer, String, Text

from ordering.domain import ordering
from ordering.money import DELIVERY_FEE_PENCE, to_pence
from ordering.order.order import PickupSlot
from ordering.order.repository import as_utc


class BookingStep(Enum):
    SERVICES = "services"
    ITEMS = "items"
    SCHEDULE = "schedule"
    CHECKOUT = "checkout"


def normalize_cart_lines(raw_lines) -> list[dict]:
    """Validate client cart lines and convert prices to pence.

    Clients send {service_id, service_name, price (pounds), quantity,
    description}; already-normalized lines carrying unit_price (pence) pass
    through unchanged.
    """
    if isinstance(raw_lines, str):
        raw_lines = json.loads(raw_lines)
    if not isinstance(raw_lines, list):
        raise ValidationError({"items": ["Cart items must be a list"]})

    lines = []
    for index, raw in enumerate(raw_lines):
        name = raw.get("service_name") or raw.get("name")
        if not name:
            raise ValidationError({"items": [f"Item {index + 1} is missing a service name"]})

        quantity = int(raw.get("quantity") or 1)
        if quantity < 1:
            raise ValidationError({"items": [f"Item {index + 1} must have a quantity of at least 1"]})

        try:
            if raw.get("unit_price") is not None:
                unit_price = int(raw["unit_price"])
            else:
                unit_price = to_pence(raw.get("price", 0))
        except (TypeError, ValueError):
            raise ValidationError({"items": [f"Item {index + 1} has an invalid price"]})

        lines.append(
            {
                "service_id": raw.get("service_id"),
                "service_name": name,
                "unit_price": unit_price,
                "quantity": quantity,
                "description": raw.get("description"),
            }
        )
    return lines


@ordering.aggregate
class SavedCart:
    customer_id = Identifier(required=True, unique=True)
    items = Text()  # JSON list of normalized lines
    item_count = Integer(default=0)
    booking_step = String(choices=BookingStep, default=BookingStep.SERVICES.value)
    pickup_date = Date()
    pickup_slot = String(choices=PickupSlot)
    last_active_at = DateTime(required=True)
    created_at = DateTime()

    @classmethod
    def start(cls, customer_id, at=None):
        at = at or datetime.now(UTC)
        return cls(
            customer_id=str(customer_id),
            items=json.dumps([]),
            item_count=0,
            booking_step=BookingStep.SERVICES.value,
            last_active_at=at,
            created_at=at,
        )

    def replace_contents(self, lines, booking_step=None, pickup_date=None, pickup_slot=None, at=None):
        self.items = json.dumps(lines)
        self.item_count = sum(line["quantity"] for line in lines)
        self.booking_step = booking_step or BookingStep.SERVICES.value
        self.pickup_date = pickup_date
        self.pickup_slot = pickup_slot
        self.last_active_at = at or datetime.now(UTC)

    def lines(self) -> list[dict]:
        return json.loads(self.items) if self.items else []

    @property
    def is_empty(self) -> bool:
        return not self.lines()

    @property
    def subtotal(self) -> int:
        return sum(line["unit_price"] * line["quantity"] for line in self.lines())

    @property
    def total(self) -> int:
        return self.subtotal + DELIVERY_FEE_PENCE

    @property
    def last_active_utc(self):
        return as_utc(self.last_active_at)


@ordering.repository(part_of=SavedCart)
class SavedCartRepository:
    def find_for_customer(self, customer_id):
        results = self._dao.query.filter(customer_id=str(customer_id)).all().items
        return results[0] if results else None

    def fresh(self, cart_id):
        results = self._dao.query.filter(id=str(cart_id)).all().items
        return results[0] if results else None

    def with_items_oldest_first(self, limit: int, offset: int = 0):
        return (
            self._dao.query.filter(item_count__gt=0)
            .order_by("last_active_at")
            .offset(offset)
            .limit(limit)
            .all()
            .items
        )

    def inactive_before(self, cutoff, limit: int):
        cutoff = as_utc(cutoff)
        carts = self._dao.query.order_by("last_active_at").limit(limit).all().items
        return [cart for cart in carts if as_utc(cart.last_active_at) <= cutoff]

    def remove(self, cart) -> None:
        self._dao.delete(cart)

    def delete_for_customer(self, customer_id) -> int:
        cart = self.find_for_customer(customer_id)
        if cart is None:
            return 0
        self.remove(cart)
        return 1
