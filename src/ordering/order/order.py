"""Order aggregate — the alteration order and its lifecycle state machine.

State Machine:
    PENDING_PAYMENT → BOOKED → PICKUP_SCHEDULED → COLLECTED → IN_PROGRESS →
    READY → OUT_FOR_DELIVERY → DELIVERED → COMPLETED
    CANCELLED is reachable from every state before COMPLETED.

Status changes are not written back through repo.add(). The aggregate decides
whether a transition is legal and which fields it touches; OrderRepository
applies those fields with an update guarded by the expected current status.
"""

import json
import secrets
import string
from datetime import UTC, datetime, timedelta
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import (
    Date,
    DateTime,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from ordering.domain import ordering
from ordering.errors import IllegalTransitionError, TransitionNotPermittedError
from ordering.money import CURRENCY, DELIVERY_FEE_PENCE
from ordering.order.events import OrderPlaced


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING_PAYMENT = "pending_payment"
    BOOKED = "booked"
    PICKUP_SCHEDULED = "pickup_scheduled"
    COLLECTED = "collected"
    IN_PROGRESS = "in_progress"
    READY = "ready"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ItemStatus(Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class PickupSlot(Enum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"


class ActorRole(Enum):
    CUSTOMER = "customer"
    PICKUP_AGENT = "pickup_agent"
    SPECIALIST = "specialist"
    ADMIN = "admin"
    SYSTEM = "system"


_FORWARD = [
    OrderStatus.PENDING_PAYMENT,
    OrderStatus.BOOKED,
    OrderStatus.PICKUP_SCHEDULED,
    OrderStatus.COLLECTED,
    OrderStatus.IN_PROGRESS,
    OrderStatus.READY,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
    OrderStatus.COMPLETED,
]

TERMINAL_STATES = {OrderStatus.COMPLETED, OrderStatus.CANCELLED}

# State machine transition map
_VALID_TRANSITIONS = {
    OrderStatus.PENDING_PAYMENT: {OrderStatus.BOOKED, OrderStatus.CANCELLED},
    OrderStatus.BOOKED: {OrderStatus.PICKUP_SCHEDULED, OrderStatus.CANCELLED},
    OrderStatus.PICKUP_SCHEDULED: {OrderStatus.COLLECTED, OrderStatus.CANCELLED},
    OrderStatus.COLLECTED: {OrderStatus.IN_PROGRESS, OrderStatus.CANCELLED},
    OrderStatus.IN_PROGRESS: {OrderStatus.READY, OrderStatus.CANCELLED},
    OrderStatus.READY: {OrderStatus.OUT_FOR_DELIVERY, OrderStatus.CANCELLED},
    OrderStatus.OUT_FOR_DELIVERY: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: {OrderStatus.COMPLETED, OrderStatus.CANCELLED},
    OrderStatus.COMPLETED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
}

# Forward transitions each role may drive. No role may move an order out of
# pending_payment: only ConfirmPayment books an order, and it writes directly.
_ROLE_TRANSITIONS = {
    ActorRole.PICKUP_AGENT: {
        (OrderStatus.BOOKED, OrderStatus.PICKUP_SCHEDULED),
        (OrderStatus.PICKUP_SCHEDULED, OrderStatus.COLLECTED),
        (OrderStatus.READY, OrderStatus.OUT_FOR_DELIVERY),
        (OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED),
    },
    ActorRole.SPECIALIST: {
        (OrderStatus.COLLECTED, OrderStatus.IN_PROGRESS),
        (OrderStatus.IN_PROGRESS, OrderStatus.READY),
    },
    ActorRole.CUSTOMER: {
        (OrderStatus.DELIVERED, OrderStatus.COMPLETED),
    },
    ActorRole.ADMIN: {
        (current, target)
        for current, targets in _VALID_TRANSITIONS.items()
        for target in targets
        if target != OrderStatus.CANCELLED and current != OrderStatus.PENDING_PAYMENT
    },
}

# States each role may cancel from
_CANCELLABLE_BY = {
    ActorRole.CUSTOMER: {OrderStatus.PENDING_PAYMENT, OrderStatus.BOOKED},
    ActorRole.SYSTEM: {OrderStatus.PENDING_PAYMENT},
    ActorRole.ADMIN: set(_FORWARD) - TERMINAL_STATES,
}

# Timestamp stamped when an order enters a state
_ARRIVAL_TIMESTAMPS = {
    OrderStatus.COLLECTED: "collected_at",
    OrderStatus.COMPLETED: "completed_at",
    OrderStatus.CANCELLED: "cancelled_at",
}

# Assignment recorded from the acting user when an order enters a state
_ARRIVAL_ASSIGNMENTS = {
    OrderStatus.PICKUP_SCHEDULED: "pickup_agent_id",
    OrderStatus.IN_PROGRESS: "specialist_id",
}


def legal_successors(status: OrderStatus) -> set[OrderStatus]:
    return set(_VALID_TRANSITIONS.get(status, set()))


def legal_transition_pairs() -> list[tuple[OrderStatus, OrderStatus]]:
    return [(current, target) for current, targets in _VALID_TRANSITIONS.items() for target in targets]


def generate_order_number(at: datetime | None = None) -> str:
    """Human-readable order number, e.g. AS-261019-K7QD."""
    at = at or datetime.now(UTC)
    alphabet = string.ascii_uppercase + string.digits
    suffix = "".join(secrets.choice(alphabet) for _ in range(4))
    return f"AS-{at:%y%m%d}-{suffix}"


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@ordering.value_object(part_of="Order")
class Address:
    """Collection and return address captured when the order is placed."""

    line1 = String(required=True, max_length=255)
    line2 = String(max_length=255)
    city = String(required=True, max_length=100)
    postcode = String(required=True, max_length=12)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@ordering.entity(part_of="Order")
class OrderItem:
    """One garment and the alteration service booked for it.

    Prices are copied from the catalog when the order is placed and never
    change afterwards.
    """

    service_id = Identifier(required=True)
    service_name = String(required=True, max_length=150)
    quantity = Integer(required=True, min_value=1)
    unit_price = Integer(required=True, min_value=0)  # pence
    description = Text()
    photo_urls = Text()  # JSON array of storage references
    item_status = String(choices=ItemStatus, default=ItemStatus.PENDING.value)

    @property
    def line_total(self):
        return self.unit_price * self.quantity

    def photos(self):
        return json.loads(self.photo_urls) if self.photo_urls else []


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@ordering.aggregate
class Order:
    order_number = String(required=True, max_length=20, unique=True)
    customer_id = Identifier(required=True)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING_PAYMENT.value)
    items = HasMany(OrderItem)

    subtotal = Integer(required=True, min_value=0)  # pence
    delivery_fee = Integer(required=True, min_value=0)  # pence
    total = Integer(required=True, min_value=0)  # pence
    currency = String(max_length=3, default=CURRENCY)

    # Contact snapshot at booking time
    customer_name = String(max_length=150)
    customer_email = String(max_length=254)
    customer_phone = String(required=True, max_length=30)
    address = ValueObject(Address)

    pickup_agent_id = Identifier()
    specialist_id = Identifier()
    pickup_date = Date(required=True)
    pickup_slot = String(required=True, choices=PickupSlot)
    notes = Text()
    cancellation_reason = String(max_length=500)

    # Live hosted checkout session
    checkout_session_id = String(max_length=255)
    checkout_url = String(max_length=1000)
    checkout_created_at = DateTime()
    checkout_attempts = Integer(default=0)

    created_at = DateTime()
    updated_at = DateTime()
    collected_at = DateTime()
    completed_at = DateTime()
    cancelled_at = DateTime()

    @invariant.post
    def total_is_subtotal_plus_delivery_fee(self):
        if self.total != self.subtotal + self.delivery_fee:
            raise ValidationError({"total": ["Total must equal subtotal plus delivery fee"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def place(
        cls,
        customer_id,
        lines,
        address,
        customer_phone,
        pickup_date,
        pickup_slot,
        customer_name=None,
        customer_email=None,
        notes=None,
    ):
        """Create a pending-payment order from priced lines.

        Args:
            lines: List of dicts with service_id, service_name, unit_price
                   (pence, from the catalog), quantity, and optional
                   description and photo_urls.
            address: Dict with line1, line2, city, postcode.
        """
        now = datetime.now(UTC)
        subtotal = sum(line["unit_price"] * line["quantity"] for line in lines)

        order = cls(
            order_number=generate_order_number(now),
            customer_id=customer_id,
            status=OrderStatus.PENDING_PAYMENT.value,
            subtotal=subtotal,
            delivery_fee=DELIVERY_FEE_PENCE,
            total=subtotal + DELIVERY_FEE_PENCE,
            currency=CURRENCY,
            customer_name=customer_name,
            customer_email=customer_email,
            customer_phone=customer_phone,
            address=Address(**address),
            pickup_date=pickup_date,
            pickup_slot=pickup_slot,
            notes=notes,
            checkout_attempts=0,
            created_at=now,
            updated_at=now,
        )
        for line in lines:
            order.add_items(
                OrderItem(
                    service_id=line["service_id"],
                    service_name=line["service_name"],
                    quantity=line["quantity"],
                    unit_price=line["unit_price"],
                    description=line.get("description"),
                    photo_urls=json.dumps(line.get("photo_urls") or []),
                )
            )

        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=order.order_number,
                customer_id=str(customer_id),
                subtotal=order.subtotal,
                delivery_fee=order.delivery_fee,
                total=order.total,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # State machine
    # -------------------------------------------------------------------
    @property
    def current_status(self) -> OrderStatus:
        return OrderStatus(self.status)

    @property
    def is_terminal(self) -> bool:
        return self.current_status in TERMINAL_STATES

    def _assert_can_transition(self, target_status, actor_role):
        """Validate adjacency first, then whether the role may drive it."""
        current = self.current_status
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise IllegalTransitionError.between(current.value, target_status.value)

        if target_status == OrderStatus.CANCELLED:
            allowed = current in _CANCELLABLE_BY.get(actor_role, set())
        else:
            allowed = (current, target_status) in _ROLE_TRANSITIONS.get(actor_role, set())
        if not allowed:
            raise TransitionNotPermittedError(
                {"status": [f"Role {actor_role.value} cannot move an order from {current.value} to {target_status.value}"]}
            )

    def transition_to(self, target_status, actor_role, actor_id=None, at=None, reason=None):
        """Apply a transition to this instance and return the changed fields.

        The returned dict is what OrderRepository.transition() writes, guarded
        by the status this order had before the call.
        """
        self._assert_can_transition(target_status, actor_role)

        at = at or datetime.now(UTC)
        changes = {"status": target_status.value, "updated_at": at}

        timestamp_field = _ARRIVAL_TIMESTAMPS.get(target_status)
        if timestamp_field:
            changes[timestamp_field] = at

        assignment_field = _ARRIVAL_ASSIGNMENTS.get(target_status)
        if assignment_field and actor_id and actor_role != ActorRole.ADMIN:
            changes[assignment_field] = str(actor_id)

        if target_status == OrderStatus.CANCELLED:
            changes["cancellation_reason"] = reason

        for field_name, value in changes.items():
            setattr(self, field_name, value)
        return changes

    # -------------------------------------------------------------------
    # Checkout session
    # -------------------------------------------------------------------
    def has_live_checkout(self, now, ttl: timedelta) -> bool:
        if not self.checkout_session_id or not self.checkout_created_at:
            return False
        created = self.checkout_created_at
        if created.tzinfo is None:
            created = created.replace(tzinfo=UTC)
        return now - created < ttl
