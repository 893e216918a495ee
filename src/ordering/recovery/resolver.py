"""Recovery link resolution.

A reminder email links to `/recover?token=...`. Resolving the token records
the first click and tells the client where to take the customer: back into
checkout for an unpaid order, or into the booking flow with the saved cart
restored at the step they left.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from protean import handle
from protean.fields import DateTime, String
from protean.utils.globals import current_domain

from ordering.cart.saved_cart import SavedCart
from ordering.domain import logger, ordering
from ordering.errors import RecoveryLinkExpiredError, RecoveryLinkNotFoundError
from ordering.order.order import Order, OrderStatus
from ordering.order.repository import as_utc
from ordering.recovery.links import booking_step_path, resume_checkout_path
from ordering.recovery.schedule import RECOVERY_LINK_VALIDITY
from ordering.reminder.reminder import ReminderFamily, ReminderRecord


class RecoveryOutcomeKind(Enum):
    ALREADY_PROCESSED = "already_processed"
    RESUME_CHECKOUT = "resume_checkout"
    CART_UNAVAILABLE = "cart_unavailable"
    RESTORE_CART = "restore_cart"


@dataclass(frozen=True)
class RecoveryOutcome:
    kind: RecoveryOutcomeKind
    family: ReminderFamily
    order_id: str | None = None
    order_status: str | None = None
    redirect_path: str | None = None
    items: list = field(default_factory=list)
    booking_step: str | None = None
    pickup_date: str | None = None
    pickup_slot: str | None = None

    @property
    def actionable(self) -> bool:
        return self.kind in (RecoveryOutcomeKind.RESUME_CHECKOUT, RecoveryOutcomeKind.RESTORE_CART)


@ordering.command(part_of="ReminderRecord")
class ResolveRecoveryLink:
    token = String(required=True, max_length=64)
    as_of = DateTime()


@ordering.command_handler(part_of=ReminderRecord)
class RecoveryLinkHandler:
    @handle(ResolveRecoveryLink)
    def resolve(self, command) -> RecoveryOutcome:
        reminders = current_domain.repository_for(ReminderRecord)
        reminder = reminders.find_by_token(command.token)
        if reminder is None:
            raise RecoveryLinkNotFoundError("Recovery link not found")

        as_of = as_utc(command.as_of) if command.as_of else datetime.now(UTC)
        if as_of - as_utc(reminder.sent_at) > RECOVERY_LINK_VALIDITY:
            raise RecoveryLinkExpiredError("This recovery link has expired", reminder_id=str(reminder.id))

        if reminder.mark_clicked(as_of):
            reminders.add(reminder)
            logger.info(
                "recovery_link_clicked",
                family=reminder.family,
                subject_id=str(reminder.subject_id),
                sequence_number=reminder.sequence_number,
            )

        if reminder.reminder_family == ReminderFamily.PAYMENT_ABANDONMENT:
            return self._resolve_order(reminder)
        return self._resolve_cart(reminder)

    @staticmethod
    def _resolve_order(reminder) -> RecoveryOutcome:
        status = current_domain.repository_for(Order).current_status(reminder.subject_id)
        if status != OrderStatus.PENDING_PAYMENT:
            return RecoveryOutcome(
                kind=RecoveryOutcomeKind.ALREADY_PROCESSED,
                family=ReminderFamily.PAYMENT_ABANDONMENT,
                order_id=str(reminder.subject_id),
                order_status=status.value if status else None,
            )
        return RecoveryOutcome(
            kind=RecoveryOutcomeKind.RESUME_CHECKOUT,
            family=ReminderFamily.PAYMENT_ABANDONMENT,
            order_id=str(reminder.subject_id),
            order_status=status.value,
            redirect_path=resume_checkout_path(reminder.subject_id),
        )

    @staticmethod
    def _resolve_cart(reminder) -> RecoveryOutcome:
        cart = current_domain.repository_for(SavedCart).fresh(reminder.subject_id)
        if cart is None or cart.is_empty:
            return RecoveryOutcome(kind=RecoveryOutcomeKind.CART_UNAVAILABLE, family=ReminderFamily.CART_ABANDONMENT)
        return RecoveryOutcome(
            kind=RecoveryOutcomeKind.RESTORE_CART,
            family=ReminderFamily.CART_ABANDONMENT,
            redirect_path=booking_step_path(cart.booking_step),
            items=cart.lines(),
            booking_step=cart.booking_step,
            pickup_date=cart.pickup_date.isoformat() if cart.pickup_date else None,
            pickup_slot=cart.pickup_slot,
        )
