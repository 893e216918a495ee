"""Saved cart sync — commands and handler used by the booking client."""

from datetime import UTC, datetime

from protean import handle
from protean.fields import Date, Identifier, String, Text
from protean.utils.globals import current_domain

from ordering.cart.saved_cart import BookingStep, SavedCart, normalize_cart_lines
from ordering.domain import ordering
from ordering.order.order import PickupSlot


@ordering.command(part_of="SavedCart")
class SyncSavedCart:
    customer_id = Identifier(required=True)
    items = Text(required=True)  # JSON: list of cart line dicts
    booking_step = String(choices=BookingStep, default=BookingStep.SERVICES.value)
    pickup_date = Date()
    pickup_slot = String(choices=PickupSlot)


@ordering.command(part_of="SavedCart")
class ClearSavedCart:
    customer_id = Identifier(required=True)


@ordering.command_handler(part_of=SavedCart)
class SavedCartHandler:
    @handle(SyncSavedCart)
    def sync_saved_cart(self, command):
        lines = normalize_cart_lines(command.items)
        now = datetime.now(UTC)

        repo = current_domain.repository_for(SavedCart)
        cart = repo.find_for_customer(command.customer_id) or SavedCart.start(command.customer_id, at=now)
        cart.replace_contents(
            lines,
            booking_step=command.booking_step,
            pickup_date=command.pickup_date,
            pickup_slot=command.pickup_slot,
            at=now,
        )
        repo.add(cart)
        return str(cart.id)

    @handle(ClearSavedCart)
    def clear_saved_cart(self, command):
        return current_domain.repository_for(SavedCart).delete_for_customer(command.customer_id)
