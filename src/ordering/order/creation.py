"""Order creation — command and handler."""

import json

from protean import handle
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import Date, Identifier, String, Text
from protean.utils.globals import current_domain

from ordering.catalog.service import Service
from ordering.domain import logger, ordering
from ordering.errors import PersistenceError
from ordering.order.order import Order, PickupSlot

_REQUIRED_ADDRESS_FIELDS = ("line1", "city", "postcode")


@ordering.command(part_of="Order")
class CreateOrder:
    customer_id = Identifier(required=True)
    items = Text(required=True)  # JSON: list of {service_id, quantity, description, photo_urls}
    address = Text(required=True)  # JSON: {line1, line2, city, postcode}
    customer_phone = String(max_length=30)
    customer_email = String(max_length=254)
    customer_name = String(max_length=150)
    pickup_date = Date()
    pickup_slot = String(max_length=20)
    notes = Text()


def _load_json(value, default):
    if value is None:
        return default
    return json.loads(value) if isinstance(value, str) else value


def _validate(command, items_data, address):
    errors = {}
    if not items_data:
        errors["items"] = ["At least one item is required"]
    for field_name in _REQUIRED_ADDRESS_FIELDS:
        if not (address.get(field_name) or "").strip():
            errors[f"address.{field_name}"] = ["This field is required"]
    if not (command.customer_phone or "").strip():
        errors["customer_phone"] = ["A contact phone number is required"]
    if not (command.customer_email or "").strip():
        errors["customer_email"] = ["A contact email address is required"]
    if not command.pickup_date:
        errors["pickup_date"] = ["A pickup date is required"]
    if command.pickup_slot not in {slot.value for slot in PickupSlot}:
        errors["pickup_slot"] = ["Pickup slot must be one of morning, afternoon, evening"]
    if errors:
        raise ValidationError(errors)


def _price_lines(items_data):
    """Price each requested item from the catalog."""
    services = current_domain.repository_for(Service).priced_lookup(
        item.get("service_id") for item in items_data
    )

    lines = []
    for index, item in enumerate(items_data):
        service = services.get(str(item.get("service_id")))
        if service is None:
            raise ValidationError({"items": [f"Item {index + 1} references an unknown or unavailable service"]})
        quantity = int(item.get("quantity") or 1)
        if quantity < 1:
            raise ValidationError({"items": [f"Item {index + 1} must have a quantity of at least 1"]})
        lines.append(
            {
                "service_id": str(service.id),
                "service_name": service.name,
                "unit_price": service.price,
                "quantity": quantity,
                "description": item.get("description"),
                "photo_urls": item.get("photo_urls") or [],
            }
        )
    return lines


@ordering.command_handler(part_of=Order)
class CreateOrderHandler:
    @handle(CreateOrder)
    def create_order(self, command):
        items_data = _load_json(command.items, [])
        address = _load_json(command.address, {})
        _validate(command, items_data, address)

        order = Order.place(
            customer_id=command.customer_id,
            lines=_price_lines(items_data),
            address={
                "line1": address["line1"].strip(),
                "line2": (address.get("line2") or "").strip() or None,
                "city": address["city"].strip(),
                "postcode": address["postcode"].strip().upper(),
            },
            customer_phone=command.customer_phone.strip(),
            customer_email=command.customer_email,
            customer_name=command.customer_name,
            pickup_date=command.pickup_date,
            pickup_slot=command.pickup_slot,
            notes=command.notes,
        )

        repo = current_domain.repository_for(Order)
        try:
            repo.add(order)
        except ValidationError:
            raise
        except Exception as exc:
            logger.error("order_persist_failed", order_id=str(order.id), error=str(exc))
            self._discard_partial_order(repo, order.id)
            raise PersistenceError("Could not save the order, please try again", order_id=str(order.id)) from exc

        logger.info(
            "order_created",
            order_id=str(order.id),
            order_number=order.order_number,
            total=order.total,
        )
        return {
            "order_id": str(order.id),
            "order_number": order.order_number,
            "total": order.total,
        }

    @staticmethod
    def _discard_partial_order(repo, order_id):
        """Delete an order row whose items could not be written."""
        try:
            persisted = repo.get(order_id)
        except ObjectNotFoundError:
            return
        try:
            repo._dao.delete(persisted)
        except Exception:
            logger.exception("order_compensation_failed", order_id=str(order_id))
        else:
            logger.warning("order_compensated", order_id=str(order_id))
