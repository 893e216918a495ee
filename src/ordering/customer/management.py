"""Customer profile and reminder preference — commands and handler."""

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Boolean, Identifier, String
from protean.utils.globals import current_domain

from ordering.customer.customer import Customer
from ordering.domain import logger, ordering
from ordering.recovery.links import verify_unsubscribe_signature


@ordering.command(part_of="Customer")
class RegisterCustomer:
    customer_id = Identifier(required=True)
    email = String(max_length=254)
    full_name = String(max_length=150)
    phone = String(max_length=30)


@ordering.command(part_of="Customer")
class UpdateReminderPreference:
    customer_id = Identifier(required=True)
    enabled = Boolean(required=True)


@ordering.command(part_of="Customer")
class UnsubscribeFromReminders:
    customer_id = Identifier(required=True)
    signature = String(required=True, max_length=128)


@ordering.command_handler(part_of=Customer)
class CustomerHandler:
    @handle(RegisterCustomer)
    def register_customer(self, command):
        repo = current_domain.repository_for(Customer)
        customer = repo.find(command.customer_id)
        if customer is None:
            customer = Customer.register(
                customer_id=command.customer_id,
                email=command.email,
                full_name=command.full_name,
                phone=command.phone,
            )
        else:
            customer.update_contact(email=command.email, full_name=command.full_name, phone=command.phone)
        repo.add(customer)
        return str(customer.id)

    @handle(UpdateReminderPreference)
    def update_reminder_preference(self, command):
        self._set_reminders(command.customer_id, command.enabled)

    @handle(UnsubscribeFromReminders)
    def unsubscribe(self, command):
        if not verify_unsubscribe_signature(command.customer_id, command.signature):
            raise ValidationError({"signature": ["Invalid unsubscribe link"]})
        self._set_reminders(command.customer_id, False)
        logger.info("reminders_unsubscribed", customer_id=str(command.customer_id))

    def _set_reminders(self, customer_id, enabled):
        repo = current_domain.repository_for(Customer)
        customer = repo.find(customer_id) or Customer.register(customer_id=customer_id)
        if enabled:
            customer.enable_reminders()
        else:
            customer.disable_reminders()
        repo.add(customer)
