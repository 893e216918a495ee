"""Customer profile — contact details and reminder opt-out.

Identity and authentication live elsewhere; this aggregate only holds what
the order and recovery flows need. The aggregate id is the customer id issued
by the authentication provider.
"""

from datetime import UTC, datetime

from protean.fields import Boolean, DateTime, String

from ordering.domain import ordering


@ordering.aggregate
class Customer:
    email = String(max_length=254)
    full_name = String(max_length=150)
    phone = String(max_length=30)
    cart_reminders_enabled = Boolean(default=True)
    unsubscribed_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def register(cls, customer_id, email=None, full_name=None, phone=None):
        now = datetime.now(UTC)
        return cls(
            id=customer_id,
            email=email,
            full_name=full_name,
            phone=phone,
            cart_reminders_enabled=True,
            created_at=now,
            updated_at=now,
        )

    @property
    def first_name(self):
        if not self.full_name:
            return None
        return self.full_name.split()[0]

    def update_contact(self, email=None, full_name=None, phone=None):
        if email is not None:
            self.email = email
        if full_name is not None:
            self.full_name = full_name
        if phone is not None:
            self.phone = phone
        self.updated_at = datetime.now(UTC)

    def enable_reminders(self):
        self.cart_reminders_enabled = True
        self.unsubscribed_at = None
        self.updated_at = datetime.now(UTC)

    def disable_reminders(self):
        now = datetime.now(UTC)
        self.cart_reminders_enabled = False
        self.unsubscribed_at = now
        self.updated_at = now


@ordering.repository(part_of=Customer)
class CustomerRepository:
    def find(self, customer_id):
        """Return the profile, or None when the customer has never registered one."""
        results = self._dao.query.filter(id=str(customer_id)).all().items
        return results[0] if results else None

    def reminders_enabled(self, customer_id) -> bool:
        # No profile means the default preference, which is opted in
        customer = self.find(customer_id)
        return customer is None or customer.cart_reminders_enabled is not False
