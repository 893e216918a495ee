"""Reminder ledger — which abandonment reminders went out, and to whom.

Append-only: the sweep creates a record only after the mail provider accepted
the message. The unique dedupe key (family, subject, sequence) is the
de-duplication guard across overlapping sweeps. Recovery-link clicks and
payment confirmation update the timestamps.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.fields import DateTime, Identifier, Integer, String

from ordering.domain import ordering

MAX_SEQUENCE = 3


class ReminderFamily(Enum):
    PAYMENT_ABANDONMENT = "payment_abandonment"
    CART_ABANDONMENT = "cart_abandonment"


def make_dedupe_key(family: ReminderFamily, subject_id, sequence_number: int) -> str:
    return f"{family.value}:{subject_id}:{sequence_number}"


@ordering.aggregate
class ReminderRecord:
    customer_id = Identifier(required=True)
    family = String(required=True, choices=ReminderFamily)
    subject_id = Identifier(required=True)  # order id or saved-cart id
    order_id = Identifier()
    sequence_number = Integer(required=True, min_value=1, max_value=MAX_SEQUENCE)
    dedupe_key = String(required=True, max_length=120, unique=True)
    recovery_token = String(required=True, max_length=64, unique=True)
    recipient = String(max_length=254)
    message_id = String(max_length=255)
    sent_at = DateTime(required=True)
    clicked_at = DateTime()
    recovered_at = DateTime()

    @classmethod
    def sent(cls, family, subject_id, sequence_number, recovery_token, customer_id, recipient, sent_at, message_id=None):
        """Record a reminder the mail provider has accepted."""
        order_id = subject_id if family == ReminderFamily.PAYMENT_ABANDONMENT else None
        return cls(
            customer_id=str(customer_id),
            family=family.value,
            subject_id=str(subject_id),
            order_id=str(order_id) if order_id else None,
            sequence_number=sequence_number,
            dedupe_key=make_dedupe_key(family, subject_id, sequence_number),
            recovery_token=recovery_token,
            recipient=recipient,
            message_id=message_id,
            sent_at=sent_at,
        )

    @property
    def reminder_family(self) -> ReminderFamily:
        return ReminderFamily(self.family)

    def mark_clicked(self, at=None) -> bool:
        """Stamp the first click; later clicks leave it unchanged."""
        if self.clicked_at is not None:
            return False
        self.clicked_at = at or datetime.now(UTC)
        return True

    def mark_recovered(self, at=None) -> bool:
        if self.recovered_at is not None:
            return False
        self.recovered_at = at or datetime.now(UTC)
        return True


@ordering.repository(part_of=ReminderRecord)
class ReminderRecordRepository:
    def find_by_token(self, token):
        results = self._dao.query.filter(recovery_token=token).all().items
        return results[0] if results else None

    def for_subject(self, family: ReminderFamily, subject_id):
        return self._dao.query.filter(family=family.value, subject_id=str(subject_id)).all().items

    def sent_sequences(self, family: ReminderFamily, subject_id) -> set[int]:
        return {record.sequence_number for record in self.for_subject(family, subject_id)}

    def for_order(self, order_id):
        return self._dao.query.filter(order_id=str(order_id)).all().items
