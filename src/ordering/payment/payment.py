"""PaymentRecord aggregate — one captured (or attempted) payment for an order.

Created by the webhook entry point on the first successful notification for a
checkout session. The gateway session id is unique, so a redelivered webhook
can never produce a second record.

State Machine:
    PENDING → SUCCEEDED → REFUNDED
    PENDING → FAILED

Partial refunds leave the payment SUCCEEDED until the whole amount has been
returned.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, Integer, String, Text

from ordering.domain import ordering
from ordering.money import CURRENCY
from ordering.payment.events import PaymentConfirmed, RefundRequested


class PaymentStatus(Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"


class RefundStatus(Enum):
    REQUESTED = "requested"
    COMPLETED = "completed"
    FAILED = "failed"


@ordering.aggregate
class PaymentRecord:
    order_id = Identifier(required=True)
    gateway_session_id = String(required=True, max_length=255, unique=True)
    gateway_transaction_id = String(max_length=255)
    amount = Integer(required=True, min_value=0)  # pence
    currency = String(max_length=3, default=CURRENCY)
    status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    gateway_metadata = Text()  # JSON object

    refund_status = String(choices=RefundStatus)
    refund_amount = Integer(min_value=0)  # latest refund
    amount_refunded = Integer(min_value=0, default=0)  # running total
    refund_reason = String(max_length=500)
    gateway_refund_id = String(max_length=255)
    refund_requested_at = DateTime()
    refunded_at = DateTime()

    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def capture(cls, order_id, gateway_session_id, gateway_transaction_id, amount, metadata=None, at=None):
        """Record a payment the gateway reports as completed."""
        at = at or datetime.now(UTC)
        record = cls(
            order_id=str(order_id),
            gateway_session_id=gateway_session_id,
            gateway_transaction_id=gateway_transaction_id,
            amount=amount,
            currency=CURRENCY,
            status=PaymentStatus.SUCCEEDED.value,
            gateway_metadata=json.dumps(metadata or {}),
            created_at=at,
            updated_at=at,
        )
        record.raise_(
            PaymentConfirmed(
                payment_id=str(record.id),
                order_id=str(order_id),
                gateway_session_id=gateway_session_id,
                amount=amount,
                confirmed_at=at,
            )
        )
        return record

    @property
    def details(self) -> dict:
        return json.loads(self.gateway_metadata) if self.gateway_metadata else {}

    def annotate(self, **values):
        self.gateway_metadata = json.dumps({**self.details, **values})

    @property
    def refundable_amount(self) -> int:
        return self.amount - (self.amount_refunded or 0)

    def request_refund(self, reason, amount=None, at=None):
        """Record refund intent before the gateway is asked to move money.

        `amount` defaults to everything not yet refunded.
        """
        if PaymentStatus(self.status) != PaymentStatus.SUCCEEDED:
            raise ValidationError({"status": ["Only succeeded payments can be refunded"]})
        amount = self.refundable_amount if amount is None else amount
        if amount <= 0:
            raise ValidationError({"refund_amount": ["Refund amount must be greater than zero"]})
        if amount > self.refundable_amount:
            raise ValidationError({"refund_amount": ["Refund cannot exceed the amount paid"]})

        at = at or datetime.now(UTC)
        self.refund_status = RefundStatus.REQUESTED.value
        self.refund_amount = amount
        self.refund_reason = reason
        self.refund_requested_at = at
        self.updated_at = at
        self.raise_(
            RefundRequested(
                payment_id=str(self.id),
                order_id=str(self.order_id),
                amount=amount,
                reason=reason,
                requested_at=at,
            )
        )

    def mark_refunded(self, gateway_refund_id, at=None):
        at = at or datetime.now(UTC)
        self.amount_refunded = (self.amount_refunded or 0) + self.refund_amount
        if self.refundable_amount <= 0:
            self.status = PaymentStatus.REFUNDED.value
        self.refund_status = RefundStatus.COMPLETED.value
        self.gateway_refund_id = gateway_refund_id
        self.refunded_at = at
        self.updated_at = at

    def mark_refund_failed(self, reason):
        self.refund_status = RefundStatus.FAILED.value
        self.annotate(refund_failure=reason)
        self.updated_at = datetime.now(UTC)


@ordering.repository(part_of=PaymentRecord)
class PaymentRecordRepository:
    def find_by_session(self, gateway_session_id):
        results = self._dao.query.filter(gateway_session_id=gateway_session_id).all().items
        return results[0] if results else None

    def for_order(self, order_id):
        return self._dao.query.filter(order_id=str(order_id)).all().items

    def succeeded_for_order(self, order_id):
        return self._dao.query.filter(order_id=str(order_id), status=PaymentStatus.SUCCEEDED.value).all().items
