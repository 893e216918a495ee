"""Abandonment sweep — periodic batch that chases unpaid orders and idle carts.

One run executes three streams in sequence:

1. Payment abandonment: orders still pending payment, oldest first.
2. Cart abandonment: saved carts with items, least recently active first,
   skipping customers who already have an unpaid order.
3. Cleanup: cancel orders unpaid for 7 days, delete carts idle for 30 days.

For each subject, every reminder sequence that is due and not yet in the
ledger is sent in order. The subject is re-read right before each send, and a
ledger record is written only after the mail provider accepted the message, so
a failed send is retried on the next run. A failure on one subject is
collected in the report and the run moves on.

The sweep has no transport of its own: the HTTP trigger and the CLI both call
run_abandonment_sweep().
"""

from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime

from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from ordering.cart.saved_cart import SavedCart
from ordering.customer.customer import Customer
from ordering.domain import logger
from ordering.errors import DeliveryError, IllegalTransitionError
from ordering.mail import MailPort, get_mailer
from ordering.mail.port import DeliveryResult
from ordering.money import DELIVERY_FEE_PENCE, format_price
from ordering.order.cancellation import CancelOrder
from ordering.order.order import ActorRole, Order, OrderStatus
from ordering.order.repository import as_utc
from ordering.recovery.links import build_recovery_url, build_unsubscribe_url, generate_recovery_token
from ordering.recovery.schedule import SweepLimits, template_for
from ordering.reminder.reminder import MAX_SEQUENCE, ReminderFamily, ReminderRecord
from ordering.utils.logging import add_context, clear_context

PAYMENT_STREAM = "payment_abandonment"
CART_STREAM = "cart_abandonment"
CLEANUP_STREAM = "cleanup"

STALE_ORDER_REASON = "Payment not completed within 7 days"


@dataclass(frozen=True)
class SweepFailure:
    stream: str
    subject_id: str
    error: str
    sequence_number: int | None = None


@dataclass
class SweepReport:
    started_at: datetime
    payment_reminders_sent: int = 0
    cart_reminders_sent: int = 0
    orders_cancelled: int = 0
    carts_deleted: int = 0
    failures: list[SweepFailure] = field(default_factory=list)
    cap_reached: bool = False

    @property
    def emails_sent(self) -> int:
        return self.payment_reminders_sent + self.cart_reminders_sent

    @property
    def cleaned(self) -> int:
        return self.orders_cancelled + self.carts_deleted

    def record_failure(self, stream, subject_id, error, sequence_number=None):
        self.failures.append(
            SweepFailure(stream=stream, subject_id=str(subject_id), error=str(error), sequence_number=sequence_number)
        )

    def as_dict(self) -> dict:
        return {
            "started_at": self.started_at.isoformat(),
            "payment_reminders_sent": self.payment_reminders_sent,
            "cart_reminders_sent": self.cart_reminders_sent,
            "emails_sent": self.emails_sent,
            "orders_cancelled": self.orders_cancelled,
            "carts_deleted": self.carts_deleted,
            "cleaned": self.cleaned,
            "cap_reached": self.cap_reached,
            "failures": [asdict(failure) for failure in self.failures],
        }


class AbandonmentSweep:
    def __init__(self, now: datetime, mailer: MailPort, limits: SweepLimits):
        self.now = as_utc(now)
        self.mailer = mailer
        self.limits = limits
        self.report = SweepReport(started_at=self.now)
        self._attempts = 0

    # -------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------
    def run(self) -> SweepReport:
        add_context(sweep_started_at=self.now.isoformat())
        try:
            logger.info("abandonment_sweep_started", cap=self.limits.max_notifications)
            self._payment_stream()
            self._cart_stream()
            self._cleanup_stream()
            self._log_finished()
        finally:
            clear_context()
        return self.report

    def _log_finished(self):
        logger.info(
            "abandonment_sweep_finished",
            payment_reminders_sent=self.report.payment_reminders_sent,
            cart_reminders_sent=self.report.cart_reminders_sent,
            orders_cancelled=self.report.orders_cancelled,
            carts_deleted=self.report.carts_deleted,
            failures=len(self.report.failures),
            cap_reached=self.report.cap_reached,
        )

    @property
    def _cap_reached(self) -> bool:
        if self._attempts >= self.limits.max_notifications:
            self.report.cap_reached = True
            return True
        return False

    # -------------------------------------------------------------------
    # Scans
    # -------------------------------------------------------------------
    def _scan_pending_orders(self):
        return self._owed_reminders(
            current_domain.repository_for(Order).pending_payment_oldest_first,
            ReminderFamily.PAYMENT_ABANDONMENT,
        )

    def _scan_carts(self):
        return self._owed_reminders(
            current_domain.repository_for(SavedCart).with_items_oldest_first,
            ReminderFamily.CART_ABANDONMENT,
        )

    def _owed_reminders(self, fetch_page, family: ReminderFamily) -> list:
        """Up to scan_limit subjects, oldest first, that are not yet fully reminded.

        Subjects that already had every reminder are paged past without using
        up the scan limit, so a backlog of them cannot hide newer subjects.
        """
        ledger = current_domain.repository_for(ReminderRecord)
        limit = self.limits.scan_limit
        owed = []
        offset = 0
        while len(owed) < limit:
            page = fetch_page(limit, offset=offset)
            for subject in page:
                if len(ledger.sent_sequences(family, subject.id)) < MAX_SEQUENCE:
                    owed.append(subject)
            if len(page) < limit:
                break
            offset += len(page)
        return owed[:limit]

    # -------------------------------------------------------------------
    # Payment abandonment
    # -------------------------------------------------------------------
    def _payment_stream(self):
        for order in self._scan_pending_orders():
            if self._cap_reached:
                break
            try:
                self._remind_order(order)
            except Exception as exc:
                logger.exception("payment_reminder_error", order_id=str(order.id))
                self.report.record_failure(PAYMENT_STREAM, order.id, exc)

    def _remind_order(self, order):
        if not order.customer_email:
            return
        if not current_domain.repository_for(Customer).reminders_enabled(order.customer_id):
            return

        target = self.limits.target_sequence(self.now - as_utc(order.created_at))
        if target is None:
            return

        orders = current_domain.repository_for(Order)
        already_sent = current_domain.repository_for(ReminderRecord).sent_sequences(
            ReminderFamily.PAYMENT_ABANDONMENT, order.id
        )
        for sequence_number in range(1, target + 1):
            if sequence_number in already_sent:
                continue
            if self._cap_reached:
                return
            # Payment may have landed since the scan
            if orders.current_status(order.id) != OrderStatus.PENDING_PAYMENT:
                logger.info("payment_reminder_skipped", order_id=str(order.id), reason="no longer pending payment")
                return
            delivered = self._deliver(
                family=ReminderFamily.PAYMENT_ABANDONMENT,
                stream=PAYMENT_STREAM,
                subject_id=order.id,
                customer_id=order.customer_id,
                recipient=order.customer_email,
                sequence_number=sequence_number,
                variables=self._order_variables(order),
            )
            if not delivered:
                return
            self.report.payment_reminders_sent += 1

    @staticmethod
    def _order_variables(order) -> dict:
        return {
            "customer_name": order.customer_name,
            "order_number": order.order_number,
            "items": [
                {"name": item.service_name, "quantity": item.quantity, "price": format_price(item.line_total)}
                for item in order.items
            ],
            "subtotal": format_price(order.subtotal),
            "delivery_fee": format_price(order.delivery_fee),
            "total": format_price(order.total),
        }

    # -------------------------------------------------------------------
    # Cart abandonment
    # -------------------------------------------------------------------
    def _cart_stream(self):
        for cart in self._scan_carts():
            if self._cap_reached:
                break
            try:
                self._remind_cart(cart)
            except Exception as exc:
                logger.exception("cart_reminder_error", cart_id=str(cart.id))
                self.report.record_failure(CART_STREAM, cart.id, exc)

    def _remind_cart(self, cart):
        customer = current_domain.repository_for(Customer).find(cart.customer_id)
        if customer is None or not customer.email or not customer.cart_reminders_enabled:
            return
        # The payment stream already covers customers with an unpaid order
        if current_domain.repository_for(Order).has_pending_payment(cart.customer_id):
            return

        last_active = cart.last_active_utc
        target = self.limits.target_sequence(self.now - last_active)
        if target is None:
            return

        carts = current_domain.repository_for(SavedCart)
        already_sent = current_domain.repository_for(ReminderRecord).sent_sequences(
            ReminderFamily.CART_ABANDONMENT, cart.id
        )
        for sequence_number in range(1, target + 1):
            if sequence_number in already_sent:
                continue
            if self._cap_reached:
                return
            current = carts.fresh(cart.id)
            if current is None or current.is_empty or current.last_active_utc != last_active:
                logger.info("cart_reminder_skipped", cart_id=str(cart.id), reason="cart changed since scan")
                return
            delivered = self._deliver(
                family=ReminderFamily.CART_ABANDONMENT,
                stream=CART_STREAM,
                subject_id=cart.id,
                customer_id=cart.customer_id,
                recipient=customer.email,
                sequence_number=sequence_number,
                variables=self._cart_variables(current, customer),
            )
            if not delivered:
                return
            self.report.cart_reminders_sent += 1

    @staticmethod
    def _cart_variables(cart, customer) -> dict:
        return {
            "customer_name": customer.first_name,
            "items": [
                {
                    "name": line["service_name"],
                    "quantity": line["quantity"],
                    "price": format_price(line["unit_price"] * line["quantity"]),
                }
                for line in cart.lines()
            ],
            "subtotal": format_price(cart.subtotal),
            "delivery_fee": format_price(DELIVERY_FEE_PENCE),
            "total": format_price(cart.total),
        }

    # -------------------------------------------------------------------
    # Delivery and ledger
    # -------------------------------------------------------------------
    def _deliver(self, family, stream, subject_id, customer_id, recipient, sequence_number, variables) -> bool:
        """Send one reminder and, only if it was accepted, record it."""
        token = generate_recovery_token()
        template = template_for(family, sequence_number)
        variables = {
            **variables,
            "sequence_number": sequence_number,
            "recovery_url": build_recovery_url(token),
            "unsubscribe_url": build_unsubscribe_url(customer_id),
        }

        self._attempts += 1
        try:
            result = self.mailer.send(template, recipient, variables)
        except DeliveryError as exc:
            result = DeliveryResult(success=False, error=exc.message)

        if not result.success:
            logger.warning(
                "reminder_send_failed",
                family=family.value,
                subject_id=str(subject_id),
                sequence_number=sequence_number,
                error=result.error,
            )
            self.report.record_failure(
                stream,
                subject_id,
                f"Reminder #{sequence_number} failed: {result.error}",
                sequence_number=sequence_number,
            )
            return False

        record = ReminderRecord.sent(
            family=family,
            subject_id=subject_id,
            sequence_number=sequence_number,
            recovery_token=token,
            customer_id=customer_id,
            recipient=recipient,
            sent_at=self.now,
            message_id=result.message_id,
        )
        try:
            current_domain.repository_for(ReminderRecord).add(record)
        except ValidationError as exc:
            # An overlapping run recorded this sequence first
            logger.warning(
                "reminder_already_recorded",
                family=family.value,
                subject_id=str(subject_id),
                sequence_number=sequence_number,
                error=str(exc),
            )
            return False

        logger.info(
            "reminder_sent",
            family=family.value,
            subject_id=str(subject_id),
            sequence_number=sequence_number,
        )
        return True

    # -------------------------------------------------------------------
    # Cleanup
    # -------------------------------------------------------------------
    def _cleanup_stream(self):
        orders = current_domain.repository_for(Order)
        for order in orders.pending_payment_created_before(
            self.now - self.limits.stale_order_after, self.limits.scan_limit
        ):
            try:
                current_domain.process(
                    CancelOrder(
                        order_id=order.id,
                        reason=STALE_ORDER_REASON,
                        actor_role=ActorRole.SYSTEM.value,
                    ),
                    asynchronous=False,
                )
            except IllegalTransitionError as exc:
                # Paid or cancelled since the scan
                logger.info("stale_order_skipped", order_id=str(order.id), error=str(exc))
                continue
            except Exception as exc:
                logger.exception("stale_order_cancel_error", order_id=str(order.id))
                self.report.record_failure(CLEANUP_STREAM, order.id, exc)
                continue
            self.report.orders_cancelled += 1

        carts = current_domain.repository_for(SavedCart)
        for cart in carts.inactive_before(self.now - self.limits.stale_cart_after, self.limits.scan_limit):
            try:
                carts.remove(cart)
            except Exception as exc:
                logger.exception("stale_cart_delete_error", cart_id=str(cart.id))
                self.report.record_failure(CLEANUP_STREAM, cart.id, exc)
                continue
            self.report.carts_deleted += 1


def run_abandonment_sweep(
    now: datetime | None = None,
    mailer: MailPort | None = None,
    limits: SweepLimits | None = None,
) -> SweepReport:
    """Run one abandonment sweep and return its report."""
    return AbandonmentSweep(
        now=now or datetime.now(UTC),
        mailer=mailer or get_mailer(),
        limits=limits or SweepLimits.from_settings(),
    ).run()
