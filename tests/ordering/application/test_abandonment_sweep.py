"""Application tests for the abandonment sweep — schedule, ledger, races and cleanup."""

import json
from datetime import UTC, datetime, timedelta

import structlog
from ordering.cart.saved_cart import SavedCart
from ordering.cart.sync import SyncSavedCart
from ordering.customer.management import RegisterCustomer, UpdateReminderPreference
from ordering.mail.fake_adapter import FakeMailer
from ordering.order.order import Order, OrderStatus
from ordering.order.payment import ConfirmPayment
from ordering.recovery.schedule import SweepLimits
from ordering.recovery.sweep import AbandonmentSweep, run_abandonment_sweep
from ordering.reminder.reminder import ReminderFamily, ReminderRecord
from protean import current_domain
from protean.utils.query import Q

HEM_CART = json.dumps([{"service_name": "Hem Trousers", "price": 12.00, "quantity": 1}])


def _created_at(order_id):
    return current_domain.repository_for(Order).fresh(order_id).created_at.replace(tzinfo=UTC)


def _payment_sequences(order_id):
    return sorted(
        current_domain.repository_for(ReminderRecord).sent_sequences(ReminderFamily.PAYMENT_ABANDONMENT, order_id)
    )


def _register(customer_id="cust-cart", email="sam@example.com", full_name="Sam Taylor"):
    current_domain.process(
        RegisterCustomer(customer_id=customer_id, email=email, full_name=full_name),
        asynchronous=False,
    )


def _sync_cart(customer_id="cust-cart", items=HEM_CART, booking_step="schedule"):
    current_domain.process(
        SyncSavedCart(customer_id=customer_id, items=items, booking_step=booking_step),
        asynchronous=False,
    )
    return current_domain.repository_for(SavedCart).find_for_customer(customer_id)


def _cart_last_active(cart):
    return cart.last_active_utc


class TestPaymentReminderSchedule:
    def test_nothing_before_first_threshold(self, place_order, mailer):
        order_id = place_order()["order_id"]
        report = run_abandonment_sweep(now=_created_at(order_id) + timedelta(minutes=59), mailer=mailer)
        assert report.emails_sent == 0
        assert _payment_sequences(order_id) == []

    def test_first_reminder_after_an_hour(self, place_order, mailer):
        order_id = place_order()["order_id"]
        report = run_abandonment_sweep(now=_created_at(order_id) + timedelta(minutes=61), mailer=mailer)
        assert report.payment_reminders_sent == 1
        assert _payment_sequences(order_id) == [1]

        message = mailer.sent_with("payment_reminder_1")[0]
        assert message["to"] == "jane@example.com"
        assert "Total     £19.00" in message["body"]
        assert "https://altershop.test/recover?token=" in message["body"]

    def test_escalates_without_repeating(self, place_order, mailer):
        order_id = place_order()["order_id"]
        created = _created_at(order_id)

        run_abandonment_sweep(now=created + timedelta(minutes=61), mailer=mailer)
        assert _payment_sequences(order_id) == [1]

        run_abandonment_sweep(now=created + timedelta(hours=25), mailer=mailer)
        assert _payment_sequences(order_id) == [1, 2]
        assert len(mailer.sent_with("payment_reminder_1")) == 1

        run_abandonment_sweep(now=created + timedelta(hours=73), mailer=mailer)
        assert _payment_sequences(order_id) == [1, 2, 3]

        report = run_abandonment_sweep(now=created + timedelta(hours=100), mailer=mailer)
        assert report.payment_reminders_sent == 0
        assert len(mailer.sent_with("payment_reminder_1")) == 1
        assert len(mailer.sent_with("payment_reminder_2")) == 1
        assert len(mailer.sent_with("payment_reminder_3")) == 1

    def test_catches_up_missed_sequences_in_order(self, place_order, mailer):
        order_id = place_order()["order_id"]
        report = run_abandonment_sweep(now=_created_at(order_id) + timedelta(hours=25), mailer=mailer)
        assert report.payment_reminders_sent == 2
        assert [message["template"] for message in mailer.sent] == ["payment_reminder_1", "payment_reminder_2"]

    def test_each_reminder_gets_its_own_token(self, place_order, mailer):
        order_id = place_order()["order_id"]
        run_abandonment_sweep(now=_created_at(order_id) + timedelta(hours=25), mailer=mailer)
        records = current_domain.repository_for(ReminderRecord).for_order(order_id)
        assert len({record.recovery_token for record in records}) == 2

    def test_paid_orders_are_not_chased(self, place_order, mailer):
        order_id = place_order()["order_id"]
        current_domain.process(
            ConfirmPayment(gateway_session_id="cs_paid", gateway_transaction_id="pi_paid", order_id=order_id),
            asynchronous=False,
        )
        report = run_abandonment_sweep(now=_created_at(order_id) + timedelta(hours=2), mailer=mailer)
        assert report.payment_reminders_sent == 0

    def test_orders_without_email_are_skipped(self, place_order, mailer):
        # Rows written before an email was required at checkout
        order_id = place_order()["order_id"]
        current_domain.repository_for(Order)._dao._update_all(Q(id=order_id), customer_email=None)
        report = run_abandonment_sweep(now=_created_at(order_id) + timedelta(hours=2), mailer=mailer)
        assert report.emails_sent == 0

    def test_opted_out_customers_are_skipped(self, place_order, mailer):
        order_id = place_order(customer_id="cust-optout")["order_id"]
        current_domain.process(
            UpdateReminderPreference(customer_id="cust-optout", enabled=False),
            asynchronous=False,
        )
        report = run_abandonment_sweep(now=_created_at(order_id) + timedelta(hours=2), mailer=mailer)
        assert report.emails_sent == 0


class TestSendBeforeRecord:
    def test_failed_send_is_not_recorded(self, place_order, mailer):
        order_id = place_order()["order_id"]
        mailer.configure(should_succeed=False, failure_reason="Provider timeout")

        report = run_abandonment_sweep(now=_created_at(order_id) + timedelta(minutes=61), mailer=mailer)
        assert report.emails_sent == 0
        assert _payment_sequences(order_id) == []
        assert len(report.failures) == 1
        failure = report.failures[0]
        assert failure.stream == "payment_abandonment"
        assert failure.subject_id == order_id
        assert failure.sequence_number == 1
        assert "Provider timeout" in failure.error

    def test_failed_send_is_retried_next_run(self, place_order, mailer):
        order_id = place_order()["order_id"]
        now = _created_at(order_id) + timedelta(minutes=61)

        mailer.configure(should_succeed=False)
        run_abandonment_sweep(now=now, mailer=mailer)
        mailer.configure(should_succeed=True)
        run_abandonment_sweep(now=now + timedelta(minutes=15), mailer=mailer)

        assert _payment_sequences(order_id) == [1]

    def test_failure_stops_later_sequences_for_that_order(self, place_order, mailer):
        order_id = place_order()["order_id"]
        mailer.configure(should_succeed=False)
        report = run_abandonment_sweep(now=_created_at(order_id) + timedelta(hours=25), mailer=mailer)
        assert [failure.sequence_number for failure in report.failures] == [1]

    def test_one_failing_recipient_does_not_abort_batch(self, place_order, mailer):
        failing = place_order(customer_id="cust-a", customer_email="bounce@example.com")["order_id"]
        healthy = place_order(customer_id="cust-b", customer_email="ok@example.com")["order_id"]
        mailer.fail_for("bounce@example.com")

        now = max(_created_at(failing), _created_at(healthy)) + timedelta(minutes=61)
        report = run_abandonment_sweep(now=now, mailer=mailer)

        assert _payment_sequences(failing) == []
        assert _payment_sequences(healthy) == [1]
        assert len(report.failures) == 1

    def test_unexpected_error_on_one_order_is_collected(self, place_order, mailer, monkeypatch):
        first = place_order(customer_id="cust-a", customer_email="a@example.com")["order_id"]
        second = place_order(customer_id="cust-b", customer_email="b@example.com")["order_id"]
        original = AbandonmentSweep._remind_order

        def _explode_for_first(self, order):
            if str(order.id) == first:
                raise RuntimeError("corrupt row")
            return original(self, order)

        monkeypatch.setattr(AbandonmentSweep, "_remind_order", _explode_for_first)
        now = max(_created_at(first), _created_at(second)) + timedelta(minutes=61)
        report = run_abandonment_sweep(now=now, mailer=mailer)

        assert _payment_sequences(second) == [1]
        assert report.failures[0].subject_id == first
        assert "corrupt row" in report.failures[0].error


class TestRaceWithPayment:
    def test_order_paid_after_scan_gets_no_reminder(self, place_order, mailer):
        order_id = place_order()["order_id"]
        now = _created_at(order_id) + timedelta(minutes=61)
        scanned = current_domain.repository_for(Order).pending_payment_oldest_first(10)

        current_domain.process(
            ConfirmPayment(gateway_session_id="cs_race", gateway_transaction_id="pi_race", order_id=order_id),
            asynchronous=False,
        )

        class StaleScanSweep(AbandonmentSweep):
            def _scan_pending_orders(self):
                return scanned

        report = StaleScanSweep(now=now, mailer=mailer, limits=SweepLimits()).run()

        assert report.payment_reminders_sent == 0
        assert _payment_sequences(order_id) == []
        assert mailer.sent_with("payment_reminder_1") == []


class TestOverlappingRuns:
    def test_second_run_that_missed_the_ledger_entry_records_nothing(self, place_order, mailer, monkeypatch):
        order_id = place_order()["order_id"]
        now = _created_at(order_id) + timedelta(minutes=61)
        first = run_abandonment_sweep(now=now, mailer=mailer)
        assert first.payment_reminders_sent == 1

        # The second run checked the ledger before the first run wrote to it
        repo_class = type(current_domain.repository_for(ReminderRecord))
        monkeypatch.setattr(repo_class, "sent_sequences", lambda self, family, subject_id: set())
        second = run_abandonment_sweep(now=now, mailer=mailer)
        monkeypatch.undo()

        assert second.payment_reminders_sent == 0
        assert second.failures == []
        assert _payment_sequences(order_id) == [1]
        records = current_domain.repository_for(ReminderRecord).for_order(order_id)
        assert len(records) == 1
        # The duplicate email is the tolerated cost of not locking
        assert len(mailer.sent_with("payment_reminder_1")) == 2


class TestNotificationCap:
    def test_stops_at_cap(self, place_order, mailer):
        order_ids = [
            place_order(customer_id=f"cust-{index}", customer_email=f"c{index}@example.com")["order_id"]
            for index in range(3)
        ]
        now = max(_created_at(order_id) for order_id in order_ids) + timedelta(minutes=61)

        report = run_abandonment_sweep(now=now, mailer=mailer, limits=SweepLimits(max_notifications=2))
        assert report.emails_sent == 2
        assert report.cap_reached is True

        report = run_abandonment_sweep(now=now, mailer=mailer, limits=SweepLimits(max_notifications=2))
        assert report.emails_sent == 1
        assert all(_payment_sequences(order_id) == [1] for order_id in order_ids)

    def test_oldest_orders_first(self, place_order, mailer):
        older = place_order(customer_id="cust-old", customer_email="old@example.com")["order_id"]
        newer = place_order(customer_id="cust-new", customer_email="new@example.com")["order_id"]
        now = _created_at(newer) + timedelta(minutes=61)

        run_abandonment_sweep(now=now, mailer=mailer, limits=SweepLimits(max_notifications=1))
        assert _payment_sequences(older) == [1]
        assert _payment_sequences(newer) == []


class TestScanWindow:
    def test_fully_reminded_orders_do_not_hide_newer_ones(self, place_order, mailer):
        older = [
            place_order(customer_id=f"cust-old-{index}", customer_email=f"old{index}@example.com")["order_id"]
            for index in range(2)
        ]
        run_abandonment_sweep(now=_created_at(older[-1]) + timedelta(hours=73), mailer=mailer)
        assert all(_payment_sequences(order_id) == [1, 2, 3] for order_id in older)

        newer = place_order(customer_id="cust-new", customer_email="new@example.com")["order_id"]
        report = run_abandonment_sweep(
            now=_created_at(newer) + timedelta(minutes=61),
            mailer=mailer,
            limits=SweepLimits(scan_limit=2),
        )

        assert report.payment_reminders_sent == 1
        assert _payment_sequences(newer) == [1]


class TestCartReminders:
    def test_twelve_pound_cart_after_25_hours(self, mailer):
        _register()
        cart = _sync_cart()

        report = run_abandonment_sweep(now=_cart_last_active(cart) + timedelta(hours=25), mailer=mailer)
        assert report.cart_reminders_sent == 2

        message = mailer.sent_with("cart_reminder_2")[0]
        assert message["to"] == "sam@example.com"
        assert message["variables"]["subtotal"] == "£12.00"
        assert message["variables"]["delivery_fee"] == "£7.00"
        assert message["variables"]["total"] == "£19.00"
        assert "Hi Sam," in message["body"]

    def test_cart_reminders_are_recorded_against_the_cart(self, mailer):
        _register()
        cart = _sync_cart()
        run_abandonment_sweep(now=_cart_last_active(cart) + timedelta(minutes=61), mailer=mailer)

        records = current_domain.repository_for(ReminderRecord).for_subject(ReminderFamily.CART_ABANDONMENT, cart.id)
        assert len(records) == 1
        assert records[0].order_id is None
        assert records[0].customer_id == "cust-cart"

    def test_empty_cart_is_ignored(self, mailer):
        _register()
        cart = _sync_cart(items="[]")
        report = run_abandonment_sweep(now=_cart_last_active(cart) + timedelta(hours=2), mailer=mailer)
        assert report.cart_reminders_sent == 0

    def test_customer_without_profile_email_is_skipped(self, mailer):
        cart = _sync_cart(customer_id="cust-anon")
        report = run_abandonment_sweep(now=_cart_last_active(cart) + timedelta(hours=2), mailer=mailer)
        assert report.cart_reminders_sent == 0

    def test_opted_out_customer_is_skipped(self, mailer):
        _register()
        current_domain.process(UpdateReminderPreference(customer_id="cust-cart", enabled=False), asynchronous=False)
        cart = _sync_cart()
        report = run_abandonment_sweep(now=_cart_last_active(cart) + timedelta(hours=2), mailer=mailer)
        assert report.cart_reminders_sent == 0

    def test_customer_with_unpaid_order_gets_payment_reminder_only(self, place_order, mailer):
        _register()
        cart = _sync_cart()
        order_id = place_order(customer_id="cust-cart", customer_email="sam@example.com")["order_id"]

        now = max(_cart_last_active(cart), _created_at(order_id)) + timedelta(minutes=61)
        report = run_abandonment_sweep(now=now, mailer=mailer)

        assert report.payment_reminders_sent == 1
        assert report.cart_reminders_sent == 0

    def test_cart_touched_since_scan_is_not_chased(self, mailer):
        _register()
        cart = _sync_cart()
        now = _cart_last_active(cart) + timedelta(hours=2)
        scanned = current_domain.repository_for(SavedCart).with_items_oldest_first(10)

        _sync_cart(booking_step="checkout")

        class StaleScanSweep(AbandonmentSweep):
            def _scan_carts(self):
                return scanned

        report = StaleScanSweep(now=now, mailer=mailer, limits=SweepLimits()).run()
        assert report.cart_reminders_sent == 0


class TestCleanup:
    def test_week_old_unpaid_order_is_cancelled(self, place_order, mailer):
        order_id = place_order()["order_id"]
        report = run_abandonment_sweep(now=_created_at(order_id) + timedelta(days=7, minutes=1), mailer=mailer)

        assert report.orders_cancelled == 1
        order = current_domain.repository_for(Order).fresh(order_id)
        assert order.current_status == OrderStatus.CANCELLED
        assert order.cancellation_reason == "Payment not completed within 7 days"

    def test_recent_unpaid_order_is_kept(self, place_order, mailer):
        order_id = place_order()["order_id"]
        report = run_abandonment_sweep(now=_created_at(order_id) + timedelta(days=6), mailer=mailer)
        assert report.orders_cancelled == 0
        assert current_domain.repository_for(Order).current_status(order_id) == OrderStatus.PENDING_PAYMENT

    def test_month_old_cart_is_deleted(self, mailer):
        _register()
        cart = _sync_cart()
        report = run_abandonment_sweep(now=_cart_last_active(cart) + timedelta(days=31), mailer=mailer)
        assert report.carts_deleted == 1
        assert current_domain.repository_for(SavedCart).find_for_customer("cust-cart") is None

    def test_report_totals(self, place_order, mailer):
        order_id = place_order()["order_id"]
        report = run_abandonment_sweep(now=_created_at(order_id) + timedelta(days=8), mailer=mailer)
        summary = report.as_dict()
        assert summary["cleaned"] == report.orders_cancelled + report.carts_deleted
        assert summary["emails_sent"] == report.payment_reminders_sent + report.cart_reminders_sent
        assert summary["failures"] == []



class TestLogContext:
    def test_sends_are_logged_with_the_run_timestamp(self, place_order):
        class ContextCapturingMailer(FakeMailer):
            def __init__(self):
                super().__init__()
                self.contexts = []

            def send(self, template, recipient, variables):
                self.contexts.append(structlog.contextvars.get_contextvars())
                return super().send(template, recipient, variables)

        order_id = place_order()["order_id"]
        now = _created_at(order_id) + timedelta(minutes=61)
        mailer = ContextCapturingMailer()

        run_abandonment_sweep(now=now, mailer=mailer)

        assert mailer.contexts == [{"sweep_started_at": now.isoformat()}]
        assert structlog.contextvars.get_contextvars() == {}
