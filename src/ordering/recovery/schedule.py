"""Reminder escalation schedule and per-run sweep limits."""

from dataclasses import dataclass, field
from datetime import timedelta

from ordering.config import get_settings
from ordering.reminder.reminder import ReminderFamily

# Elapsed time since the subject went idle -> reminder sequence due
DEFAULT_THRESHOLDS = (
    (timedelta(hours=1), 1),
    (timedelta(hours=24), 2),
    (timedelta(hours=72), 3),
)

RECOVERY_LINK_VALIDITY = timedelta(days=7)


@dataclass(frozen=True)
class SweepLimits:
    max_notifications: int = 50
    scan_limit: int = 500
    thresholds: tuple = field(default=DEFAULT_THRESHOLDS)
    stale_order_after: timedelta = timedelta(days=7)
    stale_cart_after: timedelta = timedelta(days=30)

    @classmethod
    def from_settings(cls, settings=None) -> "SweepLimits":
        settings = settings or get_settings()
        return cls(max_notifications=settings.max_emails_per_run, scan_limit=settings.sweep_scan_limit)

    def target_sequence(self, elapsed: timedelta) -> int | None:
        """Highest sequence due after `elapsed`; None before the first threshold."""
        target = None
        for threshold, sequence in self.thresholds:
            if elapsed >= threshold:
                target = sequence
        return target


def template_for(family: ReminderFamily, sequence_number: int) -> str:
    prefix = "payment_reminder" if family == ReminderFamily.PAYMENT_ABANDONMENT else "cart_reminder"
    return f"{prefix}_{sequence_number}"
