"""Template registry — maps template names to template classes.

Each template renders a subject and plain-text body from a variables dict.
"""

from ordering.templates.order_confirmation import OrderConfirmationTemplate
from ordering.templates.reminders import (
    CartReminderFinal,
    CartReminderFirst,
    CartReminderSecond,
    PaymentReminderFinal,
    PaymentReminderFirst,
    PaymentReminderSecond,
)

ORDER_CONFIRMATION = "order_confirmation"

TEMPLATE_REGISTRY: dict[str, type] = {
    "payment_reminder_1": PaymentReminderFirst,
    "payment_reminder_2": PaymentReminderSecond,
    "payment_reminder_3": PaymentReminderFinal,
    "cart_reminder_1": CartReminderFirst,
    "cart_reminder_2": CartReminderSecond,
    "cart_reminder_3": CartReminderFinal,
    ORDER_CONFIRMATION: OrderConfirmationTemplate,
}


def get_template(name: str):
    """Look up a template class by name."""
    template_cls = TEMPLATE_REGISTRY.get(name)
    if template_cls is None:
        raise ValueError(f"No template registered with name: {name}")
    return template_cls


def render_template(name: str, variables: dict) -> dict:
    return get_template(name).render(variables)
