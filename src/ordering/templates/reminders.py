"""Abandonment reminder templates — three escalating emails per family.

Variables:
    customer_name, items (list of {name, quantity, price}), subtotal,
    delivery_fee, total (display strings), recovery_url, unsubscribe_url,
    and order_number for the payment family.
"""


def _greeting(variables: dict) -> str:
    name = variables.get("customer_name")
    return f"Hi {name}," if name else "Hi there,"


def _summary(variables: dict) -> str:
    lines = [
        f"  {item['name']} x{item['quantity']}  {item['price']}"
        for item in variables.get("items", [])
    ]
    lines.append("")
    lines.append(f"  Subtotal  {variables['subtotal']}")
    lines.append(f"  Delivery  {variables['delivery_fee']}")
    lines.append(f"  Total     {variables['total']}")
    return "\n".join(lines)


def _footer(variables: dict) -> str:
    unsubscribe_url = variables.get("unsubscribe_url")
    footer = "The Altershop Team"
    if unsubscribe_url:
        footer += f"\n\nDon't want these reminders? Unsubscribe: {unsubscribe_url}"
    return footer


class _ReminderTemplate:
    subject = ""
    intro = ""
    call_to_action = ""

    @classmethod
    def render(cls, variables: dict) -> dict:
        body = "\n\n".join(
            [
                _greeting(variables),
                cls.intro.format(**variables),
                _summary(variables),
                f"{cls.call_to_action}: {variables['recovery_url']}",
                _footer(variables),
            ]
        )
        return {"subject": cls.subject.format(**variables), "body": body}


class PaymentReminderFirst(_ReminderTemplate):
    subject = "Complete your order {order_number}"
    intro = "Your alteration order {order_number} is reserved, but we haven't received payment yet."
    call_to_action = "Finish checkout"


class PaymentReminderSecond(_ReminderTemplate):
    subject = "Your order {order_number} is still waiting"
    intro = "Your booking is still waiting for payment. Your pickup slot is held until you complete checkout."
    call_to_action = "Complete payment"


class PaymentReminderFinal(_ReminderTemplate):
    subject = "Last chance to confirm order {order_number}"
    intro = "This is our last reminder. Unpaid orders are released after 7 days."
    call_to_action = "Confirm your booking"


class CartReminderFirst(_ReminderTemplate):
    subject = "Forgot something?"
    intro = "You started a booking with us but didn't finish it. Your selection is saved."
    call_to_action = "Pick up where you left off"


class CartReminderSecond(_ReminderTemplate):
    subject = "Your alterations are waiting"
    intro = "Your saved booking is still here whenever you're ready."
    call_to_action = "Continue your booking"


class CartReminderFinal(_ReminderTemplate):
    subject = "Last chance to book"
    intro = "We'll clear your saved booking soon. Finish it now so you don't have to start again."
    call_to_action = "Book now"
