"""Order confirmation — sent once payment has been confirmed."""


class OrderConfirmationTemplate:
    @staticmethod
    def render(variables: dict) -> dict:
        items = "\n".join(
            f"  {item['name']} x{item['quantity']}  {item['price']}" for item in variables.get("items", [])
        )
        name = variables.get("customer_name")
        return {
            "subject": f"Order confirmed: {variables['order_number']}",
            "body": (
                f"{'Hi ' + name + ',' if name else 'Hi there,'}\n\n"
                f"Thanks for your payment. Order {variables['order_number']} is booked.\n\n"
                f"{items}\n\n"
                f"  Subtotal  {variables['subtotal']}\n"
                f"  Delivery  {variables['delivery_fee']}\n"
                f"  Total     {variables['total']}\n\n"
                f"Pickup: {variables.get('pickup_date')} ({variables.get('pickup_slot')})\n\n"
                "We'll let you know when a runner is on the way.\n"
                "The Altershop Team"
            ),
        }
