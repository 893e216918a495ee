"""Fixed-point money helpers.

All amounts are stored as integer pence. Pounds only appear at the edges:
client payloads (decimal pounds in, via to_pence) and rendered text
(format_price).
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

CURRENCY = "GBP"
CURRENCY_SYMBOL = "£"

DELIVERY_FEE_PENCE = 700


def to_pence(amount) -> int:
    """Convert a pounds amount (str, int, float or Decimal) to integer pence."""
    if isinstance(amount, bool):
        raise ValueError(f"Not a money amount: {amount!r}")
    try:
        # str() first so floats like 12.1 don't carry binary noise into Decimal
        pounds = Decimal(str(amount))
    except InvalidOperation as exc:
        raise ValueError(f"Not a money amount: {amount!r}") from exc
    pence = (pounds * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(pence)


def to_pounds(pence: int) -> Decimal:
    return (Decimal(pence) / 100).quantize(Decimal("0.01"))


def format_price(pence: int) -> str:
    """Render pence as a display price, e.g. 1200 -> '£12.00'."""
    return f"{CURRENCY_SYMBOL}{to_pounds(pence):,.2f}"
