"""Money helpers. All amounts are integer cents; Decimal is used for division and display."""
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

CENT = Decimal("0.01")


def to_cents(amount: Union[str, int, Decimal]) -> int:
    """Convert a decimal amount in euros ("18.50") to integer cents."""
    if isinstance(amount, float):
        raise TypeError("Use str or Decimal for money, not float")
    value = Decimal(str(amount)).quantize(CENT, rounding=ROUND_HALF_UP)
    return int(value * 100)


def from_cents(cents: int) -> Decimal:
    """Convert integer cents to a two-place Decimal."""
    return (Decimal(cents) / 100).quantize(CENT)


def format_amount(cents: int) -> str:
    return f"{from_cents(cents)}"


def divide_cents(total_cents: int, divisor: int) -> int:
    """Divide cents and round half-up to the nearest cent."""
    if divisor <= 0:
        raise ValueError("Divisor must be positive")
    quotient = Decimal(total_cents) / Decimal(divisor)
    return int(quotient.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def line_total_cents(unit_price_cents: int, quantity: int) -> int:
    return unit_price_cents * quantity
