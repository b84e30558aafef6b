from decimal import Decimal, ROUND_HALF_UP

_CENT = Decimal("0.01")


def to_amount(cents: int) -> float:
    """Integer cents -> currency amount rounded half-up to 2 decimals."""
    return float((Decimal(cents) / 100).quantize(_CENT, rounding=ROUND_HALF_UP))


def line_subtotal(qty: int, unit_price_cents: int) -> int:
    return qty * unit_price_cents
