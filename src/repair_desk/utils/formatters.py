"""Formatting utilities for display values and money."""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from repair_desk.errors import ValidationError
from repair_desk.utils.constants import ORDER_STATUS_LABELS

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Coerce a stored or user-supplied amount to a 2-place Decimal.

    Floats go through ``str`` so 0.1 becomes Decimal("0.10") rather than
    its binary expansion.
    """
    if value is None:
        return Decimal("0.00")
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as e:
        raise ValidationError(f"Not a valid amount: {value!r}") from e
    if not amount.is_finite():
        raise ValidationError(f"Not a valid amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def format_currency(value, currency: str = "PLN") -> str:
    """Format an amount like ``1,250.00 PLN``."""
    return f"{to_money(value):,.2f} {currency}"


def format_quantity(value: int, min_quantity: int = 0) -> str:
    """Format quantity, flagging low stock."""
    if min_quantity > 0 and value < min_quantity:
        return f"{value} (LOW)"
    return str(value)


def format_status(status: str) -> str:
    """Human-readable label for an order status."""
    return ORDER_STATUS_LABELS.get(status, status.replace("_", " ").title())


def format_duration(minutes: int) -> str:
    """Format a minute count as ``2h 05m``."""
    hours, mins = divmod(max(0, int(minutes)), 60)
    if hours:
        return f"{hours}h {mins:02d}m"
    return f"{mins}m"
