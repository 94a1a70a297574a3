"""
Fixed-Point Amount Handling

Balances and amounts are Decimal values with two decimal places and at most
fifteen significant digits. NEVER uses float for monetary values; floats
handed in by callers are converted through their string form.
"""

from decimal import Decimal, InvalidOperation, getcontext
from typing import Union

from .errors import ValidationError

# Set global decimal context for financial precision
getcontext().prec = 28

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")
MAX_AMOUNT = Decimal("9999999999999.99")  # NUMBER(15,2)

AmountLike = Union[Decimal, int, float, str]


def parse_amount(value: AmountLike, field_name: str = "amount", allow_zero: bool = False) -> Decimal:
    """
    Validate and normalise a monetary amount

    Args:
        value: Amount as Decimal, int, float or numeric string
        field_name: Name used in error messages
        allow_zero: Accept 0 (initial balances) instead of requiring > 0

    Returns:
        Decimal quantized to two places

    Raises:
        ValidationError: Not a number, not finite, negative (or zero when not
            allowed), more than two decimal places, or too large
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a number, got {value!r}")

    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"{field_name} must be a number, got {value!r}")

    if not amount.is_finite():
        raise ValidationError(f"{field_name} must be finite, got {value!r}")

    if amount < 0 or (amount == 0 and not allow_zero):
        bound = "non-negative" if allow_zero else "positive"
        raise ValidationError(f"{field_name} must be {bound}, got {amount}")

    if amount > MAX_AMOUNT:
        raise ValidationError(f"{field_name} exceeds maximum of {MAX_AMOUNT}: {amount}")

    if amount != amount.quantize(CENTS):
        raise ValidationError(f"{field_name} has more than two decimal places: {amount}")

    return amount.quantize(CENTS)


def format_amount(amount: Decimal) -> str:
    """Render an amount the way it is stored, e.g. '5000.00'"""
    return str(amount.quantize(CENTS))
