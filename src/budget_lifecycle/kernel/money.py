"""
Monetary value parsing

All amounts travel as Decimal. Floats are converted through their string
form so repeated qty x unitCost recomputation never drifts.
"""

from decimal import Decimal, InvalidOperation
from typing import Any

from budget_lifecycle.kernel.errors import ValidationError

ZERO = Decimal("0")


def to_decimal(value: Any, field: str = "amount", default: Decimal | None = None) -> Decimal:
    """
    Parse a monetary value into a non-negative Decimal

    Args:
        value: Raw value (int, float, str or Decimal)
        field: Field name used in error messages
        default: Returned when value is None or an empty string

    Returns:
        Parsed Decimal

    Raises:
        ValidationError: On booleans, unparseable text, NaN/infinity, negative
            amounts, or a missing value with no default
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if default is None:
            raise ValidationError(f"{field} is required", field=field)
        return default

    # bool is an int subclass; True must not become 1
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", field=field)

    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float, str)):
        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation as e:
            raise ValidationError(f"{field} is not a valid amount: {value!r}", field=field) from e
    else:
        raise ValidationError(f"{field} must be a number", field=field)

    if not amount.is_finite():
        raise ValidationError(f"{field} must be finite", field=field)
    if amount < ZERO:
        raise ValidationError(f"{field} cannot be negative", field=field)
    return amount

