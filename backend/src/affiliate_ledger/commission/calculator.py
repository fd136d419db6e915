"""Commission calculation with exact decimal arithmetic."""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from affiliate_ledger.errors import InvalidInputError

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def to_decimal(value: Decimal | float | int | str) -> Decimal:
    """Coerce a number to Decimal via its string form.

    Floats go through ``str`` so 299.99 stays 299.99 instead of its binary
    approximation.
    """
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except InvalidOperation as e:
            raise InvalidInputError(f"Not a number: {value!r}") from e
    if not result.is_finite():
        raise InvalidInputError(f"Not a finite number: {value!r}")
    return result


def round_money(value: Decimal | float | int | str) -> Decimal:
    """Round half-up to cents."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def calculate(order_amount: Decimal | float | int | str, rate_percent: Decimal | float | int | str) -> Decimal:
    """Commission owed on an order.

    The rate is not clamped here; creators validate it on write.

    Args:
        order_amount: Order total
        rate_percent: Commission rate in percent (10 means 10%)

    Returns:
        Commission rounded half-up to two decimal places
    """
    amount = to_decimal(order_amount)
    rate = to_decimal(rate_percent)
    return (amount * rate / HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)
