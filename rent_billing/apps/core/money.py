"""
Money helpers.

Amounts are plain ``Decimal`` values stored in ``DecimalField(decimal_places=2)``
columns. Every amount that lands on an invoice goes through ``round_money`` so
the same inputs always produce the same cents: rounding is half away from zero,
never banker's rounding.
"""
from decimal import Decimal, ROUND_HALF_UP

TWO_PLACES = Decimal('0.01')
ZERO = Decimal('0.00')


def to_decimal(value):
    """
    Convert ``value`` to ``Decimal`` without going through binary floats.

    Accepts Decimal, int and numeric strings. Floats are refused because
    ``Decimal(0.1)`` silently carries the binary representation error.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError('Booleans are not amounts.')
    if isinstance(value, float):
        raise TypeError('Float amounts are not allowed; pass a Decimal or a string.')
    if isinstance(value, (int, str)):
        return Decimal(value)
    raise TypeError(f'Cannot convert {type(value).__name__} to an amount.')


def round_money(value):
    """Round to 2 decimal places, half away from zero."""
    return to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def prorate(amount, part, whole):
    """
    Scale ``amount`` by ``part / whole`` and round once at the end.

    Args:
        amount: Full-period amount
        part: Applicable units (e.g. active days)
        whole: Total units (e.g. days in the period)

    Returns:
        Decimal: Prorated amount, 2 decimal places
    """
    whole = to_decimal(whole)
    if whole <= 0:
        raise ValueError('Cannot prorate over an empty whole.')
    return round_money(to_decimal(amount) * to_decimal(part) / whole)


def sum_money(values):
    """Sum amounts starting from 0.00 so an empty sum still has 2 places."""
    total = ZERO
    for value in values:
        total += to_decimal(value)
    return round_money(total)
