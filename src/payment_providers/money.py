"""Conversion from integer minor units to gateway decimal amounts."""

from decimal import Decimal

MINOR_UNIT_EXPONENT = 2
_QUANTUM = Decimal(1).scaleb(-MINOR_UNIT_EXPONENT)


def _check_minor_units(amount: int) -> int:
    # bool is an int subclass; True must not become "0.01"
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise TypeError(f"Amount must be an integer number of minor units, got {amount!r}")
    if amount < 0:
        raise ValueError(f"Amount must be non-negative, got {amount}")
    return amount


def to_major_units(amount: int) -> str:
    """Render a minor-unit amount as a two-decimal major-unit string.

    >>> to_major_units(150000)
    '1500.00'
    """
    amount = _check_minor_units(amount)
    return str((Decimal(amount) / (10 ** MINOR_UNIT_EXPONENT)).quantize(_QUANTUM))


def to_major_units_number(amount: int) -> float:
    """Major-unit amount as a JSON number, for gateways that reject strings."""
    return float(to_major_units(amount))
