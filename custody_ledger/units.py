"""
Value Unit Module

The ledger counts value in integer base units; one whole unit of the native
value currency is 10**18 base units. Decimal is used only at the edges
(parsing and display), never for bookkeeping.
"""

from decimal import Decimal, Inexact, InvalidOperation, localcontext
from typing import Union
import re

UNIT_SYMBOL = "VAL"
DECIMALS = 18
BASE_UNITS_PER_WHOLE = 10 ** DECIMALS

# Enough digits for any uint256 amount
_PRECISION = 80


def whole_units(value: Union[int, str, Decimal]) -> int:
    """
    Convert an amount of whole units into base units

    Args:
        value: Whole units as int, Decimal or decimal string

    Returns:
        Amount in base units

    Raises:
        ValueError: If the value is negative, finer than one base unit or
            longer than the supported precision
    """
    if isinstance(value, bool):
        raise ValueError("Amount must be numeric")
    if isinstance(value, int):
        amount = Decimal(value)
    elif isinstance(value, Decimal):
        amount = value
    else:
        amount = decimal_from_string(value)
    if not amount.is_finite():
        raise ValueError(f"Amount {value} must be a finite number")

    with localcontext() as ctx:
        ctx.prec = _PRECISION
        ctx.traps[Inexact] = True
        try:
            scaled = amount * BASE_UNITS_PER_WHOLE
        except Inexact:
            raise ValueError(f"Amount {value} has more than {_PRECISION} significant digits")
        if scaled != scaled.to_integral_value():
            raise ValueError(f"Amount {value} has more than {DECIMALS} decimal places")

    if scaled < 0:
        raise ValueError(f"Amount {value} must not be negative")

    return int(scaled)


def to_whole(amount: int) -> Decimal:
    """Convert base units to a Decimal count of whole units"""
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        return Decimal(amount) / BASE_UNITS_PER_WHOLE


def format_units(amount: int, with_symbol: bool = True) -> str:
    """Format base units for display, e.g. ``12.5 VAL``"""
    whole = to_whole(amount).normalize()
    text = format(whole, "f")
    if with_symbol:
        return f"{text} {UNIT_SYMBOL}"
    return text


def decimal_from_string(value: str) -> Decimal:
    """
    Parse a whole-unit amount typed by a human

    Accepts thousands separators and a trailing unit symbol
    ("1,000.5 VAL").

    Raises:
        ValueError: If the string is not a number
    """
    if not value or not isinstance(value, str):
        raise ValueError("Value must be a non-empty string")

    clean_value = value.strip()
    if clean_value.upper().endswith(UNIT_SYMBOL):
        clean_value = clean_value[:-len(UNIT_SYMBOL)].strip()
    clean_value = clean_value.replace(",", "").replace("_", "")

    if not re.fullmatch(r"[+-]?(\d+(\.\d*)?|\.\d+)", clean_value):
        raise ValueError(f"Cannot convert '{value}' to an amount")

    try:
        return Decimal(clean_value)
    except InvalidOperation:
        raise ValueError(f"Cannot convert '{value}' to an amount")


def require_unsigned(amount: int, name: str = "amount") -> int:
    """Reject anything that is not a non-negative integer"""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError(f"{name} must be an integer number of base units")
    if amount < 0:
        raise ValueError(f"{name} must not be negative")
    return amount
