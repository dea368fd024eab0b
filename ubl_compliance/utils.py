"""
Decimal and format helpers shared by the rule engine and the flattener.

All monetary arithmetic goes through ``decimal.Decimal`` so that equality
checks are exact; floats are only used for informational fields.
"""

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, Optional, Union

from .config import MONEY_PLACES

DecimalLike = Union[str, int, Decimal]

VAT_ID_PATTERN = re.compile(r"^[A-Z]{2}[A-Za-z0-9]{2,12}$")


def parse_decimal(value: DecimalLike) -> Decimal:
    """
    Convert document text (or a number) into a finite Decimal.

    Raises:
        ValueError: If the value is not a finite decimal number
    """
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as e:
            raise ValueError(f"Invalid decimal value: {value!r}") from e

    if not result.is_finite():
        raise ValueError(f"Invalid decimal value: {value!r}")
    return result


def format_decimal(value: DecimalLike, places: int = MONEY_PLACES) -> str:
    """Format a decimal with a fixed number of places, rounding half up."""
    exponent = Decimal(1).scaleb(-places)
    return str(parse_decimal(value).quantize(exponent, rounding=ROUND_HALF_UP))


def sum_decimals(values: Iterable[DecimalLike]) -> Decimal:
    """Exact sum of decimal values."""
    total = Decimal(0)
    for value in values:
        total += parse_decimal(value)
    return total


def round_rate(rate: float) -> int:
    """Round a tax rate to the nearest integer, halves away from zero."""
    return int(Decimal(str(rate)).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def is_valid_vat_id(vat_id: Optional[str]) -> bool:
    """
    Basic EU VAT identifier check.

    Two uppercase country letters followed by 2-12 alphanumeric characters
    (e.g. DE123456789).
    """
    if vat_id is None:
        return False
    return VAT_ID_PATTERN.fullmatch(vat_id) is not None
