"""Normalization helpers for loosely-shaped job payloads.

Payloads arrive from low-code front ends where list fields may be a single
";"-delimited string, an array of strings or an array of choice objects, and
monetary fields may be numbers or numeric strings.
"""

import math
import re
from collections.abc import Mapping
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Any

# Ordered aliases tried when a list item is a choice/lookup object
LIST_ITEM_ALIASES = ("Value", "Result", "Name", "Label", "t")

# What a stringified object looks like when a front end flattens it badly
OBJECT_PLACEHOLDER = "[object Object]"

_NUMBER_PREFIX = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")

_TWO_PLACES = Decimal("0.01")
_QUANTIZE_PRECISION = 400


def _stringify(value: Any) -> str | None:
    if value is None or isinstance(value, Mapping):
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(s for s in (_stringify(v) for v in value) if s is not None)
    return str(value)


def _split_entries(value: Any) -> list[str]:
    text = _stringify(value)
    if text is None:
        return []
    return [
        part.strip()
        for part in text.split(";")
        if part.strip() and part.strip() != OBJECT_PLACEHOLDER
    ]


def _first_alias(item: Mapping[str, Any]) -> Any:
    for alias in LIST_ITEM_ALIASES:
        if item.get(alias) is not None:
            return item[alias]
    return None


def normalize_list(value: Any) -> list[str]:
    """Turn list-like input into an ordered list of trimmed, non-empty strings.

    Accepts None, a ";"-delimited string, or a sequence of strings and/or
    objects. Objects contribute the first non-null field among
    ``LIST_ITEM_ALIASES``. Duplicates are kept; only empty entries and the
    ``[object Object]`` placeholder are dropped. Never raises.

    Args:
        value: Raw list field from the payload.

    Returns:
        list[str]: Normalized entries in input order.
    """
    if not value:
        return []

    if isinstance(value, str):
        return _split_entries(value)

    if not isinstance(value, (list, tuple)):
        return []

    out: list[str] = []
    for item in value:
        if isinstance(item, str):
            out.extend(_split_entries(item))
        elif isinstance(item, Mapping):
            out.extend(_split_entries(_first_alias(item)))
    return out


def parse_number(value: Any) -> float:
    """Parse a number the way a lenient front end would.

    Numbers pass through, strings are read up to the longest numeric prefix
    (``"12.5 EUR"`` -> 12.5). Anything else, including NaN and infinities,
    becomes 0.0.
    """
    if value is None or isinstance(value, bool):
        return 0.0

    if isinstance(value, (int, float, Decimal)):
        number = float(value)
    else:
        match = _NUMBER_PREFIX.match(str(value))
        if not match:
            return 0.0
        try:
            number = float(match.group(1))
        except ValueError:
            return 0.0

    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


def _round_half_up(number: float, exponent: Decimal) -> Decimal:
    # The largest finite float has 309 integer digits
    with localcontext() as ctx:
        ctx.prec = _QUANTIZE_PRECISION
        return Decimal(repr(number)).quantize(exponent, rounding=ROUND_HALF_UP)


def fmt(value: Any) -> str:
    """Format a monetary value for display: ``1234.5`` -> ``"1.234,50"``.

    Non-numeric or missing input formats as ``"0,00"``.
    """
    amount = _round_half_up(parse_number(value), _TWO_PLACES)
    if amount == 0:
        amount = abs(amount)
    grouped = f"{amount:,.2f}"
    return grouped.replace(",", "\0").replace(".", ",").replace("\0", ".")


def fmt_percent(value: Any) -> str:
    """Format a rate with no decimals (``23.0`` -> ``"23"``)."""
    rate = _round_half_up(parse_number(value), Decimal("1"))
    return str(abs(rate) if rate == 0 else rate)


def display_quantity(value: Any) -> int | float:
    """Quantities display as integers when they are whole numbers."""
    number = parse_number(value)
    return int(number) if number.is_integer() else number
