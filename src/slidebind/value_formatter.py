"""Format specifiers applied to resolved values.

Specifiers follow the conventions template authors know from spreadsheet and
office tooling:

    C[n]   currency            1234.5  -> $1,234.50
    N[n]   grouped number      1234.5  -> 1,234.50
    F[n]   fixed point         1234.5  -> 1234.50
    P[n]   percentage          0.125   -> 12.50%
    D[n]   zero-padded integer 42      -> 0042 (D4)
    U / L  upper / lower case
    T<n>   truncate to n characters
    date patterns such as yyyy-MM-dd, dd MMM yyyy or HH:mm

Anything else falls back to ``str(value)``; formatting never raises.
"""

from __future__ import annotations

import calendar
import logging
import re
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

logger = logging.getLogger(__name__)

_NUMERIC_SPEC = re.compile(r"^([CcNnFfPpDd])(\d{0,2})$")
_TRUNCATE_SPEC = re.compile(r"^[Tt](\d+)$")
_DATE_TOKEN = re.compile(
    r"yyyy|yy|MMMM|MMM|MM|M|dddd|ddd|dd|d|HH|H|hh|h|mm|m|ss|s|fff|ff|f|tt|'[^']*'|\"[^\"]*\""
)
_DATE_LETTERS = set("yMdHhmsft")

CURRENCY_SYMBOL = "$"
DEFAULT_PRECISION = 2


def to_text(value: Any) -> str:
    """Render a value without a specifier (None renders empty)."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _as_decimal(value: Any) -> Decimal | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        number = Decimal(str(value))
    elif isinstance(value, str):
        try:
            number = Decimal(value.strip().replace(",", ""))
        except InvalidOperation:
            return None
    else:
        return None
    return number if number.is_finite() else None


def _as_date(value: Any) -> date | None:
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    return None


def _round(number: Decimal, precision: int) -> Decimal:
    return number.quantize(Decimal(1).scaleb(-precision), rounding=ROUND_HALF_UP)


def format_number(number: Decimal, letter: str, digits: str) -> str | None:
    """Apply a C/N/F/P/D specifier; None when it does not apply."""
    letter = letter.upper()
    precision = int(digits) if digits else DEFAULT_PRECISION

    if letter == "D":
        if number != number.to_integral_value():
            return None
        width = int(digits) if digits else 0
        sign = "-" if number < 0 else ""
        return sign + str(abs(int(number))).zfill(width)
    if letter == "P":
        return f"{_round(number * 100, precision):,.{precision}f}%"

    rounded = _round(number, precision)
    if letter == "F":
        return f"{rounded:.{precision}f}"
    if letter == "N":
        return f"{rounded:,.{precision}f}"
    # Currency
    sign = "-" if rounded < 0 else ""
    return f"{sign}{CURRENCY_SYMBOL}{abs(rounded):,.{precision}f}"


def format_date(value: date, pattern: str) -> str:
    """Render a date/datetime with a ``yyyy-MM-dd HH:mm`` style pattern."""
    hour = getattr(value, "hour", 0)
    minute = getattr(value, "minute", 0)
    second = getattr(value, "second", 0)
    micro = getattr(value, "microsecond", 0)
    tokens = {
        "yyyy": f"{value.year:04d}",
        "yy": f"{value.year % 100:02d}",
        "MMMM": calendar.month_name[value.month],
        "MMM": calendar.month_abbr[value.month],
        "MM": f"{value.month:02d}",
        "M": str(value.month),
        "dddd": calendar.day_name[value.weekday()],
        "ddd": calendar.day_abbr[value.weekday()],
        "dd": f"{value.day:02d}",
        "d": str(value.day),
        "HH": f"{hour:02d}",
        "H": str(hour),
        "hh": f"{(hour % 12) or 12:02d}",
        "h": str((hour % 12) or 12),
        "mm": f"{minute:02d}",
        "m": str(minute),
        "ss": f"{second:02d}",
        "s": str(second),
        "fff": f"{micro // 1000:03d}",
        "ff": f"{micro // 10000:02d}",
        "f": str(micro // 100000),
        "tt": "AM" if hour < 12 else "PM",
    }

    def _token(match: re.Match) -> str:
        text = match.group(0)
        if text[0] in ("'", '"'):
            return text[1:-1]
        return tokens[text]

    return _DATE_TOKEN.sub(_token, pattern)


def _looks_like_date_pattern(spec: str) -> bool:
    unquoted = re.sub(r"'[^']*'|\"[^\"]*\"", "", spec)
    letters = {c for c in unquoted if c.isalpha()}
    return bool(letters) and letters <= _DATE_LETTERS


def format_value(value: Any, spec: str | None = None) -> str:
    """Format a resolved value with an optional specifier.

    Args:
        value: Resolved value (scalar, date or string).
        spec: Format specifier, e.g. ``C``, ``N2``, ``yyyy-MM-dd``, ``U``, ``T10``.

    Returns:
        Formatted text. Unknown or inapplicable specifiers fall back to
        the plain rendering of the value.

    Example:
        >>> format_value(1234.5, "C")
        '$1,234.50'
        >>> format_value(0.125, "P")
        '12.50%'
    """
    if value is None:
        return ""
    if not spec:
        return to_text(value)
    spec = spec.strip()

    if spec in ("U", "u"):
        return to_text(value).upper()
    if spec in ("L", "l"):
        return to_text(value).lower()
    truncate = _TRUNCATE_SPEC.match(spec)
    if truncate:
        return to_text(value)[: int(truncate.group(1))]

    is_date_value = isinstance(value, date)
    numeric = _NUMERIC_SPEC.match(spec)
    if numeric and not is_date_value:
        number = _as_decimal(value)
        if number is not None:
            formatted = format_number(number, numeric.group(1), numeric.group(2))
            if formatted is not None:
                return formatted

    if _looks_like_date_pattern(spec):
        moment = _as_date(value)
        if moment is not None:
            return format_date(moment, spec)

    logger.debug(f"Format '{spec}' does not apply to {value!r}; using plain text")
    return to_text(value)
