"""
Built-in filters.

A filter is a pure function (value, arg) -> value where arg is the
optional text after ':' in the filter spec ("name" or "name:arg").

Filters are lenient: an unknown filter name or a value of an unsupported
type leaves the value unchanged instead of failing the render.
"""

from __future__ import annotations

import calendar
import logging
import math
import re
import urllib.parse
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from email.utils import format_datetime
from typing import Any, Callable, Dict, Mapping, Optional

from .jsonic import dumps
from .values import is_number, is_sequence, to_string

logger = logging.getLogger(__name__)

FilterFn = Callable[[Any, Optional[str]], Any]

DEFAULT_DATE_FORMAT = "Y-m-d H:i:s"

_ESCAPE_TABLE = str.maketrans({
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#039;",
})

_TAG_RE = re.compile(r"<[^>]*>")
_WORD_START_RE = re.compile(r"(^|\s)(\S)")

_DAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
_MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)


def split_filter_spec(filter_spec: str):
    """'name:arg' -> ('name', 'arg'); 'name' -> ('name', None)"""
    name, sep, arg = filter_spec.partition(":")
    return name, (arg if sep else None)


def apply_filter(value: Any, filter_spec: str, filters: Optional[Mapping[str, FilterFn]] = None) -> Any:
    """
    Applies one filter spec to a value.

    Args:
        value: Filter operand
        filter_spec: 'name' or 'name:arg'
        filters: Filter table; the built-in FILTERS when omitted

    Returns:
        Filtered value, or the operand itself for unknown filters
    """
    table = FILTERS if filters is None else filters
    name, arg = split_filter_spec(filter_spec)
    fn = table.get(name)
    if fn is None:
        logger.debug(f"Unknown filter '{name}', value passed through")
        return value
    return fn(value, arg)


# ---- strings ----

def _upper(value, arg):
    return value.upper() if isinstance(value, str) else value


def _lower(value, arg):
    return value.lower() if isinstance(value, str) else value


def _capitalize(value, arg):
    return value.capitalize() if isinstance(value, str) else value


def _title(value, arg):
    if not isinstance(value, str):
        return value
    return _WORD_START_RE.sub(lambda m: m.group(1) + m.group(2).upper(), value.lower())


def _trim(value, arg):
    if not isinstance(value, str):
        return value
    return value.strip(arg) if arg else value.strip()


def _escape(value, arg):
    return value.translate(_ESCAPE_TABLE) if isinstance(value, str) else value


def _striptags(value, arg):
    return _TAG_RE.sub("", value) if isinstance(value, str) else value


def _nl2br(value, arg):
    if not isinstance(value, str):
        return value
    return value.replace("\r\n", "<br>").replace("\n", "<br>")


def _replace(value, arg):
    """arg: 'search,replacement'"""
    if not isinstance(value, str) or not arg:
        return value
    search, _, replacement = arg.partition(",")
    if not search:
        return value
    return value.replace(search, replacement)


def _url_encode(value, arg):
    if isinstance(value, str):
        return urllib.parse.quote(value, safe="")
    if isinstance(value, dict):
        return urllib.parse.urlencode({k: to_string(v) for k, v in value.items()})
    return value


def _split(value, arg):
    if not isinstance(value, str):
        return value
    if not arg:
        return list(value)
    return value.split(arg)


def _format(value, arg):
    """printf-style: {{ price|format:"%.2f" }}"""
    if arg is None:
        return value
    try:
        return arg % (value,)
    except (TypeError, ValueError, OverflowError):
        return value


# ---- sequences and mappings ----

def _length(value, arg):
    if isinstance(value, (str, list, tuple, dict)):
        return len(value)
    return 0


def _reverse(value, arg):
    if isinstance(value, str):
        return value[::-1]
    if is_sequence(value):
        return list(reversed(value))
    return value


def _first(value, arg):
    if isinstance(value, str) or is_sequence(value):
        return value[0] if value else None
    if isinstance(value, dict):
        return next(iter(value.values()), None)
    return value


def _last(value, arg):
    if isinstance(value, str) or is_sequence(value):
        return value[-1] if value else None
    if isinstance(value, dict):
        return list(value.values())[-1] if value else None
    return value


def _slice(value, arg):
    """arg: 'start[,length]'; a negative start counts from the end."""
    if not (isinstance(value, str) or is_sequence(value)) or not arg:
        return value
    start_text, _, length_text = arg.partition(",")
    try:
        start = int(start_text.strip())
        length = int(length_text.strip()) if length_text.strip() else None
    except ValueError:
        return value

    end = None
    if length is not None:
        end = start + length
        if start < 0 <= end:
            end = None
    result = value[start:end]
    return list(result) if isinstance(result, tuple) else result


def _join(value, arg):
    if not is_sequence(value):
        return value
    return (arg or "").join(to_string(item) for item in value)


def _keys(value, arg):
    if isinstance(value, dict):
        return list(value.keys())
    if is_sequence(value):
        return list(range(len(value)))
    return value


def _values(value, arg):
    if isinstance(value, dict):
        return list(value.values())
    if is_sequence(value):
        return list(value)
    return value


def _default(value, arg):
    """Replaces null and empty values."""
    if value is None or value == "" or (isinstance(value, (list, tuple, dict)) and not value):
        return arg if arg is not None else ""
    return value


def _json_encode(value, arg):
    return dumps(value)


# ---- numbers ----

def _abs(value, arg):
    return abs(value) if is_number(value) else value


def _non_finite(value) -> bool:
    return isinstance(value, float) and not math.isfinite(value)


def _parse_int_arg(arg: Optional[str], default: int = 0) -> Optional[int]:
    if arg is None or not arg.strip():
        return default
    try:
        return int(arg.strip())
    except ValueError:
        return None


def _round(value, arg):
    """Half away from zero; arg is the number of decimal places (default 0)."""
    digits = _parse_int_arg(arg)
    if not is_number(value) or digits is None or _non_finite(value):
        return value
    try:
        rounded = Decimal(str(value)).quantize(Decimal(1).scaleb(-digits), rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return value
    return int(rounded) if digits <= 0 else float(rounded)


def _number_format(value, arg):
    """1234.5|number_format:2 -> '1,234.50'"""
    decimals = _parse_int_arg(arg)
    if not is_number(value) or decimals is None or decimals < 0 or _non_finite(value):
        return value
    rounded = _round(value, str(decimals))
    try:
        return f"{rounded:,.{decimals}f}"
    except OverflowError:
        return value


# ---- dates ----

_DATE_CODES: Dict[str, Callable[[datetime], str]] = {
    # day
    "d": lambda m: f"{m.day:02d}",
    "D": lambda m: _DAY_NAMES[m.weekday()][:3],
    "j": lambda m: str(m.day),
    "l": lambda m: _DAY_NAMES[m.weekday()],
    "N": lambda m: str(m.isoweekday()),
    "w": lambda m: str(m.isoweekday() % 7),
    "z": lambda m: str(m.timetuple().tm_yday - 1),
    # week
    "W": lambda m: f"{m.isocalendar()[1]:02d}",
    # month
    "F": lambda m: _MONTH_NAMES[m.month - 1],
    "M": lambda m: _MONTH_NAMES[m.month - 1][:3],
    "m": lambda m: f"{m.month:02d}",
    "n": lambda m: str(m.month),
    "t": lambda m: str(calendar.monthrange(m.year, m.month)[1]),
    # year
    "L": lambda m: "1" if calendar.isleap(m.year) else "0",
    "Y": lambda m: str(m.year),
    "y": lambda m: f"{m.year % 100:02d}",
    # time
    "a": lambda m: "am" if m.hour < 12 else "pm",
    "A": lambda m: "AM" if m.hour < 12 else "PM",
    "g": lambda m: str(m.hour % 12 or 12),
    "G": lambda m: str(m.hour),
    "h": lambda m: f"{m.hour % 12 or 12:02d}",
    "H": lambda m: f"{m.hour:02d}",
    "i": lambda m: f"{m.minute:02d}",
    "s": lambda m: f"{m.second:02d}",
    # full date/time
    "U": lambda m: str(int(m.timestamp())),
    "c": lambda m: m.isoformat(),
    "r": lambda m: format_datetime(m),
}


def format_date(moment: datetime, fmt: str) -> str:
    """
    Formats a datetime with PHP date() format characters.

    Unknown characters are copied as is; a backslash escapes the next one.
    """
    out = []
    escaped = False
    for ch in fmt:
        if escaped:
            out.append(ch)
            escaped = False
        elif ch == "\\":
            escaped = True
        else:
            code = _DATE_CODES.get(ch)
            out.append(code(moment) if code else ch)
    return "".join(out)


def to_datetime(value: Any) -> Optional[datetime]:
    """Epoch seconds (UTC), ISO-8601 string, 'now', date or datetime."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if is_number(value):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        if value == "now":
            return datetime.now(timezone.utc)
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return None
    return None


def _date(value, arg):
    moment = to_datetime(value)
    if moment is None:
        return value
    return format_date(moment, arg or DEFAULT_DATE_FORMAT)


FILTERS: Dict[str, FilterFn] = {
    "upper": _upper,
    "lower": _lower,
    "length": _length,
    "slice": _slice,
    "join": _join,
    "date": _date,
    "default": _default,
    "escape": _escape,
    "trim": _trim,
    "reverse": _reverse,
    "first": _first,
    "last": _last,
    "format": _format,
    "replace": _replace,
    "abs": _abs,
    "round": _round,
    "number_format": _number_format,
    "url_encode": _url_encode,
    "json_encode": _json_encode,
    "capitalize": _capitalize,
    "title": _title,
    "striptags": _striptags,
    "nl2br": _nl2br,
    "split": _split,
    "keys": _keys,
    "values": _values,
}


__all__ = [
    "FilterFn", "FILTERS", "DEFAULT_DATE_FORMAT",
    "apply_filter", "split_filter_spec", "format_date", "to_datetime",
]
