"""
Value coercion: turns tag or environment text into typed field values.

Literal syntax follows the conventions operators already use in env vars:
booleans as ``true``/``1``/``t``, durations as ``1h30m``, lists as
``a,b,c`` and maps as ``k1:v1,k2:v2``.
"""

import re
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, List, Tuple, get_args, get_origin

from dateutil import parser as date_parser

from ..exceptions import InvalidError, ParseError
from .walker import FieldRef, is_record_type, unwrap, zero_value

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1
UINT64_MAX = 2**64 - 1

_TRUE = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE = frozenset({"0", "f", "F", "FALSE", "false", "False"})

_INT_RE = re.compile(r"[+-]?\d+")
_UINT_RE = re.compile(r"\d+")
_DURATION_PART_RE = re.compile(r"(\d*\.?\d*)([^\d.]+)")
_NUMERIC_DATE_RE = re.compile(
    r"\s*(\d{4}[-/.]\d{1,2}[-/.]\d{1,2}|\d{1,2}[-/.]\d{1,2}[-/.]\d{4})(\D|$)"
)
_MONTH_RE = re.compile(
    r"\b(jan|feb|mar|apr|may|jun|jul|aug|sep|sept|oct|nov|dec)[a-z]*\.?\b", re.IGNORECASE
)
_YEAR_RE = re.compile(r"\b\d{4}\b")

# Duration units, in microseconds.
_DURATION_UNITS = {
    "ns": Decimal("0.001"),
    "us": Decimal(1),
    "µs": Decimal(1),
    "μs": Decimal(1),
    "ms": Decimal(1_000),
    "s": Decimal(1_000_000),
    "m": Decimal(60_000_000),
    "h": Decimal(3_600_000_000),
}

NOW = "now"

SCALAR_TYPES = (str, bool, int, float, datetime, timedelta)


def parse_bool(value: str) -> bool:
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"invalid syntax for bool: {value!r}")


def parse_int(value: str) -> int:
    if not _INT_RE.fullmatch(value):
        raise ValueError(f"invalid syntax for int: {value!r}")
    number = int(value)
    if not INT64_MIN <= number <= INT64_MAX:
        raise ValueError(f"value out of range: {value!r}")
    return number


def parse_uint(value: str) -> int:
    if not _UINT_RE.fullmatch(value):
        raise ValueError(f"invalid syntax for uint: {value!r}")
    number = int(value)
    if number > UINT64_MAX:
        raise ValueError(f"value out of range: {value!r}")
    return number


def parse_float(value: str) -> float:
    if not value or value != value.strip() or "_" in value:
        raise ValueError(f"invalid syntax for float: {value!r}")
    return float(value)


def parse_duration(value: str) -> timedelta:
    """Parse a duration literal such as ``300ms``, ``1.5h`` or ``2h45m``."""
    text = value
    sign = 1
    if text[:1] in ("+", "-"):
        sign = -1 if text[0] == "-" else 1
        text = text[1:]

    if text == "0":
        return timedelta(0)
    if not text:
        raise ValueError(f"invalid duration {value!r}")

    total = Decimal(0)
    pos = 0
    while pos < len(text):
        match = _DURATION_PART_RE.match(text, pos)
        if not match or match.group(1) in ("", "."):
            raise ValueError(f"invalid duration {value!r}")
        number, unit = match.groups()
        if unit not in _DURATION_UNITS:
            raise ValueError(f"unknown unit {unit!r} in duration {value!r}")
        try:
            total += Decimal(number) * _DURATION_UNITS[unit]
        except InvalidOperation as e:
            raise ValueError(f"invalid duration {value!r}") from e
        pos = match.end()

    # Durations are bounded by a signed 64-bit count of nanoseconds.
    if not INT64_MIN <= total * 1000 * sign <= INT64_MAX:
        raise ValueError(f"invalid duration {value!r}: out of range")
    try:
        return timedelta(microseconds=float(total)) * sign
    except OverflowError as e:
        raise ValueError(f"invalid duration {value!r}: out of range") from e


def parse_datetime(value: str) -> datetime:
    """Parse a timestamp in any common textual format."""
    try:
        return date_parser.parse(value)
    except OverflowError as e:
        raise ValueError(str(e)) from e


def parse_time(value: str) -> datetime:
    if value == NOW:
        return datetime.now()
    return parse_datetime(value)


_SCALAR_PARSERS = {
    str: str,
    bool: parse_bool,
    int: parse_int,
    float: parse_float,
    datetime: parse_time,
    timedelta: parse_duration,
}


def _infer_duration(value: str) -> timedelta:
    # "0" is a valid duration but reads as an integer.
    if value == "0":
        raise ValueError("zero is not inferred as a duration")
    return parse_duration(value)


def _infer_datetime(value: str) -> datetime:
    # Only full dates are inferred; "may" or "10am" stay strings.
    spelled = _MONTH_RE.search(value) and _YEAR_RE.search(value)
    if not (_NUMERIC_DATE_RE.match(value) or spelled):
        raise ValueError(f"not a full date: {value!r}")
    return parse_datetime(value)


# Order matters: "5" is an int, "5s" a duration, "t" a bool.
INFERENCE_CHAIN: Tuple[Callable[[str], Any], ...] = (
    _infer_duration,
    parse_int,
    parse_uint,
    parse_float,
    parse_bool,
    _infer_datetime,
)

# Element types tried, in order, on the first element of an untyped list.
LIST_INFERENCE_CHAIN: Tuple[Callable[[str], Any], ...] = (
    parse_int,
    parse_float,
    parse_bool,
)


def infer_value(value: str) -> Any:
    """Parse a value of unknown type, falling back to the raw string."""
    for parse in INFERENCE_CHAIN:
        try:
            return parse(value)
        except ValueError:
            continue
    return value


def _is_dynamic(tp: Any) -> bool:
    return tp is Any or tp is object


def _parse_scalar(tp: Any, value: str, field: str) -> Any:
    parse = _SCALAR_PARSERS.get(tp)
    if parse is None:
        raise InvalidError(field, f"unsupported type {tp!r}")
    try:
        return parse(value)
    except ValueError as e:
        raise ParseError(field, value, str(e)) from e


def _parse_list(elem_type: Any, content: str, field: str) -> List[Any]:
    elements = content.split(",")

    if not _is_dynamic(elem_type):
        return [_parse_scalar(elem_type, element, field) for element in elements]

    parse: Callable[[str], Any] = str
    for candidate in LIST_INFERENCE_CHAIN:
        try:
            candidate(elements[0])
        except ValueError:
            continue
        parse = candidate
        break

    result = []
    for element in elements:
        try:
            result.append(parse(element))
        except ValueError:
            # Elements not matching the first element's type are dropped.
            continue
    return result


def _parse_dict(key_type: Any, value_type: Any, content: str, field: str) -> dict:
    result = {}
    for pair in content.split(","):
        key, sep, value = pair.partition(":")
        if not sep:
            raise InvalidError(f"map key-value pair {pair!r}", f"{field} expects key:value")

        parsed_key = key if _is_dynamic(key_type) else _parse_scalar(key_type, key, field)

        if _is_dynamic(value_type):
            result[parsed_key] = infer_value(value)
        else:
            result[parsed_key] = _parse_scalar(value_type, value, field)
    return result


def coerce(annotation: Any, content: str, zero_token: str, field: str = "value") -> Any:
    """
    Convert ``content`` into a value of ``annotation``.

    ``zero_token`` as content yields the type's zero value, whatever the
    type.

    Raises:
        InvalidError: the type is unsupported or a map pair is malformed
        ParseError: the literal doesn't parse as the type
    """
    base, _, _ = unwrap(annotation)
    origin = get_origin(base) or base
    args = get_args(base)

    if base not in SCALAR_TYPES and origin not in (list, dict):
        raise InvalidError(field, f"unsupported type {base!r}")

    if content == zero_token:
        return zero_value(base)

    if origin is list:
        elem_type = unwrap(args[0])[0] if args else Any
        return _parse_list(elem_type, content, field)

    if origin is dict:
        key_type = unwrap(args[0])[0] if args else Any
        value_type = unwrap(args[1])[0] if len(args) > 1 else Any
        return _parse_dict(key_type, value_type, content, field)

    return _parse_scalar(base, content, field)


def set_value_from_tag(
    ref: FieldRef, tag: str, content: str, override: bool, zero_token: str
) -> None:
    """
    Coerce and assign a value to a field.

    The field is left alone when ``override`` is off and it already holds a
    non-zero value. ``content`` falls back to ``tag`` when empty.
    """
    if is_record_type(ref.annotation):
        return

    if not ref.settable:
        raise InvalidError(ref.path, "cannot set value")

    if not override and not ref.is_zero():
        return

    final_content = content or tag

    ref.set(coerce(ref.annotation, final_content, zero_token, field=ref.path))
