"""
Component metadata helpers.

Component metadata is a flat string-keyed mapping supplied by the user.
Keys are matched case-insensitively and several keys can alias the same
setting, so lookups go through get_metadata_property rather than plain
dict access.
"""

import re
from collections.abc import Mapping
from datetime import timedelta
from typing import Any

TRUTHY_VALUES = frozenset({"y", "yes", "true", "t", "on", "1"})

# Go-style duration units, in microseconds
_DURATION_UNITS = {
    "ns": 0.001,
    "us": 1.0,
    "µs": 1.0,
    "μs": 1.0,
    "ms": 1000.0,
    "s": 1_000_000.0,
    "m": 60_000_000.0,
    "h": 3_600_000_000.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")
_INTEGER = re.compile(r"[+-]?\d+")


def get_metadata_property(
    props: Mapping[str, Any] | None, *names: str
) -> tuple[str, bool]:
    """
    Look up the first of ``names`` present in ``props``.

    Matching is case-insensitive. Returns the value as a string and whether
    any of the names was found; a key present with an empty value counts as
    found.
    """
    if not props:
        return "", False
    folded = {str(key).lower(): value for key, value in props.items()}
    for name in names:
        key = name.lower()
        if key in folded:
            value = folded[key]
            return ("" if value is None else str(value)), True
    return "", False


def is_truthy(value: Any) -> bool:
    """Interpret a metadata value as a boolean flag."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in TRUTHY_VALUES


def parse_duration(value: Any) -> timedelta:
    """
    Parse a duration from metadata.

    Accepts Go-style duration strings ("30s", "1h30m", "250ms"), integer
    seconds ("300" or 300), or an existing timedelta. Empty means zero.

    Raises:
        ValueError: If the value cannot be parsed
    """
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return timedelta(seconds=value)

    text = str(value or "").strip()
    if not text:
        return timedelta(0)
    if _INTEGER.fullmatch(text):
        return timedelta(seconds=int(text))

    sign = 1
    if text[0] in "+-":
        sign = -1 if text[0] == "-" else 1
        text = text[1:]

    total = 0.0
    pos = 0
    while pos < len(text):
        match = _DURATION_PART.match(text, pos)
        if not match:
            raise ValueError(f"invalid duration: {value!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos == 0:
        raise ValueError(f"invalid duration: {value!r}")

    return timedelta(microseconds=sign * total)


def parse_int(value: Any) -> int:
    """
    Parse an integer from metadata. Empty means zero.

    Raises:
        ValueError: If the value is not an integer
    """
    if isinstance(value, bool):
        raise ValueError(f"invalid integer: {value!r}")
    if isinstance(value, int):
        return value
    text = str(value or "").strip()
    if not text:
        return 0
    if not _INTEGER.fullmatch(text):
        raise ValueError(f"invalid integer: {value!r}")
    return int(text)


__all__ = [
    "TRUTHY_VALUES",
    "get_metadata_property",
    "is_truthy",
    "parse_duration",
    "parse_int",
]
