"""Utility functions for the admission engine."""

import math
import re
from typing import Union

SECOND_MS = 1000
MINUTE_MS = SECOND_MS * 60
HOUR_MS = MINUTE_MS * 60
DAY_MS = HOUR_MS * 24
WEEK_MS = DAY_MS * 7
YEAR_MS = int(DAY_MS * 365.25)

_DURATION_RE = re.compile(
    r"^(?P<value>-?\d*\.?\d+)\s*"
    r"(?P<unit>milliseconds?|msecs?|ms|seconds?|secs?|s|minutes?|mins?|m"
    r"|hours?|hrs?|h|days?|d|weeks?|w|years?|yrs?|y)?$",
    re.IGNORECASE,
)

_UNIT_MS = {
    "y": YEAR_MS,
    "w": WEEK_MS,
    "d": DAY_MS,
    "h": HOUR_MS,
    "m": MINUTE_MS,
    "s": SECOND_MS,
    "ms": 1,
}


def _unit_factor(unit: str | None) -> int:
    if not unit:
        return 1
    unit = unit.lower()
    if unit.startswith(("ms", "msec", "millisecond")):
        return 1
    if unit.startswith("y"):
        return _UNIT_MS["y"]
    if unit.startswith("w"):
        return _UNIT_MS["w"]
    if unit.startswith("d"):
        return _UNIT_MS["d"]
    if unit.startswith("h"):
        return _UNIT_MS["h"]
    if unit.startswith("m"):
        return _UNIT_MS["m"]
    return _UNIT_MS["s"]


def parse_duration(value: Union[int, float, str]) -> int:
    """Convert a duration to whole milliseconds.

    Numbers are taken as milliseconds. Strings accept an optional unit,
    e.g. "500", "500 ms", "1 second", "2 minutes", "1h", "1.5 days".

    Args:
        value: Duration as a number of milliseconds or a string.

    Returns:
        Duration in milliseconds.

    Raises:
        ValueError: If the value cannot be parsed.

    Examples:
        >>> parse_duration("1 minute")
        60000
        >>> parse_duration(250)
        250
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return int(value)
    if not isinstance(value, str):
        raise ValueError(f"Invalid duration: {value!r}")

    match = _DURATION_RE.match(value.strip())
    if match is None:
        raise ValueError(f"Invalid duration: {value!r}")

    amount = float(match.group("value"))
    return int(_round_half_up(amount * _unit_factor(match.group("unit"))))


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _plural(ms: int, ms_abs: int, unit_ms: int, name: str) -> str:
    is_plural = ms_abs >= unit_ms * 1.5
    return f"{_round_half_up(ms / unit_ms)} {name}{'s' if is_plural else ''}"


def format_duration(ms: int) -> str:
    """Render milliseconds as a long human-readable duration.

    Picks the largest unit the duration reaches and rounds to it.

    Examples:
        >>> format_duration(1000)
        '1 second'
        >>> format_duration(90000)
        '2 minutes'
        >>> format_duration(450)
        '450 ms'
    """
    ms_abs = abs(ms)
    if ms_abs >= DAY_MS:
        return _plural(ms, ms_abs, DAY_MS, "day")
    if ms_abs >= HOUR_MS:
        return _plural(ms, ms_abs, HOUR_MS, "hour")
    if ms_abs >= MINUTE_MS:
        return _plural(ms, ms_abs, MINUTE_MS, "minute")
    if ms_abs >= SECOND_MS:
        return _plural(ms, ms_abs, SECOND_MS, "second")
    return f"{ms} ms"
