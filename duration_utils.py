#!/usr/bin/env python3
"""
Duration parsing for janitor options and config files.

Accepts the compact notation operators already use for token lifespans:

    300ms, 45s, 10m, 1h30m, 1.5h, 720h, 0

A bare number is read as seconds. Negative durations are rejected.
"""

import re
from datetime import timedelta
from typing import Union

_UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_COMPONENT = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_PLAIN_SECONDS = re.compile(r"\d+(?:\.\d*)?|\.\d+")


def parse_duration(value: Union[str, int, float, timedelta, None]) -> timedelta:
    """
    Parse a duration into a timedelta.

    Args:
        value: Duration string ("1h30m"), number of seconds, or timedelta.
            None and empty strings are treated as zero.

    Returns:
        timedelta: Parsed, non-negative duration

    Raises:
        ValueError: If the value is negative or not a valid duration
    """
    if value is None:
        return timedelta(0)
    if isinstance(value, timedelta):
        if value < timedelta(0):
            raise ValueError(f"Duration must not be negative: {value}")
        return value
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        if value < 0:
            raise ValueError(f"Duration must not be negative: {value}")
        return timedelta(seconds=value)

    text = str(value).strip()
    if not text or text == "0":
        return timedelta(0)
    if text.startswith("-"):
        raise ValueError(f"Duration must not be negative: {text}")
    text = text.lstrip("+")

    if _PLAIN_SECONDS.fullmatch(text):
        return timedelta(seconds=float(text))

    total = 0.0
    position = 0
    for match in _COMPONENT.finditer(text):
        if match.start() != position:
            break
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        position = match.end()

    if position == 0 or position != len(text):
        raise ValueError(f"Invalid duration: {value!r}")

    return timedelta(seconds=total)


def format_duration(duration: timedelta) -> str:
    """Render a timedelta back into compact notation, e.g. "1h30m0s"."""
    total = duration.total_seconds()
    if total == 0:
        return "0s"

    sign = "-" if total < 0 else ""
    total = abs(total)
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)

    out = ""
    if hours:
        out += f"{int(hours)}h"
    if hours or minutes:
        out += f"{int(minutes)}m"
    if seconds == int(seconds):
        out += f"{int(seconds)}s"
    else:
        out += f"{seconds:g}s"
    return sign + out
