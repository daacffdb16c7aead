"""Go-style duration strings as used by cert-manager (``"2160h"``, ``"1h30m"``).

Durations are held as :class:`datetime.timedelta`, which has microsecond
resolution; nanosecond components are truncated toward zero.
"""

from __future__ import annotations

import re
from datetime import timedelta
from decimal import Decimal

_NANOSECOND = 1
_MICROSECOND = 1000 * _NANOSECOND
_MILLISECOND = 1000 * _MICROSECOND
_SECOND = 1000 * _MILLISECOND
_MINUTE = 60 * _SECOND
_HOUR = 60 * _MINUTE

_UNITS: dict[str, int] = {
    "ns": _NANOSECOND,
    "us": _MICROSECOND,
    "µs": _MICROSECOND,  # micro sign
    "μs": _MICROSECOND,  # greek mu
    "ms": _MILLISECOND,
    "s": _SECOND,
    "m": _MINUTE,
    "h": _HOUR,
}

_COMPONENT = r"([0-9]+\.?[0-9]*|\.[0-9]+)(ns|us|µs|μs|ms|s|m|h)"
_DURATION_RE = re.compile(rf"([-+]?)((?:{_COMPONENT})+)")
_COMPONENT_RE = re.compile(_COMPONENT)

# Largest magnitude representable by Go's time.Duration (int64 nanoseconds)
_MAX_NANOSECONDS = 2**63 - 1


def parse_duration(value: str) -> timedelta:
    """Parse a duration string such as ``"168h"``, ``"1h30m"`` or ``"1.5s"``.

    Raises:
        ValueError: If the string is not a valid duration.
    """
    if value in ("0", "+0", "-0"):
        return timedelta(0)

    match = _DURATION_RE.fullmatch(value)
    if match is None:
        raise ValueError(f"invalid duration {value!r}")

    sign, body = match.group(1), match.group(2)
    total = Decimal(0)
    for component in _COMPONENT_RE.finditer(body):
        number, unit = component.groups()
        total += Decimal(number) * _UNITS[unit]

    nanoseconds = int(total)
    if nanoseconds > _MAX_NANOSECONDS:
        raise ValueError(f"invalid duration {value!r}: out of range")
    if sign == "-":
        nanoseconds = -nanoseconds
    return _from_nanoseconds(nanoseconds)


def format_duration(value: timedelta) -> str:
    """Render a timedelta the way Go's ``Duration.String`` does (``"168h0m0s"``)."""
    nanoseconds = _to_nanoseconds(value)
    if nanoseconds == 0:
        return "0s"

    prefix = "-" if nanoseconds < 0 else ""
    remaining = abs(nanoseconds)

    if remaining < _SECOND:
        if remaining < _MICROSECOND:
            return f"{prefix}{remaining}ns"
        if remaining < _MILLISECOND:
            return f"{prefix}{_fraction(remaining, _MICROSECOND)}µs"
        return f"{prefix}{_fraction(remaining, _MILLISECOND)}ms"

    hours, remaining = divmod(remaining, _HOUR)
    minutes, remaining = divmod(remaining, _MINUTE)
    seconds = f"{_fraction(remaining, _SECOND)}s"
    if hours:
        return f"{prefix}{hours}h{minutes}m{seconds}"
    if minutes:
        return f"{prefix}{minutes}m{seconds}"
    return f"{prefix}{seconds}"


def _fraction(value: int, unit: int) -> str:
    whole, frac = divmod(value, unit)
    if not frac:
        return str(whole)
    width = len(str(unit)) - 1
    digits = str(frac).rjust(width, "0").rstrip("0")
    return f"{whole}.{digits}"


def _to_nanoseconds(value: timedelta) -> int:
    return ((value.days * 86400 + value.seconds) * 1_000_000 + value.microseconds) * 1000


def _from_nanoseconds(nanoseconds: int) -> timedelta:
    # truncate toward zero
    if nanoseconds < 0:
        return -timedelta(microseconds=-nanoseconds // 1000)
    return timedelta(microseconds=nanoseconds // 1000)
