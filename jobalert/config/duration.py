"""Duration settings: TTLs, backoff, poll interval, misfire grace, index timeout.

Every duration in config.yaml accepts either a compact form ("7d", "1h30m",
"30s") or an ISO-8601 duration ("P7D", "PT1H30M"). Values are stored as
written and converted to whole seconds on use.
"""

import re

SECONDS_PER_UNIT = {"d": 86400, "h": 3600, "m": 60, "s": 1}
UNIT_NAMES = {"d": "day", "h": "hour", "m": "minute", "s": "second"}

_COMPACT_PART = re.compile(r"(\d+)([dhms])")
_ISO_8601 = re.compile(r"^P(?:(\d+)D)?(?:T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+(?:\.\d+)?)S)?)?$")


class DurationParseError(ValueError):
    """Raised when a duration setting is malformed or out of range."""

    pass


def parse_duration(duration_str: str) -> int:
    """
    Convert a duration setting to seconds.

    Raises:
        DurationParseError: If the value is empty, malformed or zero

    Examples:
        >>> parse_duration("7d")
        604800
        >>> parse_duration("P7D")
        604800
        >>> parse_duration("1h30m")
        5400
    """
    value = duration_str.strip()
    if not value:
        raise DurationParseError("Duration cannot be empty")

    if value[0] in "pP":
        seconds = _parse_iso8601(value.upper())
    else:
        seconds = _parse_compact(value.lower())

    if seconds == 0:
        raise DurationParseError(f"Duration cannot be zero: '{duration_str}'")
    return seconds


def _parse_iso8601(value: str) -> int:
    """Days, hours, minutes and seconds only; months and years are ambiguous."""
    match = _ISO_8601.match(value)
    if not match or value in ("P", "PT") or value.endswith("T"):
        raise DurationParseError(
            f"Invalid ISO-8601 duration: '{value}'. Use e.g. 'P7D', 'PT1H30M' or 'PT30S'"
        )

    days, hours, minutes, seconds = match.groups()
    return (
        int(days or 0) * SECONDS_PER_UNIT["d"]
        + int(hours or 0) * SECONDS_PER_UNIT["h"]
        + int(minutes or 0) * SECONDS_PER_UNIT["m"]
        + int(float(seconds or 0))
    )


def _parse_compact(value: str) -> int:
    compact = re.sub(r"\s+", "", value)
    parts = _COMPACT_PART.findall(compact)

    if not parts:
        raise DurationParseError(
            f"Invalid duration: '{value}'. Use e.g. '7d', '1h30m', '15m' or '30s'"
        )
    if "".join(number + unit for number, unit in parts) != compact:
        raise DurationParseError(
            f"Invalid characters in duration: '{value}'. "
            "Only digits followed by d, h, m or s are allowed"
        )

    return sum(int(number) * SECONDS_PER_UNIT[unit] for number, unit in parts)


def validate_duration_range(
    duration_seconds: int,
    min_seconds: int = 1,
    max_seconds: int = 30 * 86400,
    label: str = "Duration",
) -> None:
    """
    Check a parsed duration against the bounds of one setting.

    Args:
        duration_seconds: Parsed value
        min_seconds: Smallest accepted value
        max_seconds: Largest accepted value
        label: Setting name used in the error message, e.g. "dedup_ttl"

    Raises:
        DurationParseError: If the value falls outside the bounds
    """
    if duration_seconds < min_seconds:
        raise DurationParseError(
            f"{label} too short: {format_duration(duration_seconds)}. "
            f"Minimum is {format_duration(min_seconds)}."
        )
    if duration_seconds > max_seconds:
        raise DurationParseError(
            f"{label} too long: {format_duration(duration_seconds)}. "
            f"Maximum is {format_duration(max_seconds)}."
        )


def format_duration(seconds: int) -> str:
    """
    Render seconds for operators, largest units first.

    Examples:
        >>> format_duration(5400)
        '1 hour 30 minutes'
        >>> format_duration(7 * 86400)
        '7 days'
    """
    if seconds <= 0:
        return "0 seconds"

    parts = []
    remaining = seconds
    for unit, size in SECONDS_PER_UNIT.items():
        count, remaining = divmod(remaining, size)
        if count:
            parts.append(f"{count} {UNIT_NAMES[unit]}{'' if count == 1 else 's'}")
    return " ".join(parts)
