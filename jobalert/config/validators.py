"""Additional validation utilities for configuration."""

import warnings
from typing import Any, Dict, List

from .duration import DurationParseError, format_duration, parse_duration


def _seconds(value: Any, default: str) -> int:
    try:
        return parse_duration(value if isinstance(value, str) else default)
    except DurationParseError:
        return parse_duration(default)


def check_for_warnings(config_dict: Dict[str, Any]) -> List[str]:
    """
    Check configuration for potential issues and return warnings.

    Args:
        config_dict: Raw configuration dictionary

    Returns:
        List of warning messages
    """
    warning_messages = []

    limits = config_dict.get("limits", {})
    if isinstance(limits, dict):
        dedup = _seconds(limits.get("dedup_ttl"), "7d")
        pending = _seconds(limits.get("pending_match_ttl"), "7d")
        if pending < 7 * 86400:
            warning_messages.append(
                f"pending_match_ttl ({format_duration(pending)}) is shorter than a week; "
                "weekly digests may miss matches"
            )
        if dedup < pending:
            warning_messages.append(
                f"dedup_ttl ({format_duration(dedup)}) is shorter than pending_match_ttl "
                f"({format_duration(pending)}); a job may be matched twice "
                "for the same owner before its first match is aggregated"
            )

        max_jobs = limits.get("max_jobs_per_digest", 20)
        if isinstance(max_jobs, int) and max_jobs > 100:
            warning_messages.append(
                f"Large max_jobs_per_digest ({max_jobs}) may produce oversized notifications"
            )

    matching = config_dict.get("matching", {})
    if isinstance(matching, dict):
        filter_weight = matching.get("filter_weight", 30)
        threshold = matching.get("acceptance_threshold", 30)
        if (
            isinstance(filter_weight, int)
            and isinstance(threshold, int)
            and filter_weight > threshold
        ):
            warning_messages.append(
                f"filter_weight ({filter_weight}) exceeds acceptance_threshold ({threshold}); "
                "jobs will match without any keyword signal"
            )

    listener = config_dict.get("listener", {})
    if isinstance(listener, dict):
        batch_size = listener.get("batch_size", 100)
        if isinstance(batch_size, int) and batch_size > 1000:
            warning_messages.append(
                f"Large listener batch_size ({batch_size}) delays resume-token persistence"
            )

    return warning_messages


def emit_warnings(warning_messages: List[str]) -> None:
    """
    Emit warning messages using Python's warnings module.

    Args:
        warning_messages: List of warning messages to emit
    """
    for message in warning_messages:
        warnings.warn(message, UserWarning, stacklevel=2)
