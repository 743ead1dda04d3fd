"""Utility functions for time handling."""

from .timestamps import Clock, ensure_utc, expires_at, utc_now

__all__ = [
    "Clock",
    "utc_now",
    "ensure_utc",
    "expires_at",
]
