"""Scheduling of the daily and weekly digest runs."""

from .service import JOB_IDS, DigestScheduler

__all__ = [
    "DigestScheduler",
    "JOB_IDS",
]
