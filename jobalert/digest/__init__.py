"""Digest aggregation: pending matches to outbound job alert digests."""

from .aggregator import DEFAULT_MAX_JOBS_PER_DIGEST, DigestAggregator
from .models import DigestRunResult, GroupResult

__all__ = [
    "DEFAULT_MAX_JOBS_PER_DIGEST",
    "DigestAggregator",
    "DigestRunResult",
    "GroupResult",
]
