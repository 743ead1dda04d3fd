"""Deduplication cache for (owner, job) notifications."""

from .cache import DedupCache

__all__ = ["DedupCache"]
