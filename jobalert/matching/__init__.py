"""Match scoring of jobs against subscriptions.

This module provides:
- MatchScorer: hard filter plus weighted soft score, best-subscription selection
- ScoreBreakdown / OwnerMatch: scoring results
- extract_keywords, salary_matches, filter_checks, passes_hard_filter helpers
"""

from .engine import MatchScorer
from .models import OwnerMatch, ScoreBreakdown
from .utils import extract_keywords, filter_checks, passes_hard_filter, salary_matches

__all__ = [
    "MatchScorer",
    "OwnerMatch",
    "ScoreBreakdown",
    "extract_keywords",
    "filter_checks",
    "passes_hard_filter",
    "salary_matches",
]
