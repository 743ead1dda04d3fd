"""Data models for the match scorer."""

from dataclasses import dataclass, field
from typing import Dict, List


@dataclass(frozen=True)
class ScoreBreakdown:
    """Score of one (job, subscription) pair.

    Attributes:
        subscription_id: Subscription that was scored
        passed_filter: Whether every hard-filter field matched
        in_title / in_skills / in_description: Keyword signals (independent)
        category_exact: Subscription names a specific category and the job has it
        score: Total soft score; 0 when the hard filter fails
        accepted: score is strictly greater than the acceptance threshold
        failed_fields: Hard-filter fields that did not match
    """

    subscription_id: str
    passed_filter: bool
    in_title: bool = False
    in_skills: bool = False
    in_description: bool = False
    category_exact: bool = False
    score: int = 0
    accepted: bool = False
    failed_fields: tuple = ()


@dataclass
class OwnerMatch:
    """Result of scoring one job against all of an owner's active subscriptions.

    Attributes:
        owner_id: Candidate the subscriptions belong to
        job_id: Job that was evaluated
        primary_subscription_id: Highest-scoring accepted subscription
        score: Score of the primary subscription
        matching_subscription_ids: Every accepted subscription, in evaluation order
        breakdowns: Score of every evaluated subscription, keyed by id
    """

    owner_id: str
    job_id: str
    primary_subscription_id: str
    score: int
    matching_subscription_ids: List[str] = field(default_factory=list)
    breakdowns: Dict[str, ScoreBreakdown] = field(default_factory=dict)
