"""Relevance scoring of jobs against subscriptions.

Each (job, subscription) pair goes through two stages:
1. Hard filter: every criterion field must match (wildcards always do)
2. Soft score: keyword signals in title, skills and description, a flat
   filter weight, and a bonus for an exact category match

A pair is accepted only when its score is strictly greater than the
acceptance threshold, so a filter match alone never qualifies.
"""

import logging
from typing import Iterable, Optional

from jobalert.config.models import MatchingConfig
from jobalert.domain.filters import FieldFilter
from jobalert.domain.models import Job, Subscription

from .models import OwnerMatch, ScoreBreakdown
from .utils import filter_checks

logger = logging.getLogger(__name__)


class MatchScorer:
    """Scores jobs against subscriptions using configurable weights."""

    def __init__(
        self,
        matching_config: Optional[MatchingConfig] = None,
        logger_instance: Optional[logging.Logger] = None,
    ):
        self.config = matching_config or MatchingConfig()
        self.logger = logger_instance or logger

    def score(self, job: Job, subscription: Subscription) -> ScoreBreakdown:
        """Score a single (job, subscription) pair.

        Returns:
            ScoreBreakdown; score 0 and not accepted if the hard filter fails
        """
        checks = filter_checks(job, subscription)
        failed = tuple(name for name, ok in checks.items() if not ok)
        if failed:
            return ScoreBreakdown(
                subscription_id=subscription.subscription_id,
                passed_filter=False,
                failed_fields=failed,
            )

        keyword = subscription.keyword.lower()
        in_title = keyword in job.title.lower()
        in_skills = any(keyword in skill.lower() for skill in job.skills)
        in_description = keyword in job.description.lower()

        category_filter = FieldFilter.parse(subscription.category)
        category_exact = not category_filter.is_wildcard and category_filter.matches(job.category)

        total = self.config.filter_weight
        if in_title:
            total += self.config.title_weight
        if in_skills:
            total += self.config.skill_weight
        if in_description:
            total += self.config.description_weight
        if category_exact:
            total += self.config.category_bonus

        return ScoreBreakdown(
            subscription_id=subscription.subscription_id,
            passed_filter=True,
            in_title=in_title,
            in_skills=in_skills,
            in_description=in_description,
            category_exact=category_exact,
            score=total,
            accepted=total > self.config.acceptance_threshold,
        )

    def evaluate(
        self, job: Job, subscriptions: Iterable[Subscription]
    ) -> Optional[OwnerMatch]:
        """Score a job against all active subscriptions of one owner.

        The primary subscription is the highest-scoring accepted one; on a tie
        the first evaluated keeps its place.

        Args:
            job: Publishable job to evaluate
            subscriptions: Active subscriptions of a single owner

        Returns:
            OwnerMatch, or None if no subscription was accepted
        """
        owner_id: Optional[str] = None
        best: Optional[ScoreBreakdown] = None
        accepted_ids = []
        breakdowns = {}

        for subscription in subscriptions:
            if not subscription.active:
                continue
            owner_id = owner_id or subscription.owner_id
            breakdown = self.score(job, subscription)
            breakdowns[subscription.subscription_id] = breakdown

            if not breakdown.accepted:
                continue
            accepted_ids.append(subscription.subscription_id)
            if best is None or breakdown.score > best.score:
                best = breakdown

        if best is None:
            self.logger.debug(
                f"Job {job.job_id} did not match owner {owner_id}",
                extra={
                    "event": "matching.owner.rejected",
                    "job_id": job.job_id,
                    "owner_id": owner_id,
                    "evaluated": len(breakdowns),
                },
            )
            return None

        self.logger.debug(
            f"Job {job.job_id} matched owner {owner_id} (score: {best.score})",
            extra={
                "event": "matching.owner.accepted",
                "job_id": job.job_id,
                "owner_id": owner_id,
                "subscription_id": best.subscription_id,
                "score": best.score,
                "accepted_count": len(accepted_ids),
            },
        )
        return OwnerMatch(
            owner_id=owner_id,
            job_id=job.job_id,
            primary_subscription_id=best.subscription_id,
            score=best.score,
            matching_subscription_ids=accepted_ids,
            breakdowns=breakdowns,
        )
