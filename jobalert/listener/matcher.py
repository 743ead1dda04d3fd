"""Turns a publishable job into pending matches.

For one job:
1. Extract lookup keywords from title, skills and leading description words
2. Union the owners registered under those keywords in the index
3. Load those owners' active subscriptions from the store (full current fields)
4. Per owner: skip if already notified, else score all their subscriptions
5. Batch insert-or-ignore one pending match per accepted owner, then mark dedup
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from jobalert.config.models import MatchingConfig
from jobalert.dedup import DedupCache
from jobalert.domain.models import Job, PendingMatch, Subscription
from jobalert.indexing import SubscriptionIndex
from jobalert.logging import get_logger
from jobalert.matching import MatchScorer, extract_keywords
from jobalert.persistence import (
    PendingMatchRepository,
    SessionFactory,
    SubscriptionRepository,
    get_session,
)
from jobalert.utils.timestamps import Clock, expires_at, utc_now

logger = get_logger(__name__, component="matcher")

DEFAULT_PENDING_TTL_SECONDS = 7 * 86400


@dataclass
class MatchOutcome:
    """What happened while matching one job."""

    job_id: str
    keywords: List[str] = field(default_factory=list)
    candidate_owners: List[str] = field(default_factory=list)
    deduplicated_owners: List[str] = field(default_factory=list)
    matches: List[PendingMatch] = field(default_factory=list)
    inserted: int = 0
    skipped_reason: Optional[str] = None

    @property
    def matched_owners(self) -> List[str]:
        return [m.owner_id for m in self.matches]


class JobMatcher:
    """Matches one job against every subscription that could plausibly match."""

    def __init__(
        self,
        index: SubscriptionIndex,
        dedup: DedupCache,
        scorer: Optional[MatchScorer] = None,
        matching_config: Optional[MatchingConfig] = None,
        pending_match_ttl_seconds: int = DEFAULT_PENDING_TTL_SECONDS,
        session_factory: SessionFactory = get_session,
        clock: Clock = utc_now,
    ):
        self.index = index
        self.dedup = dedup
        self.config = matching_config or MatchingConfig()
        self.scorer = scorer or MatchScorer(self.config)
        self.pending_ttl_seconds = pending_match_ttl_seconds
        self.session_factory = session_factory
        self.clock = clock

    def process_job(self, job: Job) -> MatchOutcome:
        """Match a job and record pending matches.

        Raises:
            IndexUnavailableError: If the index cannot be queried
            PersistenceError: If subscriptions cannot be loaded or matches written
        """
        outcome = MatchOutcome(job_id=job.job_id)

        if not job.is_publishable:
            outcome.skipped_reason = "not_publishable"
            return outcome

        outcome.keywords = extract_keywords(
            job,
            description_word_limit=self.config.description_word_limit,
            min_length=self.config.min_keyword_length,
        )
        if not outcome.keywords:
            outcome.skipped_reason = "no_keywords"
            logger.info(
                f"No usable keywords for job {job.job_id}",
                extra={"event": "matcher.no_keywords", "job_id": job.job_id},
            )
            return outcome

        outcome.candidate_owners = sorted(self.index.union(outcome.keywords))
        if not outcome.candidate_owners:
            outcome.skipped_reason = "no_candidates"
            logger.debug(
                f"No subscribers for job {job.job_id}",
                extra={
                    "event": "matcher.no_candidates",
                    "job_id": job.job_id,
                    "keyword_count": len(outcome.keywords),
                },
            )
            return outcome

        by_owner = self._load_subscriptions(outcome.candidate_owners)
        now = self.clock()

        for owner_id in outcome.candidate_owners:
            subscriptions = by_owner.get(owner_id)
            if not subscriptions:
                # index entry is stale; the store has no active subscription
                continue

            if self.dedup.has_been_notified(owner_id, job.job_id):
                outcome.deduplicated_owners.append(owner_id)
                continue

            match = self.scorer.evaluate(job, subscriptions)
            if match is None:
                continue

            outcome.matches.append(
                PendingMatch(
                    owner_id=owner_id,
                    job_id=job.job_id,
                    subscription_id=match.primary_subscription_id,
                    matching_subscription_ids=match.matching_subscription_ids,
                    score=match.score,
                    created_at=now,
                    expires_at=expires_at(now, self.pending_ttl_seconds),
                )
            )

        if outcome.matches:
            self._record(outcome, now)

        logger.info(
            f"Job {job.job_id} matched {len(outcome.matches)} of "
            f"{len(outcome.candidate_owners)} candidate owners",
            extra={
                "event": "matcher.job.processed",
                "job_id": job.job_id,
                "keyword_count": len(outcome.keywords),
                "candidate_count": len(outcome.candidate_owners),
                "deduplicated_count": len(outcome.deduplicated_owners),
                "matched_count": len(outcome.matches),
                "inserted_count": outcome.inserted,
            },
        )
        return outcome

    def _load_subscriptions(self, owner_ids: List[str]) -> Dict[str, List[Subscription]]:
        with self.session_factory() as session:
            subscriptions = SubscriptionRepository(session).list_active_by_owners(owner_ids)

        grouped: Dict[str, List[Subscription]] = defaultdict(list)
        for subscription in subscriptions:
            grouped[subscription.owner_id].append(subscription)
        return grouped

    def _record(self, outcome: MatchOutcome, now: datetime) -> None:
        """Write the batch, then mark dedup for every matched pair.

        Markers are written only after the batch commits, so a failed insert
        leaves nothing that would suppress a retry on a later event. Expired
        rows for the same pairs are cleared in the same transaction, so a
        re-match after the pending TTL is stored rather than ignored.
        """
        with self.session_factory() as session:
            outcome.inserted = PendingMatchRepository(session).insert_ignore(
                outcome.matches, now=now
            )

        ignored = len(outcome.matches) - outcome.inserted
        if ignored:
            logger.info(
                f"{ignored} pending matches already existed for job {outcome.job_id}",
                extra={
                    "event": "matcher.pending.duplicates_ignored",
                    "job_id": outcome.job_id,
                    "ignored_count": ignored,
                },
            )

        try:
            self.dedup.mark_many((m.owner_id, outcome.job_id) for m in outcome.matches)
        except Exception:
            # pending rows are committed; the unique key still blocks duplicates
            logger.warning(
                f"Pending matches written but dedup markers not set for job {outcome.job_id}",
                extra={"event": "matcher.dedup.mark_failed", "job_id": outcome.job_id},
                exc_info=True,
            )
