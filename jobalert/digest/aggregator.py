"""Scheduled digest aggregation.

A run moves through Collecting, Dispatching and Cleaning for one frequency
class. Runs of different frequencies may overlap each other; a run of the
same frequency never overlaps itself.
"""

import threading
from datetime import datetime
from typing import Dict, List, Optional, Tuple
from uuid import uuid4

from jobalert.config.models import GatewayConfig
from jobalert.dedup import DedupCache
from jobalert.domain.models import Frequency, Subscription
from jobalert.logging import get_logger, log_context
from jobalert.notifications import NotificationGateway, build_job_alert_payload
from jobalert.persistence import (
    JobRepository,
    PendingMatchRepository,
    SessionFactory,
    SubscriptionRepository,
    get_session,
)
from jobalert.utils.timestamps import Clock, utc_now

from .models import DigestRunResult, GroupResult

logger = get_logger(__name__, component="digest")

DEFAULT_MAX_JOBS_PER_DIGEST = 20


class DigestAggregator:
    """
    Turns pending matches into one outbound digest per (owner, subscription).

    A failure dispatching one group is logged and does not stop the others.
    Cleaning always runs once groups were collected, so pending matches of a
    failed group are not re-aggregated next cycle.
    """

    def __init__(
        self,
        gateway: NotificationGateway,
        gateway_config: Optional[GatewayConfig] = None,
        max_jobs_per_digest: int = DEFAULT_MAX_JOBS_PER_DIGEST,
        dedup_cache: Optional[DedupCache] = None,
        session_factory: SessionFactory = get_session,
        clock: Clock = utc_now,
    ):
        """
        Initialize the aggregator.

        Args:
            gateway: Outbound notification gateway
            gateway_config: Routing keys per frequency
            max_jobs_per_digest: Upper bound on job ids in one payload
            dedup_cache: If given, expired dedup markers are purged on cleaning
            session_factory: Context manager yielding database sessions
            clock: Source of the current UTC time
        """
        if max_jobs_per_digest < 1:
            raise ValueError(f"max_jobs_per_digest must be at least 1, got {max_jobs_per_digest}")

        self.gateway = gateway
        self.gateway_config = gateway_config or GatewayConfig()
        self.max_jobs_per_digest = max_jobs_per_digest
        self.dedup_cache = dedup_cache
        self.session_factory = session_factory
        self.clock = clock
        self._locks: Dict[Frequency, threading.Lock] = {f: threading.Lock() for f in Frequency}

    def is_running(self, frequency: Frequency) -> bool:
        return self._locks[Frequency(frequency)].locked()

    def run(self, frequency: Frequency) -> DigestRunResult:
        """
        Execute one digest run for a frequency class.

        Returns:
            DigestRunResult; ``skipped`` is set when a run of the same
            frequency is still in progress

        Raises:
            No exceptions are raised for group or run failures; they are
            captured in the result.
        """
        frequency = Frequency(frequency)
        result = DigestRunResult(
            frequency=frequency, run_id=uuid4().hex, run_started_at=self.clock()
        )

        lock = self._locks[frequency]
        if not lock.acquire(blocking=False):
            with log_context(run_id=result.run_id, frequency=frequency.value):
                logger.warning(
                    "Digest run skipped: previous run still in progress",
                    extra={"event": "digest.run.skipped", "reason": "lock_held"},
                )
            result.skipped = True
            result.run_finished_at = self.clock()
            return result

        try:
            with log_context(run_id=result.run_id, frequency=frequency.value):
                logger.info("Digest run started", extra={"event": "digest.run.started"})
                self._run_locked(frequency, result)
                result.run_finished_at = self.clock()

                logger.info(
                    "Digest run completed",
                    extra={
                        "event": "digest.run.completed",
                        "duration_ms": int(result.duration_seconds * 1000),
                        "subscription_count": result.subscription_count,
                        "group_count": len(result.groups),
                        "published_count": result.published_count,
                        "failed_count": result.failed_count,
                        "skipped_group_count": result.skipped_group_count,
                        "pending_deleted": result.pending_deleted,
                        "had_errors": result.had_errors,
                    },
                )
                return result
        finally:
            lock.release()

    def _run_locked(self, frequency: Frequency, result: DigestRunResult) -> None:
        try:
            collected_at = self.clock()
            subscriptions, groups = self._collect(frequency, collected_at)
        except Exception as e:
            result.error_message = f"Collecting failed: {e}"
            logger.error(
                f"Digest run aborted while collecting: {e}",
                extra={"event": "digest.run.failed", "stage": "collecting"},
                exc_info=True,
            )
            return

        result.subscription_count = len(subscriptions)
        try:
            for (owner_id, subscription_id), job_ids in groups.items():
                group = GroupResult(
                    owner_id=owner_id,
                    subscription_id=subscription_id,
                    pending_job_ids=job_ids,
                )
                result.groups.append(group)
                self._dispatch(group, subscriptions[subscription_id], frequency)
        except Exception as e:
            result.error_message = f"Dispatching failed: {e}"
            logger.error(
                f"Digest run aborted while dispatching: {e}",
                extra={"event": "digest.run.failed", "stage": "dispatching"},
                exc_info=True,
            )
        finally:
            self._clean(result, [sub_id for _, sub_id in groups], collected_at)

    def _collect(
        self, frequency: Frequency, collected_at: datetime
    ) -> Tuple[Dict[str, Subscription], Dict[Tuple[str, str], List[str]]]:
        """Load active subscriptions of the frequency and group their pending matches."""
        with self.session_factory() as session:
            subscriptions = SubscriptionRepository(session).list_active_by_frequency(frequency)
            by_id = {s.subscription_id: s for s in subscriptions}
            groups = PendingMatchRepository(session).collect_groups(
                by_id.keys(), now=collected_at
            )

        logger.info(
            f"Collected {len(groups)} digest groups from {len(by_id)} active subscriptions",
            extra={
                "event": "digest.collected",
                "subscription_count": len(by_id),
                "group_count": len(groups),
            },
        )
        return by_id, groups

    def _dispatch(
        self, group: GroupResult, subscription: Subscription, frequency: Frequency
    ) -> None:
        with log_context(owner_id=group.owner_id, subscription_id=group.subscription_id):
            try:
                with self.session_factory() as session:
                    jobs = JobRepository(session).get_many(
                        group.pending_job_ids, limit=self.max_jobs_per_digest
                    )
                group.resolved_job_ids = [job.job_id for job in jobs]

                if not group.resolved_job_ids:
                    group.skipped = True
                    logger.warning(
                        "No jobs resolved for digest group, skipping",
                        extra={
                            "event": "digest.group.empty",
                            "pending_job_count": len(group.pending_job_ids),
                        },
                    )
                    return

                payload = build_job_alert_payload(
                    owner_id=group.owner_id,
                    subscription_id=group.subscription_id,
                    job_ids=group.resolved_job_ids,
                    frequency=frequency,
                    delivery_method=subscription.delivery_method,
                    keyword=subscription.keyword,
                )
                self.gateway.publish(self.gateway_config.routing_key_for(frequency), payload)
                group.published = True

            except Exception as e:
                group.error_message = str(e)
                logger.error(
                    f"Failed to dispatch digest for owner {group.owner_id}, "
                    f"subscription {group.subscription_id}: {e}",
                    extra={
                        "event": "digest.group.failed",
                        "error_type": type(e).__name__,
                        "pending_job_count": len(group.pending_job_ids),
                    },
                    exc_info=True,
                )
                return

            logger.info(
                f"Dispatched digest with {len(group.resolved_job_ids)} jobs",
                extra={
                    "event": "digest.group.dispatched",
                    "job_count": len(group.resolved_job_ids),
                    "delivery_method": subscription.delivery_method.value,
                },
            )

            try:
                with self.session_factory() as session:
                    SubscriptionRepository(session).touch_last_notified(
                        group.subscription_id, self.clock()
                    )
            except Exception as e:
                logger.warning(
                    f"Digest published but last_notified_at not updated: {e}",
                    extra={"event": "digest.group.touch_failed", "error_type": type(e).__name__},
                )

    def _clean(self, result: DigestRunResult, subscription_ids: List[str], collected_at) -> None:
        """Delete the run's pending matches by filter and purge expired state."""
        try:
            now = self.clock()
            with self.session_factory() as session:
                repo = PendingMatchRepository(session)
                result.pending_deleted = repo.delete_for_subscriptions(
                    subscription_ids, created_before=collected_at
                )
                result.expired_purged = repo.purge_expired(now)

            if self.dedup_cache is not None:
                result.expired_purged += self.dedup_cache.purge_expired()

        except Exception as e:
            result.error_message = result.error_message or f"Cleaning failed: {e}"
            logger.error(
                f"Digest cleanup failed: {e}",
                extra={"event": "digest.cleanup.failed", "subscription_count": len(subscription_ids)},
                exc_info=True,
            )
            return

        logger.info(
            f"Cleaned up pending matches for {len(subscription_ids)} subscriptions",
            extra={
                "event": "digest.cleaned",
                "subscription_count": len(subscription_ids),
                "pending_deleted": result.pending_deleted,
                "expired_purged": result.expired_purged,
            },
        )
