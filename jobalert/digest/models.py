"""Data models for digest run tracking and reporting."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from jobalert.domain.models import Frequency


@dataclass
class GroupResult:
    """
    Outcome for one (owner, subscription) digest group.

    Attributes:
        owner_id: Recipient of the digest
        subscription_id: Subscription the digest was built for
        pending_job_ids: Distinct job ids collected from pending matches
        resolved_job_ids: Job ids that still resolved to catalog documents
        published: Whether the gateway accepted the digest
        skipped: Whether the group was skipped because no job resolved
        error_message: Failure reason if dispatching failed
    """

    owner_id: str
    subscription_id: str
    pending_job_ids: List[str] = field(default_factory=list)
    resolved_job_ids: List[str] = field(default_factory=list)
    published: bool = False
    skipped: bool = False
    error_message: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error_message is not None


@dataclass
class DigestRunResult:
    """
    Aggregate results from one digest run.

    Attributes:
        frequency: Frequency class the run served
        run_id: Identifier shared by all log records of the run
        run_started_at: UTC timestamp when the run began
        run_finished_at: UTC timestamp when the run completed
        subscription_count: Active subscriptions of the frequency
        groups: Per-group outcomes
        pending_deleted: Pending matches removed for the run's subscriptions
        expired_purged: Pending matches and dedup markers purged by TTL
        skipped: Whether the run was skipped (run lock already held)
        error_message: Set when the run aborted before finishing
    """

    frequency: Frequency
    run_id: str
    run_started_at: datetime
    run_finished_at: Optional[datetime] = None
    subscription_count: int = 0
    groups: List[GroupResult] = field(default_factory=list)
    pending_deleted: int = 0
    expired_purged: int = 0
    skipped: bool = False
    error_message: Optional[str] = None

    @property
    def published_count(self) -> int:
        return sum(1 for g in self.groups if g.published)

    @property
    def failed_count(self) -> int:
        return sum(1 for g in self.groups if g.failed)

    @property
    def skipped_group_count(self) -> int:
        return sum(1 for g in self.groups if g.skipped)

    @property
    def had_errors(self) -> bool:
        return self.error_message is not None or self.failed_count > 0

    @property
    def duration_seconds(self) -> float:
        if self.run_finished_at is None:
            return 0.0
        return (self.run_finished_at - self.run_started_at).total_seconds()
