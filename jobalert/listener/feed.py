"""Ordered, resumable change feed of the job catalog."""

from abc import ABC, abstractmethod
from typing import List

from jobalert.domain.models import ChangeEvent, JobStatus, ModerationStatus, OperationType
from jobalert.logging import get_logger
from jobalert.persistence import (
    ChangeFeedRepository,
    PersistenceError,
    SessionFactory,
    get_session,
    has_table,
)
from jobalert.utils.timestamps import Clock, utc_now

from .exceptions import ChangeFeedError, ChangeFeedUnavailableError

logger = get_logger(__name__, component="listener")

REQUIRED_TABLES = ("jobs", "job_changes", "change_feed_cursors")


def is_qualifying(event: ChangeEvent) -> bool:
    """Check whether an event may have made a job publishable.

    Three cases qualify:
    - insert of a job that is already approved and active
    - update setting moderation to approved while the job is active
    - update setting status to active while the job is already approved
    """
    job = event.document
    if job is None:
        return False

    if event.operation == OperationType.INSERT:
        return job.is_publishable

    updated = event.updated_fields
    approved_now = updated.get("moderation_status") == ModerationStatus.APPROVED.value
    activated_now = updated.get("status") == JobStatus.ACTIVE.value

    if approved_now and job.status == JobStatus.ACTIVE:
        return True
    if activated_now and job.moderation_status == ModerationStatus.APPROVED:
        return True
    return False


class ChangeFeed(ABC):
    """A durable, ordered stream of job catalog changes.

    Positions are monotonically increasing sequence numbers; a consumer
    resumes by reading strictly after its last saved position.
    """

    @abstractmethod
    def ensure_supported(self) -> None:
        """Verify the feed can be consumed.

        Raises:
            ChangeFeedUnavailableError: If the store has no change feed
        """

    @abstractmethod
    def load_position(self) -> int:
        """Return the saved resume token (0 when starting fresh)."""

    @abstractmethod
    def read(self, after: int, limit: int) -> List[ChangeEvent]:
        """Read up to ``limit`` events strictly after ``after``, in order.

        Raises:
            ChangeFeedError: On read failure
        """

    @abstractmethod
    def save_position(self, sequence: int) -> None:
        """Persist the resume token."""


class SqlChangeFeed(ChangeFeed):
    """Change feed backed by the job_changes table.

    Each event carries the job's current full document, looked up when the
    event is read.
    """

    def __init__(
        self,
        consumer_name: str = "matching-worker",
        session_factory: SessionFactory = get_session,
        clock: Clock = utc_now,
    ):
        self.consumer_name = consumer_name
        self.session_factory = session_factory
        self.clock = clock

    def ensure_supported(self) -> None:
        try:
            with self.session_factory() as session:
                missing = [t for t in REQUIRED_TABLES if not has_table(session, t)]
        except Exception as e:
            raise ChangeFeedUnavailableError(f"Change feed store unreachable: {e}") from e

        if missing:
            raise ChangeFeedUnavailableError(
                f"Change feed not supported: missing tables {', '.join(missing)}"
            )

    def load_position(self) -> int:
        try:
            with self.session_factory() as session:
                return ChangeFeedRepository(session).load_cursor(self.consumer_name)
        except PersistenceError as e:
            raise ChangeFeedError(f"Failed to load resume token: {e}") from e

    def read(self, after: int, limit: int) -> List[ChangeEvent]:
        try:
            with self.session_factory() as session:
                return ChangeFeedRepository(session).read_after(after, limit=limit)
        except PersistenceError as e:
            raise ChangeFeedError(f"Failed to read change feed: {e}") from e

    def save_position(self, sequence: int) -> None:
        try:
            with self.session_factory() as session:
                ChangeFeedRepository(session).save_cursor(
                    self.consumer_name, sequence, self.clock()
                )
        except PersistenceError as e:
            raise ChangeFeedError(f"Failed to save resume token: {e}") from e
