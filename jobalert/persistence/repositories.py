"""Data access layer (repositories) for persistence operations.

This module provides repository classes for the durable stores. Repositories
encapsulate database operations and return domain models rather than ORM
models. They never commit; the caller's session scope owns the transaction.
"""

import logging
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from jobalert.domain.models import (
    ChangeEvent,
    Frequency,
    Job,
    OperationType,
    PendingMatch,
    Subscription,
)

from .exceptions import DataIntegrityError, PersistenceError, RecordNotFoundError
from .schema import (
    ChangeFeedCursorModel,
    DedupMarkerModel,
    JobChangeModel,
    JobModel,
    PendingMatchModel,
    SubscriptionIndexModel,
    SubscriptionModel,
    _format_datetime,
)

logger = logging.getLogger(__name__)

# Catalog fields whose change is reported in the change feed.
TRACKED_JOB_FIELDS = (
    "title",
    "description",
    "skills",
    "province",
    "district",
    "commune",
    "category",
    "employment_type",
    "work_mode",
    "experience_level",
    "min_salary",
    "max_salary",
    "moderation_status",
    "status",
)


def _dialect_insert(session: Session):
    """Return the dialect-specific insert() supporting ON CONFLICT, or None."""
    dialect = session.get_bind().dialect.name
    if dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert

        return insert
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert

        return insert
    return None


class SubscriptionRepository:
    """Repository for the subscription store (source of truth)."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, subscription_id: str) -> Optional[Subscription]:
        """Retrieve a subscription by id.

        Returns:
            Subscription if found, None otherwise

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            model = self.session.get(SubscriptionModel, subscription_id)
            return model.to_domain() if model else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving subscription {subscription_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve subscription: {e}") from e

    def list_by_owner(self, owner_id: str) -> List[Subscription]:
        """List all subscriptions (active or not) of one owner, oldest first."""
        try:
            stmt = (
                select(SubscriptionModel)
                .where(SubscriptionModel.owner_id == owner_id)
                .order_by(SubscriptionModel.created_at.asc())
            )
            return [m.to_domain() for m in self.session.execute(stmt).scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Error listing subscriptions for owner {owner_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list subscriptions: {e}") from e

    def count_active(self, owner_id: str, exclude_id: Optional[str] = None) -> int:
        """Count an owner's active subscriptions, optionally excluding one."""
        try:
            stmt = select(func.count()).select_from(SubscriptionModel).where(
                SubscriptionModel.owner_id == owner_id,
                SubscriptionModel.active.is_(True),
            )
            if exclude_id:
                stmt = stmt.where(SubscriptionModel.subscription_id != exclude_id)
            return int(self.session.execute(stmt).scalar_one())
        except SQLAlchemyError as e:
            logger.error(f"Error counting active subscriptions for {owner_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to count subscriptions: {e}") from e

    def has_active_keyword(
        self, owner_id: str, keyword: str, exclude_id: Optional[str] = None
    ) -> bool:
        """Check whether an owner has an active subscription with this keyword."""
        try:
            stmt = select(SubscriptionModel.subscription_id).where(
                SubscriptionModel.owner_id == owner_id,
                SubscriptionModel.keyword == keyword,
                SubscriptionModel.active.is_(True),
            )
            if exclude_id:
                stmt = stmt.where(SubscriptionModel.subscription_id != exclude_id)
            return self.session.execute(stmt.limit(1)).first() is not None
        except SQLAlchemyError as e:
            logger.error(f"Error checking keyword {keyword} for owner {owner_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to check subscription keyword: {e}") from e

    def add(self, subscription: Subscription) -> Subscription:
        """Insert a new subscription.

        Raises:
            DataIntegrityError: If the id already exists
            PersistenceError: If database error occurs
        """
        try:
            model = SubscriptionModel.from_domain(subscription)
            self.session.add(model)
            self.session.flush()
            return model.to_domain()
        except IntegrityError as e:
            logger.error(
                f"Integrity error inserting subscription {subscription.subscription_id}: {e}",
                exc_info=True,
            )
            raise DataIntegrityError(f"Failed to insert subscription: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error inserting subscription: {e}", exc_info=True)
            raise PersistenceError(f"Failed to insert subscription: {e}") from e

    def save(self, subscription: Subscription) -> Subscription:
        """Overwrite an existing subscription with the given state.

        Raises:
            RecordNotFoundError: If the subscription doesn't exist
            PersistenceError: If database error occurs
        """
        try:
            model = self.session.get(SubscriptionModel, subscription.subscription_id)
            if model is None:
                raise RecordNotFoundError(
                    f"Subscription {subscription.subscription_id} not found"
                )
            model.apply(subscription)
            self.session.flush()
            return model.to_domain()
        except RecordNotFoundError:
            raise
        except SQLAlchemyError as e:
            logger.error(
                f"Error saving subscription {subscription.subscription_id}: {e}", exc_info=True
            )
            raise PersistenceError(f"Failed to save subscription: {e}") from e

    def delete(self, subscription_id: str, owner_id: str) -> Optional[Subscription]:
        """Delete an owner's subscription and return the deleted record.

        Returns:
            The deleted Subscription, or None if no such subscription for this owner
        """
        try:
            model = self.session.get(SubscriptionModel, subscription_id)
            if model is None or model.owner_id != owner_id:
                return None
            deleted = model.to_domain()
            self.session.delete(model)
            self.session.flush()
            return deleted
        except SQLAlchemyError as e:
            logger.error(f"Error deleting subscription {subscription_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to delete subscription: {e}") from e

    def list_active_by_owners(self, owner_ids: Sequence[str]) -> List[Subscription]:
        """Load every active subscription belonging to any of the owners."""
        if not owner_ids:
            return []
        try:
            stmt = (
                select(SubscriptionModel)
                .where(
                    SubscriptionModel.owner_id.in_(list(owner_ids)),
                    SubscriptionModel.active.is_(True),
                )
                .order_by(SubscriptionModel.owner_id, SubscriptionModel.created_at)
            )
            return [m.to_domain() for m in self.session.execute(stmt).scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Error loading subscriptions for {len(owner_ids)} owners: {e}", exc_info=True)
            raise PersistenceError(f"Failed to load subscriptions: {e}") from e

    def list_active_by_frequency(self, frequency: Frequency) -> List[Subscription]:
        """Load every active subscription with the given digest frequency."""
        try:
            stmt = (
                select(SubscriptionModel)
                .where(
                    SubscriptionModel.frequency == Frequency(frequency).value,
                    SubscriptionModel.active.is_(True),
                )
                .order_by(SubscriptionModel.created_at)
            )
            return [m.to_domain() for m in self.session.execute(stmt).scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Error loading {frequency} subscriptions: {e}", exc_info=True)
            raise PersistenceError(f"Failed to load subscriptions: {e}") from e

    def list_active(self) -> List[Subscription]:
        """Load every active subscription (used to rebuild the index)."""
        try:
            stmt = select(SubscriptionModel).where(SubscriptionModel.active.is_(True))
            return [m.to_domain() for m in self.session.execute(stmt).scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Error loading active subscriptions: {e}", exc_info=True)
            raise PersistenceError(f"Failed to load subscriptions: {e}") from e

    def touch_last_notified(self, subscription_id: str, timestamp: datetime) -> None:
        """Record when a digest was last published for a subscription.

        Raises:
            RecordNotFoundError: If the subscription no longer exists
        """
        try:
            stmt = (
                update(SubscriptionModel)
                .where(SubscriptionModel.subscription_id == subscription_id)
                .values(last_notified_at=_format_datetime(timestamp))
            )
            result = self.session.execute(stmt)
            self.session.flush()
            if result.rowcount == 0:
                raise RecordNotFoundError(f"Subscription {subscription_id} not found")
        except RecordNotFoundError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error updating last_notified_at for {subscription_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to update last_notified_at: {e}") from e


class JobRepository:
    """Repository for the job catalog.

    Every write appends a row to the change feed in the same transaction, so
    the feed is exactly as durable and as ordered as the catalog itself.
    """

    def __init__(self, session: Session):
        self.session = session

    def get(self, job_id: str) -> Optional[Job]:
        try:
            model = self.session.get(JobModel, job_id)
            return model.to_domain() if model else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving job {job_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve job: {e}") from e

    def get_many(self, job_ids: Sequence[str], limit: Optional[int] = None) -> List[Job]:
        """Load existing jobs, keeping the order of ``job_ids`` and capping at ``limit``.

        Ids that no longer resolve are silently skipped.
        """
        if not job_ids:
            return []
        try:
            stmt = select(JobModel).where(JobModel.job_id.in_(list(job_ids)))
            found = {m.job_id: m.to_domain() for m in self.session.execute(stmt).scalars().all()}
        except SQLAlchemyError as e:
            logger.error(f"Error loading {len(job_ids)} jobs: {e}", exc_info=True)
            raise PersistenceError(f"Failed to load jobs: {e}") from e

        jobs = [found[job_id] for job_id in job_ids if job_id in found]
        if limit is not None:
            jobs = jobs[:limit]
        return jobs

    def insert(self, job: Job, recorded_at: datetime) -> Job:
        """Insert a job and append an ``insert`` change event.

        Raises:
            DataIntegrityError: If the job id already exists
        """
        try:
            model = JobModel.from_domain(job)
            if model.created_at is None:
                model.created_at = _format_datetime(recorded_at)
            if model.updated_at is None:
                model.updated_at = _format_datetime(recorded_at)
            self.session.add(model)
            self.session.flush()
            self._append_change(job.job_id, OperationType.INSERT, {}, recorded_at)
            return model.to_domain()
        except IntegrityError as e:
            logger.error(f"Integrity error inserting job {job.job_id}: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to insert job: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error inserting job {job.job_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to insert job: {e}") from e

    def update(self, job_id: str, recorded_at: datetime, **fields: Any) -> Job:
        """Apply field changes to a job and append an ``update`` change event.

        Only fields whose value actually changed are reported in the event's
        ``updated_fields``. Enum values are stored by value.

        Raises:
            RecordNotFoundError: If the job doesn't exist
            ValueError: If an unknown field is given
        """
        unknown = set(fields) - set(TRACKED_JOB_FIELDS)
        if unknown:
            raise ValueError(f"Unknown job fields: {', '.join(sorted(unknown))}")

        try:
            model = self.session.get(JobModel, job_id)
            if model is None:
                raise RecordNotFoundError(f"Job {job_id} not found")

            changed: Dict[str, Any] = {}
            for name, value in fields.items():
                stored = getattr(value, "value", value)
                if getattr(model, name) != stored:
                    setattr(model, name, stored)
                    changed[name] = stored

            model.updated_at = _format_datetime(recorded_at)
            self.session.flush()
            self._append_change(job_id, OperationType.UPDATE, changed, recorded_at)
            return model.to_domain()
        except RecordNotFoundError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error updating job {job_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to update job: {e}") from e

    def _append_change(
        self,
        job_id: str,
        operation: OperationType,
        updated_fields: Dict[str, Any],
        recorded_at: datetime,
    ) -> None:
        self.session.add(
            JobChangeModel(
                job_id=job_id,
                operation=operation.value,
                updated_fields=updated_fields,
                recorded_at=_format_datetime(recorded_at),
            )
        )
        self.session.flush()


class ChangeFeedRepository:
    """Repository for reading the change feed and persisting resume tokens."""

    def __init__(self, session: Session):
        self.session = session

    def read_after(self, sequence: int, limit: int = 100) -> List[ChangeEvent]:
        """Read events strictly after ``sequence``, in order.

        Each event carries the current full job document (looked up at read
        time), or None if the job has since been removed.
        """
        try:
            stmt = (
                select(JobChangeModel, JobModel)
                .outerjoin(JobModel, JobModel.job_id == JobChangeModel.job_id)
                .where(JobChangeModel.sequence > sequence)
                .order_by(JobChangeModel.sequence.asc())
                .limit(limit)
            )
            events = []
            for change, job in self.session.execute(stmt).all():
                document = job.to_domain() if job is not None else None
                events.append(change.to_domain(document))
            return events
        except SQLAlchemyError as e:
            logger.error(f"Error reading change feed after {sequence}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to read change feed: {e}") from e

    def load_cursor(self, consumer: str) -> int:
        """Return the last processed sequence for a consumer (0 if none)."""
        try:
            model = self.session.get(ChangeFeedCursorModel, consumer)
            return model.last_sequence if model else 0
        except SQLAlchemyError as e:
            logger.error(f"Error loading cursor for {consumer}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to load change feed cursor: {e}") from e

    def save_cursor(self, consumer: str, sequence: int, timestamp: datetime) -> None:
        """Persist a resume token. The cursor never moves backwards."""
        try:
            model = self.session.get(ChangeFeedCursorModel, consumer)
            if model is None:
                self.session.add(
                    ChangeFeedCursorModel(
                        consumer=consumer,
                        last_sequence=sequence,
                        updated_at=_format_datetime(timestamp),
                    )
                )
            elif sequence > model.last_sequence:
                model.last_sequence = sequence
                model.updated_at = _format_datetime(timestamp)
            self.session.flush()
        except SQLAlchemyError as e:
            logger.error(f"Error saving cursor for {consumer}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to save change feed cursor: {e}") from e


class PendingMatchRepository:
    """Repository for pending matches awaiting digest aggregation."""

    def __init__(self, session: Session):
        self.session = session

    def insert_ignore(
        self, matches: Sequence[PendingMatch], now: Optional[datetime] = None
    ) -> int:
        """Batch insert pending matches, ignoring (owner, job) duplicates.

        Args:
            matches: Matches to insert
            now: If set, expired rows for the batch's owners and jobs are
                deleted first so they cannot block a fresh match

        Returns:
            Number of rows actually inserted
        """
        if not matches:
            return 0

        rows = [PendingMatchModel.row_from_domain(m) for m in matches]
        insert = _dialect_insert(self.session)

        try:
            if now is not None:
                self.session.execute(
                    delete(PendingMatchModel).where(
                        PendingMatchModel.owner_id.in_(sorted({m.owner_id for m in matches})),
                        PendingMatchModel.job_id.in_(sorted({m.job_id for m in matches})),
                        PendingMatchModel.expires_at <= _format_datetime(now),
                    )
                )

            if insert is not None:
                stmt = insert(PendingMatchModel).values(rows).on_conflict_do_nothing(
                    index_elements=["owner_id", "job_id"]
                )
                result = self.session.execute(stmt)
                self.session.flush()
                return max(result.rowcount or 0, 0)

            inserted = 0
            for row in rows:
                try:
                    with self.session.begin_nested():
                        self.session.add(PendingMatchModel(**row))
                    inserted += 1
                except IntegrityError:
                    logger.debug(
                        f"Pending match already exists for owner {row['owner_id']}, job {row['job_id']}"
                    )
            return inserted

        except SQLAlchemyError as e:
            logger.error(f"Error inserting {len(rows)} pending matches: {e}", exc_info=True)
            raise PersistenceError(f"Failed to insert pending matches: {e}") from e

    def collect_groups(
        self, subscription_ids: Iterable[str], now: Optional[datetime] = None
    ) -> Dict[Tuple[str, str], List[str]]:
        """Group pending matches by (owner, subscription).

        Args:
            subscription_ids: Subscriptions to collect
            now: If set, matches expired at this instant are left out

        Returns:
            Mapping of (owner_id, subscription_id) to distinct job ids, oldest
            match first
        """
        ids = list(subscription_ids)
        if not ids:
            return {}
        try:
            stmt = (
                select(
                    PendingMatchModel.owner_id,
                    PendingMatchModel.subscription_id,
                    PendingMatchModel.job_id,
                )
                .where(PendingMatchModel.subscription_id.in_(ids))
                .order_by(PendingMatchModel.created_at.asc(), PendingMatchModel.id.asc())
            )
            if now is not None:
                stmt = stmt.where(PendingMatchModel.expires_at > _format_datetime(now))
            groups: Dict[Tuple[str, str], List[str]] = defaultdict(list)
            for owner_id, subscription_id, job_id in self.session.execute(stmt).all():
                job_ids = groups[(owner_id, subscription_id)]
                if job_id not in job_ids:
                    job_ids.append(job_id)
            return dict(groups)
        except SQLAlchemyError as e:
            logger.error(f"Error collecting pending matches: {e}", exc_info=True)
            raise PersistenceError(f"Failed to collect pending matches: {e}") from e

    def list_for_owner(self, owner_id: str) -> List[PendingMatch]:
        try:
            stmt = (
                select(PendingMatchModel)
                .where(PendingMatchModel.owner_id == owner_id)
                .order_by(PendingMatchModel.created_at.asc())
            )
            return [m.to_domain() for m in self.session.execute(stmt).scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Error listing pending matches for owner {owner_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list pending matches: {e}") from e

    def delete_for_subscriptions(
        self, subscription_ids: Iterable[str], created_before: Optional[datetime] = None
    ) -> int:
        """Delete every pending match of the given subscriptions (by filter).

        Args:
            subscription_ids: Subscriptions whose matches are removed
            created_before: If set, only matches created at or before this
                instant are removed
        """
        ids = list(subscription_ids)
        if not ids:
            return 0
        stmt = delete(PendingMatchModel).where(PendingMatchModel.subscription_id.in_(ids))
        if created_before is not None:
            stmt = stmt.where(PendingMatchModel.created_at <= _format_datetime(created_before))
        try:
            result = self.session.execute(stmt)
            self.session.flush()
            return result.rowcount
        except SQLAlchemyError as e:
            logger.error(f"Error deleting pending matches: {e}", exc_info=True)
            raise PersistenceError(f"Failed to delete pending matches: {e}") from e

    def purge_expired(self, now: datetime) -> int:
        """Delete pending matches whose time-to-live has elapsed."""
        try:
            result = self.session.execute(
                delete(PendingMatchModel).where(
                    PendingMatchModel.expires_at <= _format_datetime(now)
                )
            )
            self.session.flush()
            deleted_count = result.rowcount
            if deleted_count:
                logger.info(f"Purged {deleted_count} expired pending matches")
            return deleted_count
        except SQLAlchemyError as e:
            logger.error(f"Error purging expired pending matches: {e}", exc_info=True)
            raise PersistenceError(f"Failed to purge pending matches: {e}") from e


class DedupMarkerRepository:
    """Repository for (owner, job) dedup markers with fixed expiry."""

    def __init__(self, session: Session):
        self.session = session

    def exists(self, owner_id: str, job_id: str, now: datetime) -> bool:
        """Check for an unexpired marker."""
        try:
            stmt = select(DedupMarkerModel.owner_id).where(
                DedupMarkerModel.owner_id == owner_id,
                DedupMarkerModel.job_id == job_id,
                DedupMarkerModel.expires_at > _format_datetime(now),
            )
            return self.session.execute(stmt).first() is not None
        except SQLAlchemyError as e:
            logger.error(f"Error checking dedup marker {owner_id}/{job_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to check dedup marker: {e}") from e

    def upsert(
        self, pairs: Sequence[Tuple[str, str]], marked_at: datetime, expires_at: datetime
    ) -> None:
        """Set (or refresh) markers for each (owner, job) pair."""
        if not pairs:
            return
        marked = _format_datetime(marked_at)
        expires = _format_datetime(expires_at)
        rows = [
            {"owner_id": owner_id, "job_id": job_id, "marked_at": marked, "expires_at": expires}
            for owner_id, job_id in dict.fromkeys(pairs)
        ]
        insert = _dialect_insert(self.session)

        try:
            if insert is not None:
                stmt = insert(DedupMarkerModel).values(rows)
                stmt = stmt.on_conflict_do_update(
                    index_elements=["owner_id", "job_id"],
                    set_={
                        "marked_at": stmt.excluded.marked_at,
                        "expires_at": stmt.excluded.expires_at,
                    },
                )
                self.session.execute(stmt)
            else:
                for row in rows:
                    self.session.merge(DedupMarkerModel(**row))
            self.session.flush()
        except SQLAlchemyError as e:
            logger.error(f"Error writing {len(rows)} dedup markers: {e}", exc_info=True)
            raise PersistenceError(f"Failed to write dedup markers: {e}") from e

    def purge_expired(self, now: datetime) -> int:
        try:
            result = self.session.execute(
                delete(DedupMarkerModel).where(
                    DedupMarkerModel.expires_at <= _format_datetime(now)
                )
            )
            self.session.flush()
            return result.rowcount
        except SQLAlchemyError as e:
            logger.error(f"Error purging dedup markers: {e}", exc_info=True)
            raise PersistenceError(f"Failed to purge dedup markers: {e}") from e


class SubscriptionIndexRepository:
    """Repository for the shared keyword -> owner set index."""

    def __init__(self, session: Session):
        self.session = session

    def add(self, keyword: str, owner_id: str) -> None:
        """Register an owner under a keyword; adding twice is a no-op."""
        row = {"keyword": keyword, "owner_id": owner_id}
        insert = _dialect_insert(self.session)
        try:
            if insert is not None:
                self.session.execute(
                    insert(SubscriptionIndexModel)
                    .values(row)
                    .on_conflict_do_nothing(index_elements=["keyword", "owner_id"])
                )
            else:
                self.session.merge(SubscriptionIndexModel(**row))
            self.session.flush()
        except SQLAlchemyError as e:
            logger.error(f"Error adding {owner_id} under '{keyword}': {e}", exc_info=True)
            raise PersistenceError(f"Failed to update subscription index: {e}") from e

    def remove(self, keyword: str, owner_id: str) -> None:
        try:
            self.session.execute(
                delete(SubscriptionIndexModel).where(
                    SubscriptionIndexModel.keyword == keyword,
                    SubscriptionIndexModel.owner_id == owner_id,
                )
            )
            self.session.flush()
        except SQLAlchemyError as e:
            logger.error(f"Error removing {owner_id} from '{keyword}': {e}", exc_info=True)
            raise PersistenceError(f"Failed to update subscription index: {e}") from e

    def owners_for(self, keywords: Sequence[str]) -> Set[str]:
        """Distinct owners registered under any of the keywords."""
        if not keywords:
            return set()
        try:
            stmt = (
                select(SubscriptionIndexModel.owner_id)
                .where(SubscriptionIndexModel.keyword.in_(list(keywords)))
                .distinct()
            )
            return set(self.session.execute(stmt).scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Error reading subscription index: {e}", exc_info=True)
            raise PersistenceError(f"Failed to read subscription index: {e}") from e

    def keywords(self) -> List[str]:
        try:
            stmt = (
                select(SubscriptionIndexModel.keyword)
                .distinct()
                .order_by(SubscriptionIndexModel.keyword.asc())
            )
            return list(self.session.execute(stmt).scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Error listing index keywords: {e}", exc_info=True)
            raise PersistenceError(f"Failed to read subscription index: {e}") from e

    def mapping(self) -> Dict[str, Set[str]]:
        """The whole index as keyword -> owners."""
        try:
            stmt = select(SubscriptionIndexModel.keyword, SubscriptionIndexModel.owner_id)
            sets: Dict[str, Set[str]] = defaultdict(set)
            for keyword, owner_id in self.session.execute(stmt).all():
                sets[keyword].add(owner_id)
            return dict(sets)
        except SQLAlchemyError as e:
            logger.error(f"Error reading subscription index: {e}", exc_info=True)
            raise PersistenceError(f"Failed to read subscription index: {e}") from e

    def replace_all(self, pairs: Iterable[Tuple[str, str]]) -> int:
        """Delete every entry and insert ``pairs`` in the caller's transaction.

        Returns:
            Number of entries written
        """
        rows = [
            {"keyword": keyword, "owner_id": owner_id}
            for keyword, owner_id in dict.fromkeys(pairs)
        ]
        try:
            self.session.execute(delete(SubscriptionIndexModel))
            if rows:
                self.session.execute(insert(SubscriptionIndexModel), rows)
            self.session.flush()
            return len(rows)
        except SQLAlchemyError as e:
            logger.error(f"Error replacing subscription index: {e}", exc_info=True)
            raise PersistenceError(f"Failed to replace subscription index: {e}") from e
