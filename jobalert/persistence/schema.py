"""Database schema definition and ORM models.

This module defines SQLAlchemy ORM models for the durable stores and provides
conversion methods between ORM models and domain models:
- subscriptions: source of truth for alert criteria
- jobs / job_changes: the job catalog and its ordered change feed
- change_feed_cursors: resume tokens per feed consumer
- pending_matches: matches awaiting digest aggregation
- dedup_markers: time-bounded "already notified" markers
- subscription_index: keyword -> owner sets shared by every process
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

from jobalert.domain.models import (
    ChangeEvent,
    Job,
    JobLocation,
    LocationFilter,
    PendingMatch,
    Subscription,
)

logger = logging.getLogger(__name__)

Base = declarative_base()

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


class SubscriptionModel(Base):
    """ORM model for subscriptions table."""

    __tablename__ = "subscriptions"

    subscription_id = Column(String(64), primary_key=True, nullable=False)
    owner_id = Column(String(64), nullable=False)
    keyword = Column(String(100), nullable=False)

    province = Column(String(100), nullable=False, default="ALL")
    district = Column(String(100), nullable=True)
    commune = Column(String(100), nullable=True)
    category = Column(String(100), nullable=False, default="ALL")
    employment_type = Column(String(50), nullable=False, default="ALL")
    work_mode = Column(String(50), nullable=False, default="ALL")
    experience_level = Column(String(50), nullable=False, default="ALL")
    salary_bucket = Column(String(20), nullable=False, default="ALL")

    frequency = Column(String(10), nullable=False)
    delivery_method = Column(String(10), nullable=False)
    active = Column(Boolean, nullable=False, default=True)

    last_notified_at = Column(String(50), nullable=True)
    created_at = Column(String(50), nullable=False)
    updated_at = Column(String(50), nullable=False)

    __table_args__ = (
        Index("idx_subscriptions_owner_active", "owner_id", "active"),
        Index("idx_subscriptions_frequency_active", "frequency", "active"),
        Index("idx_subscriptions_keyword", "keyword"),
    )

    def to_domain(self) -> Subscription:
        return Subscription(
            subscription_id=self.subscription_id,
            owner_id=self.owner_id,
            keyword=self.keyword,
            location=LocationFilter(
                province=self.province,
                district=self.district,
                commune=self.commune,
            ),
            category=self.category,
            employment_type=self.employment_type,
            work_mode=self.work_mode,
            experience_level=self.experience_level,
            salary_bucket=self.salary_bucket,
            frequency=self.frequency,
            delivery_method=self.delivery_method,
            active=self.active,
            last_notified_at=_parse_datetime(self.last_notified_at),
            created_at=_parse_datetime(self.created_at),
            updated_at=_parse_datetime(self.updated_at),
        )

    @classmethod
    def from_domain(cls, subscription: Subscription) -> "SubscriptionModel":
        model = cls(subscription_id=subscription.subscription_id)
        model.apply(subscription)
        return model

    def apply(self, subscription: Subscription) -> None:
        """Copy every mutable field from the domain model onto this row."""
        self.owner_id = subscription.owner_id
        self.keyword = subscription.keyword
        self.province = subscription.location.province
        self.district = subscription.location.district
        self.commune = subscription.location.commune
        self.category = subscription.category
        self.employment_type = subscription.employment_type
        self.work_mode = subscription.work_mode
        self.experience_level = subscription.experience_level
        self.salary_bucket = subscription.salary_bucket.value
        self.frequency = subscription.frequency.value
        self.delivery_method = subscription.delivery_method.value
        self.active = subscription.active
        self.last_notified_at = _format_datetime(subscription.last_notified_at)
        self.created_at = _format_datetime(subscription.created_at)
        self.updated_at = _format_datetime(subscription.updated_at)


class JobModel(Base):
    """ORM model for jobs table (the job catalog)."""

    __tablename__ = "jobs"

    job_id = Column(String(64), primary_key=True, nullable=False)

    title = Column(Text, nullable=False)
    description = Column(Text, nullable=False, default="")
    skills = Column(JSON, nullable=False, default=list)

    province = Column(String(100), nullable=True)
    district = Column(String(100), nullable=True)
    commune = Column(String(100), nullable=True)
    category = Column(String(100), nullable=True)
    employment_type = Column(String(50), nullable=True)
    work_mode = Column(String(50), nullable=True)
    experience_level = Column(String(50), nullable=True)
    min_salary = Column(Float, nullable=True)
    max_salary = Column(Float, nullable=True)

    moderation_status = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False)

    created_at = Column(String(50), nullable=False)
    updated_at = Column(String(50), nullable=False)

    __table_args__ = (Index("idx_jobs_publishable", "moderation_status", "status"),)

    def to_domain(self) -> Job:
        return Job(
            job_id=self.job_id,
            title=self.title,
            description=self.description,
            skills=list(self.skills or []),
            location=JobLocation(
                province=self.province,
                district=self.district,
                commune=self.commune,
            ),
            category=self.category,
            employment_type=self.employment_type,
            work_mode=self.work_mode,
            experience_level=self.experience_level,
            min_salary=self.min_salary,
            max_salary=self.max_salary,
            moderation_status=self.moderation_status,
            status=self.status,
            created_at=_parse_datetime(self.created_at),
            updated_at=_parse_datetime(self.updated_at),
        )

    @classmethod
    def from_domain(cls, job: Job) -> "JobModel":
        return cls(
            job_id=job.job_id,
            title=job.title,
            description=job.description,
            skills=list(job.skills),
            province=job.location.province,
            district=job.location.district,
            commune=job.location.commune,
            category=job.category,
            employment_type=job.employment_type,
            work_mode=job.work_mode,
            experience_level=job.experience_level,
            min_salary=job.min_salary,
            max_salary=job.max_salary,
            moderation_status=job.moderation_status.value,
            status=job.status.value,
            created_at=_format_datetime(job.created_at),
            updated_at=_format_datetime(job.updated_at),
        )


class JobChangeModel(Base):
    """ORM model for job_changes table.

    Append-only, ordered by ``sequence``. Written in the same transaction as
    the catalog mutation it describes.
    """

    __tablename__ = "job_changes"

    sequence = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(String(64), nullable=False)
    operation = Column(String(10), nullable=False)
    updated_fields = Column(JSON, nullable=False, default=dict)
    recorded_at = Column(String(50), nullable=False)

    __table_args__ = (Index("idx_job_changes_job", "job_id"),)

    def to_domain(self, document: Optional[Job] = None) -> ChangeEvent:
        return ChangeEvent(
            sequence=self.sequence,
            job_id=self.job_id,
            operation=self.operation,
            updated_fields=dict(self.updated_fields or {}),
            document=document,
            recorded_at=_parse_datetime(self.recorded_at),
        )


class ChangeFeedCursorModel(Base):
    """ORM model for change_feed_cursors table (resume token per consumer)."""

    __tablename__ = "change_feed_cursors"

    consumer = Column(String(100), primary_key=True, nullable=False)
    last_sequence = Column(Integer, nullable=False, default=0)
    updated_at = Column(String(50), nullable=False)


class PendingMatchModel(Base):
    """ORM model for pending_matches table.

    At most one row per (owner, job); duplicates are ignored on insert.
    """

    __tablename__ = "pending_matches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(String(64), nullable=False)
    job_id = Column(String(64), nullable=False)
    subscription_id = Column(String(64), nullable=False)
    matching_subscription_ids = Column(JSON, nullable=False, default=list)
    score = Column(Integer, nullable=False, default=0)
    created_at = Column(String(50), nullable=False)
    expires_at = Column(String(50), nullable=False)

    __table_args__ = (
        UniqueConstraint("owner_id", "job_id", name="uq_pending_matches_owner_job"),
        Index("idx_pending_matches_subscription", "subscription_id"),
        Index("idx_pending_matches_expires", "expires_at"),
    )

    def to_domain(self) -> PendingMatch:
        return PendingMatch(
            owner_id=self.owner_id,
            job_id=self.job_id,
            subscription_id=self.subscription_id,
            matching_subscription_ids=list(self.matching_subscription_ids or []),
            score=self.score,
            created_at=_parse_datetime(self.created_at),
            expires_at=_parse_datetime(self.expires_at),
        )

    @staticmethod
    def row_from_domain(match: PendingMatch) -> dict:
        """Build an insert row (used by bulk insert-or-ignore)."""
        return {
            "owner_id": match.owner_id,
            "job_id": match.job_id,
            "subscription_id": match.subscription_id,
            "matching_subscription_ids": list(match.matching_subscription_ids),
            "score": match.score,
            "created_at": _format_datetime(match.created_at),
            "expires_at": _format_datetime(match.expires_at),
        }


class DedupMarkerModel(Base):
    """ORM model for dedup_markers table."""

    __tablename__ = "dedup_markers"

    owner_id = Column(String(64), primary_key=True, nullable=False)
    job_id = Column(String(64), primary_key=True, nullable=False)
    marked_at = Column(String(50), nullable=False)
    expires_at = Column(String(50), nullable=False)

    __table_args__ = (Index("idx_dedup_markers_expires", "expires_at"),)


class SubscriptionIndexModel(Base):
    """ORM model for subscription_index table (keyword -> owner set)."""

    __tablename__ = "subscription_index"

    keyword = Column(String(100), primary_key=True, nullable=False)
    owner_id = Column(String(64), primary_key=True, nullable=False)

    __table_args__ = (Index("idx_subscription_index_owner", "owner_id"),)


def _format_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Format datetime as ISO 8601 string for database storage.

    The fixed-width format sorts lexicographically, so string comparison in
    queries is chronological.
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)

    return dt.strftime(TIMESTAMP_FORMAT)


def _parse_datetime(dt_str: Optional[str]) -> Optional[datetime]:
    """Parse ISO 8601 string to a timezone-aware UTC datetime."""
    if dt_str is None or dt_str == "":
        return None

    dt_str = dt_str.rstrip("Z")

    try:
        dt = datetime.strptime(dt_str, "%Y-%m-%dT%H:%M:%S.%f")
    except ValueError:
        dt = datetime.strptime(dt_str, "%Y-%m-%dT%H:%M:%S")

    return dt.replace(tzinfo=timezone.utc)


def create_schema(engine: Engine) -> None:
    """Create all tables and indexes if they don't exist (idempotent)."""
    logger.info("Creating database schema if not exists")

    try:
        Base.metadata.create_all(engine, checkfirst=True)

        from sqlalchemy import inspect

        inspector = inspect(engine)
        tables = inspector.get_table_names()
        logger.info(f"Database schema ready. Tables: {', '.join(tables)}")

    except Exception as e:
        logger.error(f"Failed to create database schema: {e}", exc_info=True)
        raise
