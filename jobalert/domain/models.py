"""Core domain models for subscriptions, jobs and matches.

This module defines the data structures used throughout the engine:
- Subscription: a candidate's saved alert criteria (source of truth record)
- SubscriptionDraft / SubscriptionChanges: create and partial-update payloads
- Job: read-only view of a job posting from the catalog
- PendingMatch: a job that matched an owner, awaiting digest aggregation
- ChangeEvent: one entry of the job catalog change feed
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from jobalert.utils.timestamps import ensure_utc

from .filters import WILDCARD, FieldFilter

SALARY_FLOOR = 0.0
SALARY_CEILING = 999_999_999.0


class Frequency(str, Enum):
    """Digest delivery cadence."""

    DAILY = "daily"
    WEEKLY = "weekly"


class DeliveryMethod(str, Enum):
    """Channel(s) the downstream consumer should deliver a digest on."""

    EMAIL = "email"
    IN_APP = "in-app"
    BOTH = "both"


class SalaryBucket(str, Enum):
    """Enumerated salary ranges a subscription can filter on."""

    ALL = "ALL"
    UNDER_10M = "UNDER_10M"
    FROM_10M_TO_20M = "10M_20M"
    FROM_20M_TO_30M = "20M_30M"
    OVER_30M = "OVER_30M"


class ModerationStatus(str, Enum):
    """Moderation state of a job posting."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    NEUTRAL = "NEUTRAL"


class JobStatus(str, Enum):
    """Publish state of a job posting."""

    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    EXPIRED = "EXPIRED"


class OperationType(str, Enum):
    """Kind of mutation recorded in the change feed."""

    INSERT = "insert"
    UPDATE = "update"


# Stripped from both ends of a token; dots only from the end, so ".net"
# survives while a sentence-final "developer." does not.
KEYWORD_EDGE_PUNCTUATION = ",;:!?()[]{}\"'"


def clean_keyword_token(token: str) -> str:
    """Lowercase a token and strip punctuation that is never part of a keyword.

    Used for subscription keywords and for job keyword extraction alike, so
    both sides of an index lookup agree.

    Example:
        >>> clean_keyword_token("(.NET),")
        '.net'
    """
    return (
        token.strip()
        .lower()
        .lstrip(KEYWORD_EDGE_PUNCTUATION)
        .rstrip(KEYWORD_EDGE_PUNCTUATION + ".")
    )


def normalize_keyword(value: str) -> str:
    """Normalize a subscription keyword.

    Keywords are single words: trimmed, lowercased, with no internal whitespace
    and no surrounding punctuation (see ``clean_keyword_token``).

    Raises:
        ValueError: If the keyword is empty or contains whitespace
    """
    if value is None:
        raise ValueError("keyword is required")
    normalized = clean_keyword_token(str(value))
    if not normalized:
        raise ValueError("keyword cannot be empty or whitespace-only")
    if any(ch.isspace() for ch in normalized):
        raise ValueError(f"keyword must be a single word, got: '{normalized}'")
    return normalized


def _clean_filter_value(v: Optional[str]) -> str:
    if v is None:
        return WILDCARD
    stripped = str(v).strip()
    return stripped if stripped else WILDCARD


class LocationFilter(BaseModel):
    """Hierarchical location criteria: province, then district, then commune."""

    province: str = Field(WILDCARD, description="Province code or ALL")
    district: Optional[str] = Field(None, description="District code, empty or ALL")
    commune: Optional[str] = Field(None, description="Commune code (optional)")

    @field_validator("province", mode="before")
    @classmethod
    def default_province(cls, v: Optional[str]) -> str:
        return _clean_filter_value(v)

    @field_validator("district", "commune")
    @classmethod
    def strip_optional(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        stripped = v.strip()
        return stripped if stripped else None


class _SubscriptionCriteria(BaseModel):
    """Alert criteria shared by drafts and stored subscriptions."""

    keyword: str = Field(..., description="Normalized single-word keyword")
    location: LocationFilter = Field(default_factory=LocationFilter)
    category: str = Field(WILDCARD, description="Job category or ALL")
    employment_type: str = Field(WILDCARD, description="Employment type or ALL")
    work_mode: str = Field(WILDCARD, description="Work mode or ALL")
    experience_level: str = Field(WILDCARD, description="Experience level or ALL")
    salary_bucket: SalaryBucket = Field(SalaryBucket.ALL)
    frequency: Frequency = Field(Frequency.DAILY)
    delivery_method: DeliveryMethod = Field(DeliveryMethod.EMAIL)
    active: bool = Field(True)

    @field_validator("keyword", mode="before")
    @classmethod
    def validate_keyword(cls, v: str) -> str:
        return normalize_keyword(v)

    @field_validator(
        "category", "employment_type", "work_mode", "experience_level", mode="before"
    )
    @classmethod
    def default_wildcard(cls, v: Optional[str]) -> str:
        return _clean_filter_value(v)


class SubscriptionDraft(_SubscriptionCriteria):
    """Payload for creating a subscription."""

    pass


class SubscriptionChanges(BaseModel):
    """Partial update payload; only explicitly set fields are applied."""

    keyword: Optional[str] = None
    location: Optional[LocationFilter] = None
    category: Optional[str] = None
    employment_type: Optional[str] = None
    work_mode: Optional[str] = None
    experience_level: Optional[str] = None
    salary_bucket: Optional[SalaryBucket] = None
    frequency: Optional[Frequency] = None
    delivery_method: Optional[DeliveryMethod] = None
    active: Optional[bool] = None

    @field_validator("keyword", mode="before")
    @classmethod
    def validate_keyword(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return normalize_keyword(v)

    @field_validator(
        "category", "employment_type", "work_mode", "experience_level", mode="before"
    )
    @classmethod
    def default_wildcard(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return _clean_filter_value(v)

    def updates(self) -> Dict[str, Any]:
        """Return the fields the caller explicitly provided."""
        return {
            name: getattr(self, name)
            for name in self.model_fields_set
            if getattr(self, name) is not None
        }


class Subscription(_SubscriptionCriteria):
    """A candidate's saved alert criteria, as stored in the subscription store."""

    subscription_id: str = Field(..., description="Unique subscription identifier")
    owner_id: str = Field(..., description="Candidate who owns the subscription")
    last_notified_at: Optional[datetime] = Field(None)
    created_at: Optional[datetime] = Field(None)
    updated_at: Optional[datetime] = Field(None)

    @field_validator("last_notified_at", "created_at", "updated_at")
    @classmethod
    def normalize_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    def field_filters(self) -> Dict[str, FieldFilter]:
        """Return the hard-filter fields as tagged filter values."""
        return {
            "province": FieldFilter.parse(self.location.province),
            "district": FieldFilter.parse(self.location.district),
            "commune": FieldFilter.parse(self.location.commune),
            "category": FieldFilter.parse(self.category),
            "employment_type": FieldFilter.parse(self.employment_type),
            "work_mode": FieldFilter.parse(self.work_mode),
            "experience_level": FieldFilter.parse(self.experience_level),
        }


class JobLocation(BaseModel):
    """Where a job is located."""

    province: Optional[str] = None
    district: Optional[str] = None
    commune: Optional[str] = None


class Job(BaseModel):
    """Read-only view of a job posting from the catalog."""

    job_id: str = Field(..., description="Catalog identifier")
    title: str = Field(..., description="Job title")
    description: str = Field("", description="Free-text description")
    skills: List[str] = Field(default_factory=list)
    location: JobLocation = Field(default_factory=JobLocation)
    category: Optional[str] = None
    employment_type: Optional[str] = None
    work_mode: Optional[str] = None
    experience_level: Optional[str] = None
    min_salary: Optional[float] = None
    max_salary: Optional[float] = None
    moderation_status: ModerationStatus = Field(ModerationStatus.PENDING)
    status: JobStatus = Field(JobStatus.ACTIVE)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("job_id", "title")
    @classmethod
    def strip_required(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Field cannot be empty or whitespace-only")
        return v.strip()

    @field_validator("description", mode="before")
    @classmethod
    def default_description(cls, v: Optional[str]) -> str:
        return v or ""

    @field_validator("skills", mode="before")
    @classmethod
    def clean_skills(cls, v: Optional[List[str]]) -> List[str]:
        if not v:
            return []
        return [skill.strip() for skill in v if skill and skill.strip()]

    @field_validator("created_at", "updated_at")
    @classmethod
    def normalize_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @property
    def is_publishable(self) -> bool:
        """A job is publishable when it is approved and active."""
        return (
            self.moderation_status == ModerationStatus.APPROVED
            and self.status == JobStatus.ACTIVE
        )


class PendingMatch(BaseModel):
    """A job that matched at least one of an owner's active subscriptions."""

    owner_id: str
    job_id: str
    subscription_id: str = Field(..., description="Best-scoring subscription")
    matching_subscription_ids: List[str] = Field(default_factory=list)
    score: int = 0
    created_at: datetime
    expires_at: datetime

    @field_validator("created_at", "expires_at")
    @classmethod
    def normalize_timestamps(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class ChangeEvent(BaseModel):
    """One ordered entry of the job catalog change feed."""

    sequence: int = Field(..., ge=1, description="Monotonic position in the feed")
    job_id: str
    operation: OperationType
    updated_fields: Dict[str, Any] = Field(default_factory=dict)
    document: Optional[Job] = Field(None, description="Current full document, if it still exists")
    recorded_at: Optional[datetime] = None

    @field_validator("recorded_at")
    @classmethod
    def normalize_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)
