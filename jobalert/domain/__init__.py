"""Domain models for the job alert engine."""

from .exceptions import (
    JobAlertError,
    SubscriptionNotFoundError,
    ValidationError,
)
from .filters import ANY, AnyValue, Exact, FieldFilter
from .models import (
    ChangeEvent,
    DeliveryMethod,
    Frequency,
    Job,
    JobLocation,
    JobStatus,
    LocationFilter,
    ModerationStatus,
    OperationType,
    PendingMatch,
    SalaryBucket,
    Subscription,
    SubscriptionChanges,
    SubscriptionDraft,
    WILDCARD,
    clean_keyword_token,
    normalize_keyword,
)

__all__ = [
    "ANY",
    "AnyValue",
    "ChangeEvent",
    "DeliveryMethod",
    "Exact",
    "FieldFilter",
    "Frequency",
    "Job",
    "JobAlertError",
    "JobLocation",
    "JobStatus",
    "LocationFilter",
    "ModerationStatus",
    "OperationType",
    "PendingMatch",
    "SalaryBucket",
    "Subscription",
    "SubscriptionChanges",
    "SubscriptionDraft",
    "SubscriptionNotFoundError",
    "ValidationError",
    "WILDCARD",
    "clean_keyword_token",
    "normalize_keyword",
]
