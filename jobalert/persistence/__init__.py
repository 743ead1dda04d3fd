"""Persistence layer for the durable stores using SQLAlchemy.

This module provides the public API for database operations including:
- Database initialization and connection management
- Repository classes for subscriptions, the job catalog, the change feed,
  pending matches and dedup markers
- Custom exceptions for error handling

Public API:
    # Database initialization and session management
    - init_database(database_url: str) -> None
    - get_session() -> ContextManager[Session]
    - close_database() -> None
    - get_engine() -> Engine

    # Repository classes
    - SubscriptionRepository: subscription store (source of truth)
    - JobRepository: job catalog writes append change-feed events
    - ChangeFeedRepository: ordered change events and resume tokens
    - PendingMatchRepository: insert-or-ignore matches, grouped collection
    - DedupMarkerRepository: time-bounded (owner, job) markers
    - SubscriptionIndexRepository: shared keyword -> owner index rows

    # Exceptions
    - PersistenceError: Base exception for all persistence errors
    - DatabaseConnectionError: Database connection/initialization failures
    - RecordNotFoundError: Required record not found
    - DataIntegrityError: Constraint violations

Example usage:
    >>> from jobalert.persistence import init_database, get_session, SubscriptionRepository
    >>>
    >>> init_database("sqlite:///./data/job_alerts.db")
    >>>
    >>> with get_session() as session:
    ...     repo = SubscriptionRepository(session)
    ...     subscriptions = repo.list_by_owner("candidate-1")
"""

# Database initialization and session management
from .database import (
    SessionFactory,
    close_database,
    get_engine,
    get_session,
    has_table,
    init_database,
)

# Repository classes
from .repositories import (
    ChangeFeedRepository,
    DedupMarkerRepository,
    JobRepository,
    PendingMatchRepository,
    SubscriptionIndexRepository,
    SubscriptionRepository,
)

# Exceptions
from .exceptions import (
    DatabaseConnectionError,
    DataIntegrityError,
    PersistenceError,
    RecordNotFoundError,
)

# Public API exports
__all__ = [
    # Database functions
    "init_database",
    "get_session",
    "close_database",
    "get_engine",
    "has_table",
    "SessionFactory",
    # Repositories
    "SubscriptionRepository",
    "JobRepository",
    "ChangeFeedRepository",
    "PendingMatchRepository",
    "DedupMarkerRepository",
    "SubscriptionIndexRepository",
    # Exceptions
    "PersistenceError",
    "DatabaseConnectionError",
    "RecordNotFoundError",
    "DataIntegrityError",
]
