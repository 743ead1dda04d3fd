"""Keyword -> owner set index of active subscriptions.

The index answers one question for the listener: which owners might care
about a job with these keywords. It is rebuildable from the subscription
store at any time and never treated as the source of truth.

The index lives in the shared database (``subscription_index`` table), so the
API process that writes subscriptions and the worker that matches jobs see
the same sets.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Mapping, Set

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from jobalert.logging import get_logger
from jobalert.persistence import (
    PersistenceError,
    SessionFactory,
    SubscriptionIndexRepository,
    get_session,
)

from .exceptions import IndexUnavailableError

logger = get_logger(__name__, component="index")


class IndexOp(str, Enum):
    ADD = "add"
    REMOVE = "remove"


@dataclass(frozen=True)
class IndexCommand:
    """One set mutation: add or remove ``owner_id`` under ``keyword``."""

    op: IndexOp
    keyword: str
    owner_id: str

    @classmethod
    def add(cls, keyword: str, owner_id: str) -> "IndexCommand":
        return cls(IndexOp.ADD, keyword, owner_id)

    @classmethod
    def remove(cls, keyword: str, owner_id: str) -> "IndexCommand":
        return cls(IndexOp.REMOVE, keyword, owner_id)


class SubscriptionIndex(ABC):
    """Set-oriented keyword index.

    Implementations must apply a command group atomically: readers see either
    none or all of a group's mutations.
    """

    @abstractmethod
    def apply(self, commands: Iterable[IndexCommand]) -> None:
        """Apply a group of commands atomically, in order.

        Raises:
            IndexUnavailableError: If the index cannot be reached in time
        """

    @abstractmethod
    def members(self, keyword: str) -> Set[str]:
        """Owners registered under a keyword."""

    @abstractmethod
    def union(self, keywords: Iterable[str]) -> Set[str]:
        """Owners registered under any of the keywords."""

    @abstractmethod
    def replace_all(self, mapping: Mapping[str, Iterable[str]]) -> None:
        """Atomically swap the whole index for a freshly built mapping."""

    @abstractmethod
    def keywords(self) -> List[str]:
        """Every keyword that currently has at least one owner."""

    def snapshot(self) -> Dict[str, Set[str]]:
        return {keyword: self.members(keyword) for keyword in self.keywords()}


class SqlSubscriptionIndex(SubscriptionIndex):
    """Index stored in the ``subscription_index`` table of the shared database.

    Each command group, read and swap runs in its own transaction, separate
    from the subscription store write that triggered it, so an index failure
    never rolls back the store. On PostgreSQL lock waits are bounded by
    ``timeout`` seconds; on SQLite the engine's busy timeout applies. Any
    database failure surfaces as IndexUnavailableError.
    """

    def __init__(self, timeout: float = 2.0, session_factory: SessionFactory = get_session):
        self.timeout = timeout
        self.session_factory = session_factory

    @contextmanager
    def _repository(self, operation: str) -> Iterator[SubscriptionIndexRepository]:
        try:
            with self.session_factory() as session:
                self._bound_lock_wait(session)
                yield SubscriptionIndexRepository(session)
        except (SQLAlchemyError, PersistenceError) as e:
            logger.warning(
                f"Subscription index unavailable during {operation}: {e}",
                extra={
                    "event": "index.unavailable",
                    "operation": operation,
                    "error_type": type(e).__name__,
                },
            )
            raise IndexUnavailableError(
                f"Subscription index unavailable: {operation} failed: {e}"
            ) from e

    def _bound_lock_wait(self, session: Session) -> None:
        if session.get_bind().dialect.name == "postgresql":
            session.execute(text(f"SET LOCAL lock_timeout = {int(self.timeout * 1000)}"))

    def apply(self, commands: Iterable[IndexCommand]) -> None:
        group = list(commands)
        if not group:
            return

        with self._repository("apply") as repo:
            for command in group:
                if command.op == IndexOp.ADD:
                    repo.add(command.keyword, command.owner_id)
                else:
                    repo.remove(command.keyword, command.owner_id)

    def members(self, keyword: str) -> Set[str]:
        with self._repository("members") as repo:
            return repo.owners_for([keyword])

    def union(self, keywords: Iterable[str]) -> Set[str]:
        wanted = list(dict.fromkeys(keywords))
        if not wanted:
            return set()
        with self._repository("union") as repo:
            return repo.owners_for(wanted)

    def replace_all(self, mapping: Mapping[str, Iterable[str]]) -> None:
        pairs = [(keyword, owner) for keyword, owners in mapping.items() for owner in owners]
        with self._repository("replace_all") as repo:
            repo.replace_all(pairs)

    def keywords(self) -> List[str]:
        with self._repository("keywords") as repo:
            return repo.keywords()

    def snapshot(self) -> Dict[str, Set[str]]:
        with self._repository("snapshot") as repo:
            return repo.mapping()
