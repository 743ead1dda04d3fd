"""Keeps the subscription index in sync with the subscription store.

The store is authoritative. Each hook turns one store mutation into a single
atomic index command group; failures are logged and swallowed so the store
write that triggered them still stands. ``rebuild`` recovers from any drift.

Invariant maintained: an owner is listed under keyword K if and only if that
owner has at least one active subscription whose keyword is K.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from jobalert.domain.models import Subscription
from jobalert.logging import get_logger
from jobalert.persistence import SessionFactory, SubscriptionRepository, get_session

from .store import IndexCommand, SubscriptionIndex

logger = get_logger(__name__, component="index")

Pair = Tuple[str, str]


@dataclass
class IndexDrift:
    """Difference between the index and the store, as (keyword, owner) pairs."""

    missing: Set[Pair] = field(default_factory=set)
    extra: Set[Pair] = field(default_factory=set)

    @property
    def is_consistent(self) -> bool:
        return not self.missing and not self.extra


@dataclass
class RebuildResult:
    keyword_count: int
    pair_count: int
    drift_before: IndexDrift


class SubscriptionIndexMaintainer:
    """Hooks called by the subscription CRUD boundary after each store write."""

    def __init__(
        self,
        index: SubscriptionIndex,
        session_factory: SessionFactory = get_session,
    ):
        self.index = index
        self.session_factory = session_factory

    def on_subscription_created(self, subscription: Subscription) -> None:
        if not subscription.active:
            return
        self._apply(
            [IndexCommand.add(subscription.keyword, subscription.owner_id)],
            subscription,
            "created",
        )

    def on_subscription_updated(
        self, subscription: Subscription, old_keyword: str, old_active: bool
    ) -> None:
        """Mirror an update.

        Args:
            subscription: State after the update
            old_keyword: Keyword before the update
            old_active: Active flag before the update
        """
        owner = subscription.owner_id
        keyword_changed = old_keyword != subscription.keyword

        commands: List[IndexCommand] = []
        try:
            if keyword_changed:
                if not self._still_held(owner, old_keyword, subscription.subscription_id):
                    commands.append(IndexCommand.remove(old_keyword, owner))
                if subscription.active:
                    commands.append(IndexCommand.add(subscription.keyword, owner))
            elif subscription.active:
                # activation, or idempotent presence when nothing relevant changed
                commands.append(IndexCommand.add(subscription.keyword, owner))
            elif not self._still_held(owner, subscription.keyword, subscription.subscription_id):
                # deactivation; also clears a stale entry if it was already inactive
                commands.append(IndexCommand.remove(subscription.keyword, owner))
        except Exception as e:
            self._log_failure(subscription, "updated", e)
            return

        self._apply(commands, subscription, "updated")

    def on_subscription_deleted(self, subscription: Subscription) -> None:
        try:
            held = self._still_held(
                subscription.owner_id, subscription.keyword, subscription.subscription_id
            )
        except Exception as e:
            self._log_failure(subscription, "deleted", e)
            return

        if held:
            logger.debug(
                f"Keyword '{subscription.keyword}' still held by another subscription of "
                f"{subscription.owner_id}, index entry kept",
                extra={
                    "event": "index.remove.skipped",
                    "owner_id": subscription.owner_id,
                    "keyword": subscription.keyword,
                },
            )
            return

        self._apply(
            [IndexCommand.remove(subscription.keyword, subscription.owner_id)],
            subscription,
            "deleted",
        )

    def rebuild(self) -> RebuildResult:
        """Rebuild every set from the active subscriptions and swap atomically.

        Raises:
            PersistenceError: If the store cannot be read
            IndexUnavailableError: If the swap cannot acquire the index
        """
        expected = self._expected_mapping()
        drift = self._diff(expected, self.index.snapshot())
        self.index.replace_all(expected)

        pair_count = sum(len(owners) for owners in expected.values())
        logger.info(
            f"Subscription index rebuilt: {len(expected)} keywords, {pair_count} entries",
            extra={
                "event": "index.rebuilt",
                "keyword_count": len(expected),
                "pair_count": pair_count,
                "missing_before": len(drift.missing),
                "extra_before": len(drift.extra),
            },
        )
        return RebuildResult(
            keyword_count=len(expected), pair_count=pair_count, drift_before=drift
        )

    def verify(self) -> IndexDrift:
        """Compare the index with the store without changing anything."""
        drift = self._diff(self._expected_mapping(), self.index.snapshot())
        if not drift.is_consistent:
            logger.warning(
                "Subscription index drift detected",
                extra={
                    "event": "index.drift",
                    "missing": len(drift.missing),
                    "extra": len(drift.extra),
                },
            )
        return drift

    def _expected_mapping(self) -> Dict[str, Set[str]]:
        with self.session_factory() as session:
            subscriptions = SubscriptionRepository(session).list_active()

        mapping: Dict[str, Set[str]] = defaultdict(set)
        for subscription in subscriptions:
            mapping[subscription.keyword].add(subscription.owner_id)
        return dict(mapping)

    @staticmethod
    def _diff(expected: Dict[str, Set[str]], actual: Dict[str, Set[str]]) -> IndexDrift:
        expected_pairs = {(k, o) for k, owners in expected.items() for o in owners}
        actual_pairs = {(k, o) for k, owners in actual.items() for o in owners}
        return IndexDrift(
            missing=expected_pairs - actual_pairs,
            extra=actual_pairs - expected_pairs,
        )

    def _still_held(self, owner_id: str, keyword: str, exclude_id: Optional[str]) -> bool:
        with self.session_factory() as session:
            return SubscriptionRepository(session).has_active_keyword(
                owner_id, keyword, exclude_id=exclude_id
            )

    def _apply(
        self, commands: List[IndexCommand], subscription: Subscription, action: str
    ) -> None:
        if not commands:
            return
        try:
            self.index.apply(commands)
        except Exception as e:
            self._log_failure(subscription, action, e)
            return

        logger.debug(
            f"Subscription index updated after {action}",
            extra={
                "event": "index.updated",
                "action": action,
                "owner_id": subscription.owner_id,
                "subscription_id": subscription.subscription_id,
                "commands": [f"{c.op.value}:{c.keyword}" for c in commands],
            },
        )

    @staticmethod
    def _log_failure(subscription: Subscription, action: str, error: Exception) -> None:
        logger.error(
            f"Subscription index not updated after {action}; index left stale: {error}",
            extra={
                "event": "index.update.failed",
                "action": action,
                "owner_id": subscription.owner_id,
                "subscription_id": subscription.subscription_id,
                "keyword": subscription.keyword,
                "error_type": type(error).__name__,
            },
            exc_info=True,
        )
