"""Subscription CRUD boundary.

The HTTP layer (out of scope here) calls this service. Each mutation is
written to the subscription store in its own transaction and, once committed,
mirrored into the subscription index through the maintainer hooks.
"""

import uuid
from typing import Any, Callable, List, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from jobalert.domain.exceptions import SubscriptionNotFoundError, ValidationError
from jobalert.domain.models import Subscription, SubscriptionChanges, SubscriptionDraft
from jobalert.indexing import SubscriptionIndexMaintainer
from jobalert.logging import get_logger
from jobalert.persistence import SessionFactory, SubscriptionRepository, get_session
from jobalert.utils.timestamps import Clock, utc_now

logger = get_logger(__name__, component="subscriptions")

DEFAULT_MAX_ACTIVE = 3


def _new_subscription_id() -> str:
    return uuid.uuid4().hex


def _parse(model, payload, what: str):
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        errors = [
            f"{'.'.join(str(loc) for loc in err['loc']) or what}: {err['msg']}"
            for err in e.errors()
        ]
        raise ValidationError(f"Invalid {what}", errors=errors) from e


class SubscriptionService:
    """Creates, updates, deletes and lists an owner's subscriptions."""

    def __init__(
        self,
        maintainer: SubscriptionIndexMaintainer,
        max_active_subscriptions: int = DEFAULT_MAX_ACTIVE,
        session_factory: SessionFactory = get_session,
        clock: Clock = utc_now,
        id_factory: Callable[[], str] = _new_subscription_id,
    ):
        self.maintainer = maintainer
        self.max_active_subscriptions = max_active_subscriptions
        self.session_factory = session_factory
        self.clock = clock
        self.id_factory = id_factory

    def create(
        self, owner_id: str, draft: Union[SubscriptionDraft, Mapping[str, Any]]
    ) -> Subscription:
        """Create a subscription for an owner.

        Raises:
            ValidationError: If fields are invalid or the active limit is reached
        """
        draft = _parse(SubscriptionDraft, draft, "subscription")
        now = self.clock()

        with self.session_factory() as session:
            repo = SubscriptionRepository(session)
            if draft.active:
                self._check_active_limit(repo, owner_id)

            subscription = repo.add(
                Subscription(
                    subscription_id=self.id_factory(),
                    owner_id=owner_id,
                    created_at=now,
                    updated_at=now,
                    **draft.model_dump(),
                )
            )

        logger.info(
            f"Subscription created: keyword={subscription.keyword}",
            extra={
                "event": "subscription.created",
                "owner_id": owner_id,
                "subscription_id": subscription.subscription_id,
                "keyword": subscription.keyword,
                "active": subscription.active,
            },
        )
        self.maintainer.on_subscription_created(subscription)
        return subscription

    def update(
        self,
        owner_id: str,
        subscription_id: str,
        changes: Union[SubscriptionChanges, Mapping[str, Any]],
    ) -> Subscription:
        """Apply a partial update to one of the owner's subscriptions.

        Raises:
            SubscriptionNotFoundError: If missing or owned by someone else
            ValidationError: If fields are invalid, or re-activation would
                exceed the active limit
        """
        changes = _parse(SubscriptionChanges, changes, "subscription update")
        updates = changes.updates()

        with self.session_factory() as session:
            repo = SubscriptionRepository(session)
            existing = repo.get(subscription_id)
            if existing is None or existing.owner_id != owner_id:
                raise SubscriptionNotFoundError(
                    f"Subscription {subscription_id} not found for owner {owner_id}"
                )

            if updates.get("active") and not existing.active:
                self._check_active_limit(repo, owner_id, exclude_id=subscription_id)

            updated = existing.model_copy(update={**updates, "updated_at": self.clock()})
            saved = repo.save(updated)

        logger.info(
            f"Subscription updated: {', '.join(sorted(updates)) or 'no changes'}",
            extra={
                "event": "subscription.updated",
                "owner_id": owner_id,
                "subscription_id": subscription_id,
                "keyword": saved.keyword,
                "old_keyword": existing.keyword,
                "active": saved.active,
                "old_active": existing.active,
            },
        )
        self.maintainer.on_subscription_updated(
            saved, old_keyword=existing.keyword, old_active=existing.active
        )
        return saved

    def delete(self, owner_id: str, subscription_id: str) -> Subscription:
        """Delete one of the owner's subscriptions.

        Returns:
            The deleted subscription

        Raises:
            SubscriptionNotFoundError: If missing or owned by someone else
        """
        with self.session_factory() as session:
            deleted = SubscriptionRepository(session).delete(subscription_id, owner_id)

        if deleted is None:
            raise SubscriptionNotFoundError(
                f"Subscription {subscription_id} not found for owner {owner_id}"
            )

        logger.info(
            f"Subscription deleted: keyword={deleted.keyword}",
            extra={
                "event": "subscription.deleted",
                "owner_id": owner_id,
                "subscription_id": subscription_id,
                "keyword": deleted.keyword,
            },
        )
        self.maintainer.on_subscription_deleted(deleted)
        return deleted

    def list_for_owner(self, owner_id: str) -> List[Subscription]:
        with self.session_factory() as session:
            return SubscriptionRepository(session).list_by_owner(owner_id)

    def get(self, owner_id: str, subscription_id: str) -> Optional[Subscription]:
        with self.session_factory() as session:
            subscription = SubscriptionRepository(session).get(subscription_id)
        if subscription is None or subscription.owner_id != owner_id:
            return None
        return subscription

    def _check_active_limit(
        self,
        repo: SubscriptionRepository,
        owner_id: str,
        exclude_id: Optional[str] = None,
    ) -> None:
        active_count = repo.count_active(owner_id, exclude_id=exclude_id)
        if active_count >= self.max_active_subscriptions:
            logger.info(
                "Active subscription limit reached",
                extra={
                    "event": "subscription.limit_reached",
                    "owner_id": owner_id,
                    "active_count": active_count,
                    "limit": self.max_active_subscriptions,
                },
            )
            raise ValidationError(
                "Active subscription limit reached",
                errors=[
                    f"an owner may have at most {self.max_active_subscriptions} "
                    f"active subscriptions (currently {active_count})"
                ],
            )
