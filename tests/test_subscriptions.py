"""Unit tests for the subscription CRUD boundary."""

from itertools import count

import pytest

from jobalert.domain.exceptions import SubscriptionNotFoundError, ValidationError
from jobalert.domain.models import SubscriptionChanges
from jobalert.indexing import SqlSubscriptionIndex, SubscriptionIndexMaintainer
from jobalert.subscriptions import SubscriptionService
from tests.helpers import make_draft


@pytest.fixture
def index():
    return SqlSubscriptionIndex()


@pytest.fixture
def service(database, index, clock):
    ids = count(1)
    return SubscriptionService(
        SubscriptionIndexMaintainer(index),
        max_active_subscriptions=3,
        clock=clock,
        id_factory=lambda: f"sub-{next(ids)}",
    )


class TestCreate:
    """Tests for SubscriptionService.create."""

    def test_create_stores_and_indexes(self, service, index, clock):
        subscription = service.create("owner-1", make_draft("Python"))

        assert subscription.subscription_id == "sub-1"
        assert subscription.keyword == "python"
        assert subscription.created_at == clock()
        assert service.get("owner-1", "sub-1") == subscription
        assert index.members("python") == {"owner-1"}

    def test_create_from_mapping(self, service):
        subscription = service.create("owner-1", {"keyword": "react", "frequency": "weekly"})

        assert subscription.frequency.value == "weekly"

    def test_multi_word_keyword_rejected(self, service, index):
        with pytest.raises(ValidationError) as exc_info:
            service.create("owner-1", {"keyword": "data engineer"})

        assert any("keyword" in error for error in exc_info.value.errors)
        assert service.list_for_owner("owner-1") == []
        assert index.snapshot() == {}

    def test_active_limit(self, service, index):
        for keyword in ("python", "react", "golang"):
            service.create("owner-1", make_draft(keyword))

        with pytest.raises(ValidationError, match="limit"):
            service.create("owner-1", make_draft("rust"))

        assert len(service.list_for_owner("owner-1")) == 3
        assert "rust" not in index.keywords()

    def test_inactive_draft_ignores_limit(self, service):
        for keyword in ("python", "react", "golang"):
            service.create("owner-1", make_draft(keyword))

        subscription = service.create("owner-1", make_draft("rust", active=False))

        assert not subscription.active

    def test_limit_is_per_owner(self, service):
        for keyword in ("python", "react", "golang"):
            service.create("owner-1", make_draft(keyword))

        assert service.create("owner-2", make_draft("python")).owner_id == "owner-2"


class TestUpdate:
    """Tests for SubscriptionService.update."""

    def test_keyword_change_updates_index(self, service, index):
        service.create("owner-1", make_draft("python"))

        updated = service.update("owner-1", "sub-1", SubscriptionChanges(keyword="golang"))

        assert updated.keyword == "golang"
        assert index.snapshot() == {"golang": {"owner-1"}}

    def test_partial_update_keeps_other_fields(self, service):
        service.create("owner-1", make_draft("python", category="IT"))

        updated = service.update("owner-1", "sub-1", {"frequency": "weekly"})

        assert updated.category == "IT"
        assert updated.frequency.value == "weekly"

    def test_updated_at_moves_with_clock(self, service, clock):
        created = service.create("owner-1", make_draft("python"))
        clock.advance(hours=1)

        updated = service.update("owner-1", "sub-1", {"category": "IT"})

        assert updated.updated_at > created.updated_at
        assert updated.created_at == created.created_at

    def test_deactivate_and_reactivate(self, service, index):
        service.create("owner-1", make_draft("python"))

        service.update("owner-1", "sub-1", {"active": False})
        assert index.snapshot() == {}

        service.update("owner-1", "sub-1", {"active": True})
        assert index.members("python") == {"owner-1"}

    def test_reactivation_respects_limit(self, service):
        service.create("owner-1", make_draft("rust", active=False))
        for keyword in ("python", "react", "golang"):
            service.create("owner-1", make_draft(keyword))

        with pytest.raises(ValidationError, match="limit"):
            service.update("owner-1", "sub-1", {"active": True})

        assert not service.get("owner-1", "sub-1").active

    def test_update_of_active_subscription_at_limit_is_allowed(self, service):
        for keyword in ("python", "react", "golang"):
            service.create("owner-1", make_draft(keyword))

        updated = service.update("owner-1", "sub-3", {"active": True, "keyword": "rust"})

        assert updated.keyword == "rust"

    def test_update_other_owner_not_found(self, service):
        service.create("owner-1", make_draft("python"))

        with pytest.raises(SubscriptionNotFoundError):
            service.update("owner-2", "sub-1", {"keyword": "rust"})

    def test_invalid_update(self, service):
        service.create("owner-1", make_draft("python"))

        with pytest.raises(ValidationError):
            service.update("owner-1", "sub-1", {"keyword": "   "})


class TestDelete:
    """Tests for SubscriptionService.delete."""

    def test_delete_removes_from_store_and_index(self, service, index):
        service.create("owner-1", make_draft("python"))

        deleted = service.delete("owner-1", "sub-1")

        assert deleted.subscription_id == "sub-1"
        assert service.list_for_owner("owner-1") == []
        assert index.snapshot() == {}

    def test_delete_keeps_shared_keyword(self, service, index):
        service.create("owner-1", make_draft("python"))
        service.create("owner-1", make_draft("python", category="IT"))

        service.delete("owner-1", "sub-1")

        assert index.members("python") == {"owner-1"}

    def test_delete_missing(self, service):
        with pytest.raises(SubscriptionNotFoundError):
            service.delete("owner-1", "sub-404")

    def test_get_hides_other_owners(self, service):
        service.create("owner-1", make_draft("python"))

        assert service.get("owner-2", "sub-1") is None
