"""Unit tests for persistence layer."""

from datetime import timedelta

import pytest
from sqlalchemy import text

from jobalert.domain.models import Frequency, JobStatus, ModerationStatus, OperationType, PendingMatch
from jobalert.persistence import (
    ChangeFeedRepository,
    DatabaseConnectionError,
    DataIntegrityError,
    DedupMarkerRepository,
    JobRepository,
    PendingMatchRepository,
    RecordNotFoundError,
    SubscriptionIndexRepository,
    SubscriptionRepository,
    close_database,
    get_session,
    init_database,
)
from jobalert.persistence.schema import _format_datetime, _parse_datetime
from tests.helpers import DEFAULT_NOW, make_job, make_subscription


def pending(owner_id, job_id, subscription_id, created_at=DEFAULT_NOW, ttl_days=7):
    return PendingMatch(
        owner_id=owner_id,
        job_id=job_id,
        subscription_id=subscription_id,
        matching_subscription_ids=[subscription_id],
        score=65,
        created_at=created_at,
        expires_at=created_at + timedelta(days=ttl_days),
    )


class TestDatabaseInitialization:
    """Tests for database initialization."""

    def test_init_database_creates_parent_directories(self, tmp_path):
        db_file = tmp_path / "subdir" / "nested" / "test.db"

        init_database(f"sqlite:///{db_file}")

        assert db_file.exists()
        close_database()

    def test_init_database_invalid_url_raises_error(self):
        with pytest.raises(DatabaseConnectionError):
            init_database("")

    def test_get_session_before_init_raises(self):
        close_database()

        with pytest.raises(DatabaseConnectionError, match="not initialized"):
            with get_session():
                pass

    def test_schema_is_idempotent(self, tmp_path):
        db_url = f"sqlite:///{tmp_path / 'test.db'}"

        init_database(db_url)
        init_database(db_url)

        with get_session() as session:
            result = session.execute(text("SELECT name FROM sqlite_master WHERE type='table'"))
            tables = {row[0] for row in result.fetchall()}

        assert {
            "subscriptions",
            "jobs",
            "job_changes",
            "change_feed_cursors",
            "pending_matches",
            "dedup_markers",
            "subscription_index",
        } <= tables
        close_database()


class TestTimestampColumns:
    """Timestamps are stored as fixed-width UTC strings."""

    def test_round_trip(self):
        stored = _format_datetime(DEFAULT_NOW)

        assert stored == "2025-11-03T01:00:00.000000Z"
        assert _parse_datetime(stored) == DEFAULT_NOW

    def test_lexicographic_order_is_chronological(self):
        earlier = _format_datetime(DEFAULT_NOW)
        later = _format_datetime(DEFAULT_NOW + timedelta(microseconds=1))

        assert earlier < later


@pytest.mark.usefixtures("database")
class TestSubscriptionRepository:
    """Tests for the subscription store."""

    def test_add_and_get(self):
        with get_session() as session:
            SubscriptionRepository(session).add(make_subscription(category="IT"))

        with get_session() as session:
            stored = SubscriptionRepository(session).get("sub-1")

        assert stored.keyword == "javascript"
        assert stored.category == "IT"
        assert stored.created_at == DEFAULT_NOW

    def test_add_duplicate_id_raises(self):
        with get_session() as session:
            SubscriptionRepository(session).add(make_subscription())

        with pytest.raises(DataIntegrityError):
            with get_session() as session:
                SubscriptionRepository(session).add(make_subscription())

    def test_count_active_and_keyword_lookup(self):
        with get_session() as session:
            repo = SubscriptionRepository(session)
            repo.add(make_subscription("sub-1", keyword="python"))
            repo.add(make_subscription("sub-2", keyword="python"))
            repo.add(make_subscription("sub-3", keyword="go", active=False))

        with get_session() as session:
            repo = SubscriptionRepository(session)
            assert repo.count_active("owner-1") == 2
            assert repo.count_active("owner-1", exclude_id="sub-1") == 1
            assert repo.has_active_keyword("owner-1", "python", exclude_id="sub-1")
            assert not repo.has_active_keyword("owner-1", "go")

    def test_delete_checks_owner(self):
        with get_session() as session:
            SubscriptionRepository(session).add(make_subscription())

        with get_session() as session:
            repo = SubscriptionRepository(session)
            assert repo.delete("sub-1", "someone-else") is None
            assert repo.delete("sub-1", "owner-1").subscription_id == "sub-1"
            assert repo.get("sub-1") is None

    def test_list_active_by_frequency(self):
        with get_session() as session:
            repo = SubscriptionRepository(session)
            repo.add(make_subscription("sub-d", frequency=Frequency.DAILY))
            repo.add(make_subscription("sub-w", frequency=Frequency.WEEKLY))
            repo.add(make_subscription("sub-off", frequency=Frequency.DAILY, active=False))

        with get_session() as session:
            daily = SubscriptionRepository(session).list_active_by_frequency(Frequency.DAILY)

        assert [s.subscription_id for s in daily] == ["sub-d"]

    def test_touch_last_notified(self):
        with get_session() as session:
            SubscriptionRepository(session).add(make_subscription())

        with get_session() as session:
            SubscriptionRepository(session).touch_last_notified("sub-1", DEFAULT_NOW)

        with get_session() as session:
            assert SubscriptionRepository(session).get("sub-1").last_notified_at == DEFAULT_NOW

    def test_touch_last_notified_missing(self):
        with pytest.raises(RecordNotFoundError):
            with get_session() as session:
                SubscriptionRepository(session).touch_last_notified("missing", DEFAULT_NOW)


@pytest.mark.usefixtures("database")
class TestJobCatalogAndChangeFeed:
    """Catalog writes append change events in the same transaction."""

    def test_insert_appends_event(self):
        with get_session() as session:
            JobRepository(session).insert(make_job(), recorded_at=DEFAULT_NOW)

        with get_session() as session:
            events = ChangeFeedRepository(session).read_after(0)

        assert len(events) == 1
        assert events[0].operation == OperationType.INSERT
        assert events[0].document.job_id == "job-1"
        assert events[0].recorded_at == DEFAULT_NOW

    def test_update_reports_only_changed_fields(self):
        with get_session() as session:
            repo = JobRepository(session)
            repo.insert(make_job(moderation_status=ModerationStatus.PENDING), recorded_at=DEFAULT_NOW)
            repo.update(
                "job-1",
                recorded_at=DEFAULT_NOW,
                moderation_status=ModerationStatus.APPROVED,
                status=JobStatus.ACTIVE,
            )

        with get_session() as session:
            events = ChangeFeedRepository(session).read_after(1)

        assert events[0].operation == OperationType.UPDATE
        assert events[0].updated_fields == {"moderation_status": "APPROVED"}
        assert events[0].document.is_publishable

    def test_update_unknown_field(self):
        with pytest.raises(ValueError, match="Unknown job fields"):
            with get_session() as session:
                JobRepository(session).update("job-1", recorded_at=DEFAULT_NOW, color="red")

    def test_update_missing_job(self):
        with pytest.raises(RecordNotFoundError):
            with get_session() as session:
                JobRepository(session).update("missing", recorded_at=DEFAULT_NOW, title="x")

    def test_get_many_keeps_order_and_limit(self):
        with get_session() as session:
            repo = JobRepository(session)
            for job_id in ("job-1", "job-2", "job-3"):
                repo.insert(make_job(job_id), recorded_at=DEFAULT_NOW)

        with get_session() as session:
            jobs = JobRepository(session).get_many(["job-3", "gone", "job-1", "job-2"], limit=2)

        assert [j.job_id for j in jobs] == ["job-3", "job-1"]

    def test_cursor_never_moves_backwards(self):
        with get_session() as session:
            feed = ChangeFeedRepository(session)
            feed.save_cursor("worker", 5, DEFAULT_NOW)
            feed.save_cursor("worker", 3, DEFAULT_NOW)

        with get_session() as session:
            assert ChangeFeedRepository(session).load_cursor("worker") == 5
            assert ChangeFeedRepository(session).load_cursor("other") == 0


@pytest.mark.usefixtures("database")
class TestPendingMatchRepository:
    """Tests for pending matches."""

    def test_insert_ignore_skips_duplicate_owner_job(self):
        with get_session() as session:
            repo = PendingMatchRepository(session)
            assert repo.insert_ignore([pending("owner-1", "job-1", "sub-1")]) == 1
            assert repo.insert_ignore(
                [pending("owner-1", "job-1", "sub-2"), pending("owner-1", "job-2", "sub-1")]
            ) == 1

        with get_session() as session:
            stored = PendingMatchRepository(session).list_for_owner("owner-1")

        assert sorted((m.job_id, m.subscription_id) for m in stored) == [
            ("job-1", "sub-1"),
            ("job-2", "sub-1"),
        ]

    def test_collect_groups(self):
        with get_session() as session:
            PendingMatchRepository(session).insert_ignore(
                [
                    pending("owner-1", "job-1", "sub-1"),
                    pending("owner-1", "job-2", "sub-1", created_at=DEFAULT_NOW + timedelta(minutes=1)),
                    pending("owner-2", "job-1", "sub-9"),
                    pending("owner-3", "job-1", "sub-other"),
                ]
            )

        with get_session() as session:
            groups = PendingMatchRepository(session).collect_groups(["sub-1", "sub-9"])

        assert groups == {
            ("owner-1", "sub-1"): ["job-1", "job-2"],
            ("owner-2", "sub-9"): ["job-1"],
        }


    def test_collect_groups_skips_expired_rows(self):
        with get_session() as session:
            PendingMatchRepository(session).insert_ignore(
                [
                    pending("owner-1", "job-1", "sub-1", ttl_days=1),
                    pending("owner-1", "job-2", "sub-1", ttl_days=7),
                ]
            )

        with get_session() as session:
            groups = PendingMatchRepository(session).collect_groups(
                ["sub-1"], now=DEFAULT_NOW + timedelta(days=1)
            )

        assert groups == {("owner-1", "sub-1"): ["job-2"]}

    def test_insert_ignore_replaces_expired_row_for_same_pair(self):
        rematched_at = DEFAULT_NOW + timedelta(days=7, seconds=1)
        with get_session() as session:
            PendingMatchRepository(session).insert_ignore([pending("owner-1", "job-1", "sub-1")])

        with get_session() as session:
            inserted = PendingMatchRepository(session).insert_ignore(
                [pending("owner-1", "job-1", "sub-2", created_at=rematched_at)],
                now=rematched_at,
            )

        with get_session() as session:
            stored = PendingMatchRepository(session).list_for_owner("owner-1")

        assert inserted == 1
        assert [(m.subscription_id, m.created_at) for m in stored] == [("sub-2", rematched_at)]

    def test_insert_ignore_keeps_unexpired_row(self):
        with get_session() as session:
            PendingMatchRepository(session).insert_ignore([pending("owner-1", "job-1", "sub-1")])

        later = DEFAULT_NOW + timedelta(days=6)
        with get_session() as session:
            inserted = PendingMatchRepository(session).insert_ignore(
                [pending("owner-1", "job-1", "sub-2", created_at=later)], now=later
            )

        with get_session() as session:
            stored = PendingMatchRepository(session).list_for_owner("owner-1")

        assert inserted == 0
        assert [m.subscription_id for m in stored] == ["sub-1"]
    def test_delete_for_subscriptions_respects_created_before(self):
        later = DEFAULT_NOW + timedelta(hours=1)
        with get_session() as session:
            PendingMatchRepository(session).insert_ignore(
                [
                    pending("owner-1", "job-1", "sub-1"),
                    pending("owner-1", "job-2", "sub-1", created_at=later),
                ]
            )

        with get_session() as session:
            deleted = PendingMatchRepository(session).delete_for_subscriptions(
                ["sub-1"], created_before=DEFAULT_NOW
            )

        with get_session() as session:
            remaining = PendingMatchRepository(session).list_for_owner("owner-1")

        assert deleted == 1
        assert [m.job_id for m in remaining] == ["job-2"]

    def test_purge_expired(self):
        with get_session() as session:
            PendingMatchRepository(session).insert_ignore(
                [
                    pending("owner-1", "job-1", "sub-1", ttl_days=1),
                    pending("owner-1", "job-2", "sub-1", ttl_days=7),
                ]
            )

        with get_session() as session:
            purged = PendingMatchRepository(session).purge_expired(DEFAULT_NOW + timedelta(days=2))

        assert purged == 1


@pytest.mark.usefixtures("database")
class TestDedupMarkerRepository:
    """Tests for dedup markers."""

    def test_upsert_refreshes_expiry(self):
        with get_session() as session:
            repo = DedupMarkerRepository(session)
            repo.upsert([("owner-1", "job-1")], DEFAULT_NOW, DEFAULT_NOW + timedelta(days=1))
            repo.upsert([("owner-1", "job-1")], DEFAULT_NOW, DEFAULT_NOW + timedelta(days=7))

        with get_session() as session:
            repo = DedupMarkerRepository(session)
            assert repo.exists("owner-1", "job-1", DEFAULT_NOW + timedelta(days=3))
            assert not repo.exists("owner-1", "job-2", DEFAULT_NOW)

    def test_expired_marker_is_absent_and_purged(self):
        with get_session() as session:
            DedupMarkerRepository(session).upsert(
                [("owner-1", "job-1")], DEFAULT_NOW, DEFAULT_NOW + timedelta(days=7)
            )

        after = DEFAULT_NOW + timedelta(days=7)
        with get_session() as session:
            repo = DedupMarkerRepository(session)
            assert not repo.exists("owner-1", "job-1", after)
            assert repo.purge_expired(after) == 1


@pytest.mark.usefixtures("database")
class TestSubscriptionIndexRepository:
    """Tests for the shared keyword index rows."""

    def test_add_remove_and_lookup(self):
        with get_session() as session:
            repo = SubscriptionIndexRepository(session)
            repo.add("python", "owner-1")
            repo.add("python", "owner-1")
            repo.add("python", "owner-2")
            repo.add("go", "owner-1")
            repo.remove("python", "owner-2")

        with get_session() as session:
            repo = SubscriptionIndexRepository(session)
            assert repo.keywords() == ["go", "python"]
            assert repo.owners_for(["python", "go"]) == {"owner-1"}
            assert repo.owners_for([]) == set()
            assert repo.mapping() == {"go": {"owner-1"}, "python": {"owner-1"}}

    def test_replace_all(self):
        with get_session() as session:
            SubscriptionIndexRepository(session).add("stale", "owner-9")

        with get_session() as session:
            written = SubscriptionIndexRepository(session).replace_all(
                [("python", "owner-1"), ("python", "owner-1"), ("react", "owner-2")]
            )

        with get_session() as session:
            mapping = SubscriptionIndexRepository(session).mapping()

        assert written == 2
        assert mapping == {"python": {"owner-1"}, "react": {"owner-2"}}
