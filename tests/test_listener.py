"""Unit tests for the change feed, the job matcher and the listener loop."""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from jobalert.dedup import DedupCache
from jobalert.domain.models import ChangeEvent, JobStatus, ModerationStatus, OperationType
from jobalert.indexing import IndexCommand, IndexUnavailableError, SqlSubscriptionIndex
from jobalert.listener import (
    ChangeFeedError,
    ChangeFeedUnavailableError,
    JobChangeListener,
    JobMatcher,
    SqlChangeFeed,
    is_qualifying,
)
from jobalert.persistence import (
    JobRepository,
    PendingMatchRepository,
    SubscriptionRepository,
    get_session,
)
from tests.helpers import DEFAULT_NOW, make_job, make_subscription


def event(sequence=1, operation=OperationType.INSERT, updated_fields=None, **job_overrides):
    return ChangeEvent(
        sequence=sequence,
        job_id=job_overrides.get("job_id", "job-1"),
        operation=operation,
        updated_fields=updated_fields or {},
        document=make_job(**job_overrides),
    )


class TestIsQualifying:
    """The three ways a change can make a job publishable."""

    def test_insert_publishable(self):
        assert is_qualifying(event())

    def test_insert_pending_moderation(self):
        assert not is_qualifying(event(moderation_status=ModerationStatus.PENDING))

    def test_update_approved_while_active(self):
        assert is_qualifying(
            event(operation=OperationType.UPDATE, updated_fields={"moderation_status": "APPROVED"})
        )

    def test_update_activated_while_approved(self):
        assert is_qualifying(
            event(operation=OperationType.UPDATE, updated_fields={"status": "ACTIVE"})
        )

    def test_update_approved_while_inactive(self):
        assert not is_qualifying(
            event(
                operation=OperationType.UPDATE,
                updated_fields={"moderation_status": "APPROVED"},
                status=JobStatus.INACTIVE,
            )
        )

    def test_update_of_unrelated_field(self):
        assert not is_qualifying(
            event(operation=OperationType.UPDATE, updated_fields={"title": "Lead Developer"})
        )

    def test_missing_document(self):
        assert not is_qualifying(
            ChangeEvent(sequence=1, job_id="job-1", operation=OperationType.INSERT)
        )


@pytest.mark.usefixtures("database")
class TestSqlChangeFeed:
    """Tests for the table-backed change feed."""

    def test_ensure_supported(self):
        SqlChangeFeed().ensure_supported()

    def test_unreachable_store_is_unavailable(self):
        def broken_session():
            raise RuntimeError("connection refused")

        with pytest.raises(ChangeFeedUnavailableError, match="unreachable"):
            SqlChangeFeed(session_factory=broken_session).ensure_supported()

    def test_read_and_resume(self, clock):
        with get_session() as session:
            repo = JobRepository(session)
            repo.insert(make_job("job-1"), recorded_at=DEFAULT_NOW)
            repo.insert(make_job("job-2"), recorded_at=DEFAULT_NOW)

        feed = SqlChangeFeed(consumer_name="worker", clock=clock)
        assert feed.load_position() == 0

        events = feed.read(0, limit=10)
        assert [e.job_id for e in events] == ["job-1", "job-2"]

        feed.save_position(events[0].sequence)
        assert feed.load_position() == events[0].sequence
        assert [e.job_id for e in feed.read(feed.load_position(), limit=10)] == ["job-2"]


@pytest.mark.usefixtures("database")
class TestJobMatcher:
    """Tests for turning a publishable job into pending matches."""

    @pytest.fixture
    def index(self):
        return SqlSubscriptionIndex()

    @pytest.fixture
    def dedup(self, clock):
        return DedupCache(clock=clock)

    @pytest.fixture
    def matcher(self, index, dedup, clock):
        return JobMatcher(index, dedup, clock=clock)

    def subscribe(self, index, *subscriptions):
        with get_session() as session:
            repo = SubscriptionRepository(session)
            for subscription in subscriptions:
                repo.add(subscription)
        index.apply(
            [IndexCommand.add(s.keyword, s.owner_id) for s in subscriptions if s.active]
        )

    def test_match_writes_pending_and_marks_dedup(self, matcher, index, dedup, clock):
        self.subscribe(
            index,
            make_subscription("sub-1", "owner-1", keyword="javascript"),
            make_subscription(
                "sub-2",
                "owner-1",
                keyword="react",
                category="IT",
                created_at=DEFAULT_NOW + timedelta(minutes=1),
            ),
            make_subscription("sub-3", "owner-2", keyword="python"),
        )

        outcome = matcher.process_job(make_job())

        assert outcome.candidate_owners == ["owner-1"]
        assert outcome.inserted == 1
        match = outcome.matches[0]
        assert match.subscription_id == "sub-1"
        assert match.score == 65
        assert match.matching_subscription_ids == ["sub-1", "sub-2"]
        assert (match.expires_at - match.created_at).days == 7
        assert dedup.has_been_notified("owner-1", "job-1")

    def test_primary_prefers_highest_score(self, matcher, index):
        self.subscribe(
            index,
            make_subscription("sub-1", "owner-1", keyword="react"),
            make_subscription("sub-2", "owner-1", keyword="javascript", category="IT"),
        )

        outcome = matcher.process_job(make_job())

        assert outcome.matches[0].subscription_id == "sub-2"
        assert outcome.matches[0].score == 75

    def test_deduplicated_owner_is_skipped(self, matcher, index, dedup):
        self.subscribe(index, make_subscription(keyword="javascript"))
        dedup.mark_notified("owner-1", "job-1")

        outcome = matcher.process_job(make_job())

        assert outcome.deduplicated_owners == ["owner-1"]
        assert outcome.matches == []

    def test_second_run_inserts_nothing(self, matcher, index):
        self.subscribe(index, make_subscription(keyword="javascript"))

        matcher.process_job(make_job())
        outcome = matcher.process_job(make_job())

        assert outcome.inserted == 0
        with get_session() as session:
            assert len(PendingMatchRepository(session).list_for_owner("owner-1")) == 1

    def test_rematch_after_ttl_replaces_unpurged_expired_row(self, matcher, index, clock):
        self.subscribe(index, make_subscription(keyword="javascript"))
        matcher.process_job(make_job())

        rematched_at = clock.advance(days=7, seconds=1)
        outcome = matcher.process_job(make_job())

        assert outcome.inserted == 1
        with get_session() as session:
            pending = PendingMatchRepository(session).list_for_owner("owner-1")
        assert [p.created_at for p in pending] == [rematched_at]
        assert pending[0].expires_at == rematched_at + timedelta(days=7)

    def test_filter_only_owner_not_matched(self, matcher, index):
        self.subscribe(index, make_subscription(keyword="developer", category="SALES"))

        outcome = matcher.process_job(make_job())

        assert outcome.candidate_owners == ["owner-1"]
        assert outcome.matches == []

    def test_stale_index_entry_is_ignored(self, matcher, index):
        index.apply([IndexCommand.add("javascript", "ghost")])

        outcome = matcher.process_job(make_job())

        assert outcome.candidate_owners == ["ghost"]
        assert outcome.matches == []

    def test_not_publishable_skipped(self, matcher):
        outcome = matcher.process_job(make_job(status=JobStatus.EXPIRED))

        assert outcome.skipped_reason == "not_publishable"

    def test_no_candidates(self, matcher):
        outcome = matcher.process_job(make_job())

        assert outcome.skipped_reason == "no_candidates"

    def test_no_keywords(self, matcher):
        outcome = matcher.process_job(make_job(title="QA", skills=[], description=""))

        assert outcome.skipped_reason == "no_keywords"


class TestJobChangeListener:
    """Tests for the listener loop with a mocked feed and matcher."""

    @pytest.fixture
    def feed(self):
        feed = MagicMock()
        feed.load_position.return_value = 0
        feed.read.return_value = []
        return feed

    @pytest.fixture
    def matcher(self):
        return MagicMock()

    @pytest.fixture
    def listener(self, feed, matcher):
        return JobChangeListener(feed, matcher, backoff_seconds=0, poll_interval_seconds=0)

    def test_poll_once_processes_in_order_and_saves_token(self, listener, feed, matcher):
        feed.read.return_value = [
            event(1, job_id="job-1"),
            event(2, job_id="job-2", moderation_status=ModerationStatus.PENDING),
            event(3, job_id="job-3"),
        ]

        assert listener.poll_once() == 3

        feed.read.assert_called_once_with(0, 100)
        assert [c.args[0].job_id for c in matcher.process_job.call_args_list] == ["job-1", "job-3"]
        assert [c.args[0] for c in feed.save_position.call_args_list] == [1, 2, 3]
        assert listener.stats.events_seen == 3
        assert listener.stats.events_qualifying == 2

    def test_failing_event_is_dropped(self, listener, feed, matcher):
        matcher.process_job.side_effect = [IndexUnavailableError("busy"), None]
        feed.read.return_value = [event(1, job_id="job-1"), event(2, job_id="job-2")]

        assert listener.poll_once() == 2

        assert matcher.process_job.call_count == 2
        assert listener.stats.events_failed == 1
        feed.save_position.assert_called_with(2)

    def test_stale_document_is_dropped(self, listener, matcher):
        stale = event(
            1,
            operation=OperationType.UPDATE,
            updated_fields={"moderation_status": "APPROVED"},
            moderation_status=ModerationStatus.REJECTED,
        )

        assert listener.handle_event(stale) is False
        matcher.process_job.assert_not_called()

    def test_resumes_after_saved_position(self, listener, feed):
        feed.load_position.return_value = 41

        listener.poll_once()
        listener.poll_once()

        feed.load_position.assert_called_once()
        assert feed.read.call_args_list[0].args == (41, 100)

    def test_run_backs_off_and_resubscribes(self, listener, feed):
        reads = []

        def read(after, limit):
            reads.append(after)
            if len(reads) == 1:
                raise ChangeFeedError("feed closed")
            listener.stop()
            return []

        feed.read.side_effect = read

        listener.run()

        assert listener.stats.reconnects == 1
        assert feed.load_position.call_count == 2
        assert reads == [0, 0]

    def test_start_check_propagates_unavailable(self, listener, feed):
        feed.ensure_supported.side_effect = ChangeFeedUnavailableError("no feed")

        with pytest.raises(ChangeFeedUnavailableError):
            listener.start_check()

    def test_stop_before_batch_finishes(self, listener, feed, matcher):
        feed.read.return_value = [event(1, job_id="job-1"), event(2, job_id="job-2")]
        matcher.process_job.side_effect = lambda job: listener.stop()

        assert listener.poll_once() == 1
        feed.save_position.assert_called_once_with(1)
