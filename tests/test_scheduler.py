"""Unit tests for the digest scheduler.

Covers:
- Cron triggers for the daily and weekly digests in the configured timezone
- Job registration (one job per frequency, max_instances=1, coalescing)
- Start/shutdown lifecycle and shutdown event coordination
- Immediate synchronous runs
"""

import threading
from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from jobalert.config.models import ScheduleConfig
from jobalert.domain.models import Frequency
from jobalert.scheduler import JOB_IDS, DigestScheduler

# Tuesday 2025-11-04 09:00 in Ho Chi Minh City
TUESDAY_MORNING = datetime(2025, 11, 4, 2, 0, tzinfo=timezone.utc)


@pytest.fixture
def scheduler():
    service = DigestScheduler(Mock())
    yield service
    service.shutdown(wait=False)


class TestTriggers:
    """Cron trigger construction."""

    def test_daily_trigger_fires_at_eight_local(self, scheduler):
        trigger = scheduler.build_trigger(Frequency.DAILY)

        next_fire = trigger.get_next_fire_time(None, TUESDAY_MORNING)

        assert next_fire == datetime(2025, 11, 5, 1, 0, tzinfo=timezone.utc)

    def test_weekly_trigger_fires_on_monday(self, scheduler):
        trigger = scheduler.build_trigger(Frequency.WEEKLY)

        next_fire = trigger.get_next_fire_time(None, TUESDAY_MORNING)

        assert next_fire == datetime(2025, 11, 10, 1, 0, tzinfo=timezone.utc)
        assert next_fire.astimezone(timezone.utc).weekday() == 0

    def test_custom_schedule(self):
        service = DigestScheduler(
            Mock(),
            schedule=ScheduleConfig(timezone="UTC", daily_hour=6, weekly_day="fri", weekly_hour=17),
        )

        daily = service.build_trigger("daily").get_next_fire_time(None, TUESDAY_MORNING)
        weekly = service.build_trigger("weekly").get_next_fire_time(None, TUESDAY_MORNING)

        assert daily == datetime(2025, 11, 4, 6, 0, tzinfo=timezone.utc)
        assert weekly == datetime(2025, 11, 7, 17, 0, tzinfo=timezone.utc)


class TestLifecycle:
    """Start, registration and shutdown."""

    def test_not_running_before_start(self, scheduler):
        assert not scheduler.is_running()
        assert scheduler.get_next_run_time(Frequency.DAILY) is None

    def test_start_registers_one_job_per_frequency(self, scheduler):
        scheduler.start()

        assert scheduler.is_running()
        for frequency, job_id in JOB_IDS.items():
            job = scheduler.scheduler.get_job(job_id)
            assert job.args == (frequency,)
            assert job.max_instances == 1
            assert job.coalesce is True
            assert job.misfire_grace_time == 3600
            assert scheduler.get_next_run_time(frequency) is not None

    def test_registers_exactly_two_jobs(self, scheduler):
        scheduler.start()

        assert len(scheduler.scheduler.get_jobs()) == 2

    def test_shutdown_sets_event(self):
        event = threading.Event()
        service = DigestScheduler(Mock(), shutdown_event=event)
        service.start()

        service.shutdown(wait=False)

        assert event.is_set()
        assert not service.is_running()

    def test_shutdown_without_start(self):
        service = DigestScheduler(Mock())

        service.shutdown()

        assert not service.is_running()


class TestTriggerNow:
    """Synchronous digest runs."""

    def test_trigger_now_runs_in_current_thread(self):
        run_digest = Mock(return_value="result")
        service = DigestScheduler(run_digest)

        assert service.trigger_now("weekly") == "result"
        run_digest.assert_called_once_with(Frequency.WEEKLY)
        assert not service.is_running()

    def test_trigger_now_rejects_unknown_frequency(self):
        with pytest.raises(ValueError):
            DigestScheduler(Mock()).trigger_now("hourly")
