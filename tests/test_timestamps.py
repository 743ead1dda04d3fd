"""Unit tests for timestamp utilities."""

from datetime import datetime, timedelta, timezone

from jobalert.utils.timestamps import ensure_utc, expires_at, utc_now


class TestUtcNow:
    """Tests for utc_now function."""

    def test_utc_now_returns_utc_datetime(self):
        now = utc_now()

        assert isinstance(now, datetime)
        assert now.tzinfo == timezone.utc

    def test_utc_now_is_recent(self):
        before = datetime.now(timezone.utc)
        now = utc_now()
        after = datetime.now(timezone.utc)

        assert before <= now <= after


class TestEnsureUtc:
    """Tests for ensure_utc function."""

    def test_ensure_utc_with_none(self):
        assert ensure_utc(None) is None

    def test_ensure_utc_with_naive_datetime(self):
        """Test that naive datetime is treated as UTC."""
        result = ensure_utc(datetime(2025, 11, 4, 12, 0, 0))

        assert result.tzinfo == timezone.utc
        assert result.hour == 12

    def test_ensure_utc_with_other_timezone(self):
        """08:00 in Ho Chi Minh City (UTC+7) is 01:00 UTC."""
        ict = timezone(timedelta(hours=7))
        result = ensure_utc(datetime(2025, 11, 3, 8, 0, 0, tzinfo=ict))

        assert result.tzinfo == timezone.utc
        assert result.hour == 1


class TestExpiresAt:
    """Tests for expires_at function."""

    def test_expires_at_adds_ttl(self):
        now = datetime(2025, 11, 3, 1, 0, 0, tzinfo=timezone.utc)

        assert expires_at(now, 7 * 86400) == datetime(2025, 11, 10, 1, 0, 0, tzinfo=timezone.utc)

    def test_expires_at_normalizes_naive_input(self):
        result = expires_at(datetime(2025, 11, 3, 1, 0, 0), 60)

        assert result.tzinfo == timezone.utc
        assert result.minute == 1
