"""Tests for logging context propagation."""

import threading

import pytest

from jobalert.logging.context import (
    clear_log_context,
    get_log_context,
    log_context,
    pop_log_context,
    push_log_context,
)


@pytest.fixture(autouse=True)
def clean_context():
    """Clear logging context before and after each test."""
    clear_log_context()
    yield
    clear_log_context()


def test_empty_context():
    assert get_log_context() == {}


def test_push_and_pop_fields():
    """Test pushing several fields at once and restoring."""
    token = push_log_context(run_id="abc123", frequency="daily")
    assert get_log_context() == {"run_id": "abc123", "frequency": "daily"}
    pop_log_context(token)
    assert get_log_context() == {}


def test_nested_context_layers():
    """Test nested pushes are popped in reverse order."""
    token1 = push_log_context(run_id="abc123")
    token2 = push_log_context(owner_id="owner-1")
    token3 = push_log_context(subscription_id="sub-1")
    assert get_log_context() == {
        "run_id": "abc123",
        "owner_id": "owner-1",
        "subscription_id": "sub-1",
    }

    pop_log_context(token3)
    assert get_log_context() == {"run_id": "abc123", "owner_id": "owner-1"}
    pop_log_context(token2)
    pop_log_context(token1)
    assert get_log_context() == {}


def test_context_override():
    """Test that pushing the same key shadows the previous value."""
    token1 = push_log_context(job_id="job-1")
    token2 = push_log_context(job_id="job-2")
    assert get_log_context() == {"job_id": "job-2"}

    pop_log_context(token2)
    assert get_log_context() == {"job_id": "job-1"}
    pop_log_context(token1)


def test_context_manager_nested():
    with log_context(run_id="abc123", frequency="weekly"):
        with log_context(owner_id="owner-1"):
            assert get_log_context() == {
                "run_id": "abc123",
                "frequency": "weekly",
                "owner_id": "owner-1",
            }
        assert get_log_context() == {"run_id": "abc123", "frequency": "weekly"}

    assert get_log_context() == {}


def test_context_manager_restores_after_exception():
    with pytest.raises(ValueError):
        with log_context(job_id="job-1", sequence=7):
            raise ValueError("boom")

    assert get_log_context() == {}


def test_get_context_returns_copy():
    token = push_log_context(run_id="abc123")

    context = get_log_context()
    context["owner_id"] = "modified"

    assert get_log_context() == {"run_id": "abc123"}
    pop_log_context(token)


def test_context_is_isolated_per_thread():
    """The listener thread must not see the scheduler thread's fields."""
    seen = {}

    def worker():
        seen["worker"] = get_log_context()

    with log_context(run_id="main-run"):
        thread = threading.Thread(target=worker)
        thread.start()
        thread.join()

    assert seen["worker"] == {}
