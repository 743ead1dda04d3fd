"""Test helper utilities for Job Alert Engine tests."""

from .fakes import (
    DEFAULT_NOW,
    FailingGateway,
    FrozenClock,
    RecordingGateway,
    make_draft,
    make_job,
    make_subscription,
)

__all__ = [
    "DEFAULT_NOW",
    "FailingGateway",
    "FrozenClock",
    "RecordingGateway",
    "make_draft",
    "make_job",
    "make_subscription",
]
