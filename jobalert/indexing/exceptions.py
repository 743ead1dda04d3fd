"""Subscription index exceptions."""


class SubscriptionIndexError(Exception):
    """Base exception for subscription index failures."""

    pass


class IndexUnavailableError(SubscriptionIndexError):
    """Raised when the index cannot apply or answer a command in time.

    The index is a derived view; callers on the write path log and swallow
    this so the subscription store write still succeeds.
    """

    pass
