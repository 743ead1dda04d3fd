"""Subscription keyword index and its synchronization with the store."""

from .exceptions import IndexUnavailableError, SubscriptionIndexError
from .maintainer import IndexDrift, RebuildResult, SubscriptionIndexMaintainer
from .store import IndexCommand, IndexOp, SqlSubscriptionIndex, SubscriptionIndex

__all__ = [
    "IndexCommand",
    "IndexDrift",
    "IndexOp",
    "IndexUnavailableError",
    "RebuildResult",
    "SqlSubscriptionIndex",
    "SubscriptionIndex",
    "SubscriptionIndexError",
    "SubscriptionIndexMaintainer",
]
