"""Change feed consumption and pending-match production."""

from .exceptions import ChangeFeedError, ChangeFeedUnavailableError
from .feed import ChangeFeed, SqlChangeFeed, is_qualifying
from .matcher import JobMatcher, MatchOutcome
from .service import JobChangeListener, ListenerStats

__all__ = [
    "ChangeFeed",
    "ChangeFeedError",
    "ChangeFeedUnavailableError",
    "JobChangeListener",
    "JobMatcher",
    "ListenerStats",
    "MatchOutcome",
    "SqlChangeFeed",
    "is_qualifying",
]
