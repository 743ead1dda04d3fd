"""Time-bounded "owner already notified about job" markers.

Backed by the dedup_markers table so every listener instance shares it.
This is a best-effort guard: concurrent matchers may both see a pair as
unmarked, which is why pending-match writes are insert-or-ignore as well.
"""

from typing import Iterable, Tuple

from jobalert.logging import get_logger
from jobalert.persistence import DedupMarkerRepository, SessionFactory, get_session
from jobalert.utils.timestamps import Clock, expires_at, utc_now

logger = get_logger(__name__, component="dedup")

DEFAULT_TTL_SECONDS = 7 * 86400


class DedupCache:
    """Check and set (owner, job) markers with a fixed expiry."""

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        session_factory: SessionFactory = get_session,
        clock: Clock = utc_now,
    ):
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
        self.ttl_seconds = ttl_seconds
        self.session_factory = session_factory
        self.clock = clock

    def has_been_notified(self, owner_id: str, job_id: str) -> bool:
        with self.session_factory() as session:
            return DedupMarkerRepository(session).exists(owner_id, job_id, self.clock())

    def mark_notified(self, owner_id: str, job_id: str) -> None:
        self.mark_many([(owner_id, job_id)])

    def mark_many(self, pairs: Iterable[Tuple[str, str]]) -> int:
        """Set or refresh markers for several pairs in one write.

        Returns:
            Number of distinct pairs marked
        """
        pairs = list(dict.fromkeys(pairs))
        if not pairs:
            return 0

        now = self.clock()
        with self.session_factory() as session:
            DedupMarkerRepository(session).upsert(
                pairs, marked_at=now, expires_at=expires_at(now, self.ttl_seconds)
            )

        logger.debug(
            f"Marked {len(pairs)} owner/job pairs as notified",
            extra={"event": "dedup.marked", "pair_count": len(pairs)},
        )
        return len(pairs)

    def purge_expired(self) -> int:
        with self.session_factory() as session:
            purged = DedupMarkerRepository(session).purge_expired(self.clock())
        if purged:
            logger.info(
                f"Purged {purged} expired dedup markers",
                extra={"event": "dedup.purged", "purged_count": purged},
            )
        return purged
