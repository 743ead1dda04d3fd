"""Long-running consumer of the job change feed.

Events are processed one at a time, in feed order. A failing event is logged
and dropped; a failing feed triggers backoff and a resubscribe from the last
saved resume token. ``stop()`` lets the in-flight event finish first.
"""

import threading
from dataclasses import dataclass
from typing import Optional

from jobalert.domain.models import ChangeEvent
from jobalert.logging import get_logger, log_context

from .exceptions import ChangeFeedUnavailableError
from .feed import ChangeFeed, is_qualifying
from .matcher import JobMatcher

logger = get_logger(__name__, component="listener")


@dataclass
class ListenerStats:
    events_seen: int = 0
    events_qualifying: int = 0
    events_failed: int = 0
    reconnects: int = 0


class JobChangeListener:
    """Consumes qualifying change events and hands publishable jobs to the matcher.

    Attributes:
        feed: Change feed to consume
        matcher: Matcher invoked for each publishable job
        backoff_seconds: Wait before resubscribing after a feed error
        poll_interval_seconds: Wait between reads when the feed is idle
        batch_size: Maximum events read per poll
    """

    def __init__(
        self,
        feed: ChangeFeed,
        matcher: JobMatcher,
        backoff_seconds: float = 5.0,
        poll_interval_seconds: float = 1.0,
        batch_size: int = 100,
    ):
        self.feed = feed
        self.matcher = matcher
        self.backoff_seconds = backoff_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self.batch_size = batch_size
        self.stats = ListenerStats()
        self._stop_event = threading.Event()
        self._position: Optional[int] = None

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    def start_check(self) -> None:
        """Verify the feed precondition; failure is fatal for the service.

        Raises:
            ChangeFeedUnavailableError: If the feed cannot be consumed
        """
        try:
            self.feed.ensure_supported()
        except ChangeFeedUnavailableError:
            logger.critical(
                "Change feed unavailable, listener cannot start",
                extra={"event": "listener.feed_unavailable"},
                exc_info=True,
            )
            raise

    def run(self) -> None:
        """Consume the feed until stop() is called."""
        self.start_check()
        self._stop_event.clear()

        logger.info(
            "Job change listener started",
            extra={"event": "listener.started", "batch_size": self.batch_size},
        )

        while not self._stop_event.is_set():
            try:
                processed = self.poll_once()
            except Exception as e:
                self._position = None
                self.stats.reconnects += 1
                logger.error(
                    f"Change feed error, resubscribing in {self.backoff_seconds}s: {e}",
                    extra={
                        "event": "listener.feed_error",
                        "error_type": type(e).__name__,
                        "backoff_seconds": self.backoff_seconds,
                    },
                    exc_info=True,
                )
                self._stop_event.wait(self.backoff_seconds)
                continue

            if processed == 0:
                self._stop_event.wait(self.poll_interval_seconds)

        logger.info(
            "Job change listener stopped",
            extra={
                "event": "listener.stopped",
                "events_seen": self.stats.events_seen,
                "events_qualifying": self.stats.events_qualifying,
                "events_failed": self.stats.events_failed,
                "reconnects": self.stats.reconnects,
            },
        )

    def stop(self) -> None:
        """Request shutdown; the event being processed is allowed to finish."""
        logger.info("Stopping job change listener", extra={"event": "listener.stopping"})
        self._stop_event.set()

    def poll_once(self) -> int:
        """Read one batch and process it.

        The resume token is saved after every event, processed or dropped.

        Returns:
            Number of events consumed

        Raises:
            ChangeFeedError: If the feed cannot be read or the token saved
        """
        if self._position is None:
            self._position = self.feed.load_position()
            logger.info(
                f"Subscribed to change feed after sequence {self._position}",
                extra={"event": "listener.subscribed", "resume_after": self._position},
            )

        events = self.feed.read(self._position, self.batch_size)
        consumed = 0
        for event in events:
            if self._stop_event.is_set():
                break
            self.handle_event(event)
            self.feed.save_position(event.sequence)
            self._position = event.sequence
            consumed += 1
        return consumed

    def handle_event(self, event: ChangeEvent) -> bool:
        """Process one event, isolating any failure to that event.

        Returns:
            True if the event qualified and was matched successfully
        """
        self.stats.events_seen += 1

        with log_context(job_id=event.job_id, sequence=event.sequence):
            if not is_qualifying(event):
                logger.debug(
                    "Change event does not make a job publishable",
                    extra={
                        "event": "listener.event.ignored",
                        "operation": event.operation.value,
                    },
                )
                return False

            self.stats.events_qualifying += 1
            job = event.document
            try:
                if job is None or not job.is_publishable:
                    logger.info(
                        "Job no longer publishable, event dropped",
                        extra={"event": "listener.event.stale"},
                    )
                    return False

                self.matcher.process_job(job)
                return True

            except Exception as e:
                self.stats.events_failed += 1
                logger.error(
                    f"Failed to process change event: {e}",
                    extra={
                        "event": "listener.event.failed",
                        "operation": event.operation.value,
                        "error_type": type(e).__name__,
                    },
                    exc_info=True,
                )
                return False
