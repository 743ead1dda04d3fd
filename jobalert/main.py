"""Main entry point for the Job Alert Engine service."""

from dotenv import load_dotenv
load_dotenv()

import argparse
import signal
import sys
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from jobalert.config.environment import EnvironmentConfig
from jobalert.config.exceptions import ConfigurationError
from jobalert.config.loader import load_config
from jobalert.config.models import AppConfig
from jobalert.dedup import DedupCache
from jobalert.digest import DigestAggregator
from jobalert.domain.models import Frequency
from jobalert.indexing import SqlSubscriptionIndex, SubscriptionIndexMaintainer
from jobalert.listener import JobChangeListener, JobMatcher, SqlChangeFeed
from jobalert.listener.exceptions import ChangeFeedUnavailableError
from jobalert.logging import get_logger
from jobalert.logging.config import configure_logging
from jobalert.matching import MatchScorer
from jobalert.notifications import HttpNotificationGateway, NotificationGateway
from jobalert.persistence.database import close_database, init_database
from jobalert.scheduler import DigestScheduler
from jobalert.subscriptions import SubscriptionService

logger = get_logger(__name__, component="cli")

COMMANDS = ("serve", "digest", "rebuild-index")
LISTENER_JOIN_TIMEOUT_SECONDS = 30.0


@dataclass
class Components:
    """Service objects wired from configuration."""

    index: SqlSubscriptionIndex
    maintainer: SubscriptionIndexMaintainer
    subscriptions: SubscriptionService
    dedup: DedupCache
    matcher: JobMatcher
    listener: JobChangeListener
    gateway: Optional[NotificationGateway] = None
    aggregator: Optional[DigestAggregator] = None


def load_runtime_config(
    config_path: Optional[Path], log_level_override: Optional[str], require_gateway: bool = False
) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load and prepare runtime configuration.

    Args:
        config_path: Path to configuration file, or None to search defaults
        log_level_override: Log level from CLI (takes precedence)
        require_gateway: Whether the command publishes digests

    Returns:
        Tuple of (AppConfig, EnvironmentConfig) with the effective log level set

    Raises:
        ConfigurationError: If configuration is invalid
    """
    app_config, env_config = load_config(config_path, require_gateway=require_gateway)

    # Log level priority: CLI > Environment > Config
    if log_level_override:
        env_config.log_level = log_level_override
    elif env_config.log_level:
        pass
    elif app_config.logging and app_config.logging.level:
        env_config.log_level = app_config.logging.level
    else:
        env_config.log_level = "INFO"

    return app_config, env_config


def build_components(
    app_config: AppConfig,
    env_config: EnvironmentConfig,
    gateway: Optional[NotificationGateway] = None,
) -> Components:
    """
    Wire the index, matcher, listener and aggregator from configuration.

    A gateway is created from ``GATEWAY_URL`` when none is passed in; without
    either, no aggregator is built.
    """
    limits = app_config.limits

    index = SqlSubscriptionIndex(timeout=app_config.index.timeout_seconds)
    maintainer = SubscriptionIndexMaintainer(index)
    subscriptions = SubscriptionService(
        maintainer, max_active_subscriptions=limits.max_active_subscriptions
    )
    dedup = DedupCache(ttl_seconds=limits.dedup_ttl_seconds)

    matcher = JobMatcher(
        index,
        dedup,
        scorer=MatchScorer(app_config.matching),
        matching_config=app_config.matching,
        pending_match_ttl_seconds=limits.pending_match_ttl_seconds,
    )
    listener = JobChangeListener(
        SqlChangeFeed(consumer_name=app_config.listener.consumer_name),
        matcher,
        backoff_seconds=app_config.listener.backoff_seconds,
        poll_interval_seconds=app_config.listener.poll_interval_seconds,
        batch_size=app_config.listener.batch_size,
    )

    if gateway is None and env_config.gateway_url:
        gateway = HttpNotificationGateway(
            env_config.gateway_url, config=app_config.gateway, token=env_config.gateway_token
        )

    aggregator = None
    if gateway is not None:
        aggregator = DigestAggregator(
            gateway,
            gateway_config=app_config.gateway,
            max_jobs_per_digest=limits.max_jobs_per_digest,
            dedup_cache=dedup,
        )

    return Components(
        index=index,
        maintainer=maintainer,
        subscriptions=subscriptions,
        dedup=dedup,
        matcher=matcher,
        listener=listener,
        gateway=gateway,
        aggregator=aggregator,
    )


def run_digest_once(components: Components, frequency: Frequency) -> int:
    """Run one digest for a frequency and return the exit code."""
    logger.info(
        f"Executing manual {frequency.value} digest",
        extra={"event": "service.manual_digest.starting", "frequency": frequency.value},
    )
    result = components.aggregator.run(frequency)

    logger.info(
        f"Manual digest completed: "
        f"{len(result.groups)} groups, "
        f"{result.published_count} published, "
        f"{result.failed_count} failed, "
        f"{result.pending_deleted} pending matches cleaned",
        extra={
            "event": "service.manual_digest.completed",
            "duration_seconds": result.duration_seconds,
            "had_errors": result.had_errors,
            "skipped": result.skipped,
        },
    )
    return 1 if result.had_errors or result.skipped else 0


def run_rebuild_index(components: Components) -> int:
    """Rebuild the subscription index from the store and report drift."""
    result = components.maintainer.rebuild()
    drift = result.drift_before

    print(
        f"Index rebuilt: {result.keyword_count} keywords, {result.pair_count} owner entries "
        f"({len(drift.missing)} missing, {len(drift.extra)} extra before rebuild)"
    )
    return 0


def serve(components: Components, app_config: AppConfig, start_time: float) -> int:
    """Run the listener and the digest scheduler until a shutdown signal arrives."""
    shutdown_event = threading.Event()

    components.maintainer.rebuild()
    components.listener.start_check()

    listener_thread = threading.Thread(
        target=components.listener.run, name="job-change-listener", daemon=True
    )
    scheduler = DigestScheduler(
        run_digest=components.aggregator.run,
        schedule=app_config.schedule,
        shutdown_event=shutdown_event,
    )

    def signal_handler(signum, frame):
        logger.info(
            f"Received signal {signum}, shutting down",
            extra={"event": "service.signal_received", "signal": signum},
        )
        shutdown_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        listener_thread.start()
        scheduler.start()

        logger.info(
            "Listener and scheduler started. Press Ctrl+C to stop",
            extra={"event": "service.daemon_mode.started"},
        )
        shutdown_event.wait()
    except KeyboardInterrupt:
        logger.info(
            "Keyboard interrupt received, shutting down",
            extra={"event": "service.keyboard_interrupt"},
        )
    finally:
        components.listener.stop()
        if listener_thread.is_alive():
            listener_thread.join(timeout=LISTENER_JOIN_TIMEOUT_SECONDS)
        scheduler.shutdown(wait=True)
        components.gateway.close()
        close_database()

    uptime_seconds = time.time() - start_time
    logger.info(
        "Job Alert Engine stopped",
        extra={"event": "service.stopping", "uptime_seconds": round(uptime_seconds, 2)},
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="jobalert",
        description="Job Alert Engine - matches new job postings to candidate subscriptions "
        "and publishes daily and weekly digests",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: config.yaml, then config/config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config and environment)",
    )

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("serve", help="Run the change listener and digest scheduler (default)")
    digest_parser = subparsers.add_parser("digest", help="Run one digest and exit")
    digest_parser.add_argument(
        "--frequency",
        choices=[f.value for f in Frequency],
        default=Frequency.DAILY.value,
        help="Frequency class to aggregate (default: daily)",
    )
    subparsers.add_parser(
        "rebuild-index", help="Rebuild the subscription index from the store and report drift"
    )
    return parser


def main(argv: Optional[list] = None) -> int:
    """
    Main entry point for the Job Alert Engine.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    start_time = time.time()
    args = build_parser().parse_args(argv)
    command = args.command or "serve"

    try:
        # Step 1: Load configuration early (before logging for format detection)
        app_config, env_config = load_runtime_config(
            args.config, args.log_level, require_gateway=command in ("serve", "digest")
        )

        # Step 2: Configure logging early
        log_format = app_config.logging.format if app_config.logging else "key-value"
        configure_logging(
            level=env_config.log_level,
            format_type=log_format,
            environment=env_config.environment,
        )

        logger.info(
            "Job Alert Engine starting",
            extra={
                "event": "service.starting",
                "command": command,
                "config_path": str(args.config) if args.config else None,
                "log_level": env_config.log_level,
            },
        )

        # Step 3: Initialize database
        init_database(env_config.database_url)

        logger.info(
            "Configuration loaded",
            extra={
                "event": "config.loaded",
                "timezone": app_config.schedule.timezone,
                "max_active_subscriptions": app_config.limits.max_active_subscriptions,
                "max_jobs_per_digest": app_config.limits.max_jobs_per_digest,
                "log_format": log_format,
            },
        )

        # Step 4: Wire services
        components = build_components(app_config, env_config)
        logger.info("Services initialized", extra={"event": "services.initialized"})

        # Step 5: Branch based on command
        if command == "serve":
            return serve(components, app_config, start_time)

        try:
            if command == "digest":
                exit_code = run_digest_once(components, Frequency(args.frequency))
            else:
                exit_code = run_rebuild_index(components)
        finally:
            if components.gateway is not None:
                components.gateway.close()
            close_database()

        logger.info(
            "Job Alert Engine stopped",
            extra={
                "event": "service.stopping",
                "uptime_seconds": round(time.time() - start_time, 2),
            },
        )
        return exit_code

    except ConfigurationError as e:
        print(f"Configuration Error: {e}", file=sys.stderr)
        logger.error(
            f"Configuration error: {e}",
            extra={"event": "config.error", "error_type": "ConfigurationError"},
        )
        return 1
    except ChangeFeedUnavailableError as e:
        print(f"Change feed unavailable: {e}", file=sys.stderr)
        close_database()
        return 2
    except KeyboardInterrupt:
        print("\nShutdown requested by user", file=sys.stderr)
        return 0
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        logger.critical(
            "Fatal error during startup",
            extra={
                "event": "service.startup.failed",
                "error_type": type(e).__name__,
                "error": str(e),
            },
            exc_info=True,
        )
        return 1


if __name__ == "__main__":
    sys.exit(main())
