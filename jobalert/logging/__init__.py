"""Structured logging helpers: component loggers, formatters and scoped context."""

import logging
from typing import Optional, Union

from .context import clear_log_context, get_log_context, log_context, pop_log_context, push_log_context


class ComponentLoggerAdapter(logging.LoggerAdapter):
    """LoggerAdapter that merges its component field with per-call extra."""

    def process(self, msg, kwargs):
        # Call-site extra wins over the adapter's defaults
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(
    name: str, component: Optional[str] = None
) -> Union[logging.Logger, ComponentLoggerAdapter]:
    """Get a logger that tags every record with a component field.

    Args:
        name: Logger name (typically __name__)
        component: Component identifier, e.g. "listener" or "digest"

    Example:
        >>> logger = get_logger(__name__, component="digest")
        >>> logger.info("Digest run started", extra={"event": "digest.run.started"})
    """
    logger = logging.getLogger(name)

    if component:
        return ComponentLoggerAdapter(logger, {"component": component})

    return logger


__all__ = [
    "ComponentLoggerAdapter",
    "get_logger",
    "log_context",
    "push_log_context",
    "pop_log_context",
    "get_log_context",
    "clear_log_context",
]
