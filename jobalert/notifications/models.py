"""Data models and exceptions for outbound notifications."""

from dataclasses import dataclass
from typing import Optional


class NotificationError(Exception):
    """Base exception for notification-related errors."""

    pass


class GatewayError(NotificationError):
    """Raised when the gateway rejects or cannot receive a publish.

    Attributes:
        status_code: HTTP status, or 0 for connection-level failures
        retryable: Whether a later attempt might succeed
    """

    def __init__(self, message: str, status_code: int = 0, retryable: bool = True):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class DispatchError(NotificationError):
    """Raised when one digest group cannot be dispatched."""

    def __init__(self, message: str, owner_id: str, subscription_id: str):
        super().__init__(message)
        self.owner_id = owner_id
        self.subscription_id = subscription_id


@dataclass
class PublishResult:
    """Outcome of a publish call.

    Attributes:
        routing_key: Routing key the payload was published under
        attempts: Number of attempts made
        message_id: Identifier returned by the gateway, if any
    """

    routing_key: str
    attempts: int
    message_id: Optional[str] = None
