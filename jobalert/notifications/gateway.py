"""Outbound notification gateway.

The gateway contract is ``publish(routing_key, payload)``. The HTTP
implementation POSTs ``{"routing_key": ..., "payload": ...}`` as JSON to the
gateway endpoint and retries transient failures with exponential backoff.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

import requests

from jobalert.config.models import GatewayConfig
from jobalert.logging import get_logger

from .models import GatewayError, PublishResult

logger = get_logger(__name__, component="gateway")

MAX_RETRY_DELAY_SECONDS = 60.0


class NotificationGateway(ABC):
    """Publishes messages to the external delivery channel."""

    @abstractmethod
    def publish(self, routing_key: str, payload: Dict[str, Any]) -> PublishResult:
        """Publish one message.

        Raises:
            GatewayError: If the message could not be published
        """

    def close(self) -> None:
        pass


class HttpNotificationGateway(NotificationGateway):
    """Gateway client over HTTP using a pooled requests session.

    Attributes:
        url: Gateway publish endpoint
        config: Timeout and retry settings
    """

    def __init__(
        self,
        url: str,
        config: Optional[GatewayConfig] = None,
        token: Optional[str] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if not url or not url.strip():
            raise ValueError("Gateway URL cannot be empty")

        self.url = url.strip()
        self.config = config or GatewayConfig()
        self._sleep = sleep
        self._session = session or requests.Session()
        self._session.headers.update(
            {"Content-Type": "application/json", "User-Agent": "JobAlertEngine/1.0"}
        )
        if token:
            self._session.headers["Authorization"] = f"Bearer {token}"

    def publish(self, routing_key: str, payload: Dict[str, Any]) -> PublishResult:
        max_attempts = self.config.max_retries + 1
        last_error: Optional[GatewayError] = None

        for attempt in range(1, max_attempts + 1):
            if attempt > 1:
                delay = min(
                    self.config.retry_initial_delay
                    * (self.config.retry_backoff_multiplier ** (attempt - 2)),
                    MAX_RETRY_DELAY_SECONDS,
                )
                logger.warning(
                    f"Retrying publish to {routing_key} (attempt {attempt}/{max_attempts}) "
                    f"after {delay:.1f}s delay",
                    extra={"event": "gateway.publish.retry", "attempt": attempt},
                )
                self._sleep(delay)

            try:
                message_id = self._post(routing_key, payload)
            except GatewayError as e:
                last_error = e
                if not e.retryable:
                    break
                continue

            logger.debug(
                f"Published to {routing_key}",
                extra={
                    "event": "gateway.publish.succeeded",
                    "routing_key": routing_key,
                    "attempt": attempt,
                },
            )
            return PublishResult(routing_key=routing_key, attempts=attempt, message_id=message_id)

        logger.error(
            f"Publish to {routing_key} failed: {last_error}",
            extra={
                "event": "gateway.publish.failed",
                "routing_key": routing_key,
                "status_code": last_error.status_code if last_error else None,
                "retryable": last_error.retryable if last_error else None,
            },
        )
        raise last_error

    def _post(self, routing_key: str, payload: Dict[str, Any]) -> Optional[str]:
        try:
            response = self._session.post(
                self.url,
                json={"routing_key": routing_key, "payload": payload},
                timeout=self.config.timeout,
            )
        except requests.exceptions.Timeout as e:
            raise GatewayError(
                f"Gateway request timed out after {self.config.timeout} seconds",
                retryable=True,
            ) from e
        except requests.exceptions.RequestException as e:
            raise GatewayError(f"Gateway request failed: {e}", retryable=True) from e

        if response.status_code >= 400:
            retryable = response.status_code >= 500 or response.status_code == 429
            logger.log(
                logging.WARNING if retryable else logging.ERROR,
                f"HTTP {response.status_code} from gateway",
                extra={
                    "event": "gateway.publish.http_error",
                    "status_code": response.status_code,
                    "retryable": retryable,
                },
            )
            raise GatewayError(
                f"HTTP {response.status_code}: {response.reason}",
                status_code=response.status_code,
                retryable=retryable,
            )

        try:
            body = response.json()
        except ValueError:
            return None
        return body.get("id") if isinstance(body, dict) else None

    def close(self) -> None:
        self._session.close()
