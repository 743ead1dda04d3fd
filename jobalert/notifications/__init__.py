"""Outbound notification gateway and job alert payloads.

This module provides:
- NotificationGateway: publish(routing_key, payload) contract
- HttpNotificationGateway: requests-based client with retry/backoff
- build_job_alert_payload: the JOB_ALERT digest message
"""

from .gateway import HttpNotificationGateway, NotificationGateway
from .models import DispatchError, GatewayError, NotificationError, PublishResult
from .payloads import JOB_ALERT_TYPE, build_job_alert_payload

__all__ = [
    # Gateways
    "NotificationGateway",
    "HttpNotificationGateway",
    # Models and results
    "PublishResult",
    # Exceptions
    "NotificationError",
    "GatewayError",
    "DispatchError",
    # Payloads
    "JOB_ALERT_TYPE",
    "build_job_alert_payload",
]
