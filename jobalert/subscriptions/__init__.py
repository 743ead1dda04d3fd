"""Subscription CRUD boundary service."""

from .service import SubscriptionService

__all__ = ["SubscriptionService"]
