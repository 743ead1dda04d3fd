"""Exceptions surfaced to the subscription CRUD caller."""

from typing import List, Optional


class JobAlertError(Exception):
    """Base exception for job alert domain errors."""

    pass


class ValidationError(JobAlertError):
    """Raised when subscription fields are invalid or a limit is exceeded.

    Carries the individual field errors so the caller can shape its own
    response. Never reaches the matching core.
    """

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.message = message
        self.errors = errors or []
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if not self.errors:
            return self.message
        details = "; ".join(self.errors)
        return f"{self.message}: {details}"


class SubscriptionNotFoundError(JobAlertError):
    """Raised when a subscription does not exist or belongs to another owner."""

    pass
