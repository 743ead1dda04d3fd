"""Tagged filter values for subscription criteria.

A subscription field is either ``Exact(value)`` or ``Any``. The wildcard
sentinel ``"ALL"``, an empty string and a missing value all parse to ``Any``.
"""

from dataclasses import dataclass
from typing import Any, Optional

WILDCARD = "ALL"


class FieldFilter:
    """Base class for a single-field filter."""

    is_wildcard: bool = False

    def matches(self, field_value: Any) -> bool:
        raise NotImplementedError

    @staticmethod
    def parse(raw: Optional[str]) -> "FieldFilter":
        """Build a filter from a stored subscription value.

        Args:
            raw: Stored value, possibly None, empty or the wildcard sentinel

        Returns:
            ANY for wildcard-like values, otherwise Exact(raw)
        """
        if raw is None:
            return ANY
        stripped = str(raw).strip()
        if not stripped or stripped.upper() == WILDCARD:
            return ANY
        return Exact(stripped)


@dataclass(frozen=True)
class Exact(FieldFilter):
    """Matches only the exact stored value."""

    value: str

    def matches(self, field_value: Any) -> bool:
        return field_value is not None and str(field_value) == self.value


@dataclass(frozen=True)
class AnyValue(FieldFilter):
    """Matches every value, including a missing one."""

    is_wildcard = True

    def matches(self, field_value: Any) -> bool:
        return True


ANY = AnyValue()
