"""Configuration errors raised while loading config.yaml and the environment."""

from typing import List, Optional

# Where a bad setting was read from; shown in the first line of the message.
ENVIRONMENT_SOURCE = "environment (.env)"


class ConfigurationError(Exception):
    """
    Raised when the engine cannot start with the given settings.

    Carries every problem found in one pass so the operator can fix the
    config file or the environment in a single edit, plus hints pointing at
    config.example.yaml and .env.example.

    Attributes:
        message: One-line summary
        errors: Individual problems, one per offending setting
        suggestions: Hints for fixing them
        source: Config file path or ``ENVIRONMENT_SOURCE``, if known
    """

    def __init__(
        self,
        message: str,
        errors: Optional[List[str]] = None,
        suggestions: Optional[List[str]] = None,
        source: Optional[str] = None,
    ):
        self.message = message
        self.errors = list(errors or [])
        self.suggestions = list(suggestions or [])
        self.source = source
        super().__init__(self._render())

    def _render(self) -> str:
        headline = f"{self.message} [{self.source}]" if self.source else self.message
        lines = [headline]

        if self.errors:
            noun = "problem" if len(self.errors) == 1 else "problems"
            lines.append(f"{len(self.errors)} {noun}:")
            lines.extend(f"  {i}. {error}" for i, error in enumerate(self.errors, 1))

        if self.suggestions:
            lines.append("To fix:")
            lines.extend(f"  - {suggestion}" for suggestion in self.suggestions)

        return "\n".join(lines)
