"""Job alert matching and digest notification engine."""

__version__ = "1.0.0"
