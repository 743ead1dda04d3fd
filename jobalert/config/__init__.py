"""Configuration management module for the job alert engine."""

from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .loader import load_config, parse_config
from .models import (
    AppConfig,
    GatewayConfig,
    IndexConfig,
    LimitsConfig,
    ListenerConfig,
    LogFormat,
    LoggingConfig,
    LogLevel,
    MatchingConfig,
    ScheduleConfig,
)

__all__ = [
    # Main loader functions
    "load_config",
    "parse_config",
    "load_environment_config",
    # Configuration models
    "AppConfig",
    "ScheduleConfig",
    "LimitsConfig",
    "MatchingConfig",
    "ListenerConfig",
    "IndexConfig",
    "GatewayConfig",
    "LoggingConfig",
    "EnvironmentConfig",
    # Enums
    "LogLevel",
    "LogFormat",
    # Exceptions
    "ConfigurationError",
]
