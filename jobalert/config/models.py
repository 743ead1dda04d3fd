"""Configuration schema models using Pydantic."""

from enum import Enum
from typing import Dict
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator, model_validator

from jobalert.domain.models import Frequency

from .duration import DurationParseError, parse_duration, validate_duration_range

WEEKDAYS = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    KEY_VALUE = "key-value"


def _checked_duration(value: str, label: str, min_seconds: int, max_seconds: int) -> str:
    try:
        seconds = parse_duration(value)
        validate_duration_range(
            seconds, min_seconds=min_seconds, max_seconds=max_seconds, label=label
        )
        return value
    except DurationParseError as e:
        raise ValueError(str(e)) from e


class ScheduleConfig(BaseModel):
    """When digest runs fire."""

    timezone: str = Field("Asia/Ho_Chi_Minh", description="IANA timezone for both triggers")
    daily_hour: int = Field(8, ge=0, le=23, description="Hour of the daily digest")
    weekly_day: str = Field("mon", description="Day of the weekly digest (mon..sun)")
    weekly_hour: int = Field(8, ge=0, le=23, description="Hour of the weekly digest")
    misfire_grace: str = Field("1h", description="How late a missed trigger may still run")

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v.strip())
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: '{v}'") from e
        return v.strip()

    @field_validator("weekly_day")
    @classmethod
    def validate_weekly_day(cls, v: str) -> str:
        day = v.strip().lower()[:3]
        if day not in WEEKDAYS:
            raise ValueError(f"weekly_day must be one of: {', '.join(WEEKDAYS)}")
        return day

    @field_validator("misfire_grace")
    @classmethod
    def validate_misfire_grace(cls, v: str) -> str:
        return _checked_duration(v, "misfire_grace", 1, 86400)

    @property
    def misfire_grace_seconds(self) -> int:
        return parse_duration(self.misfire_grace)


class LimitsConfig(BaseModel):
    """Operational limits on subscriptions, digests and retention."""

    max_active_subscriptions: int = Field(
        3, ge=1, le=100, description="Active subscriptions allowed per owner"
    )
    max_jobs_per_digest: int = Field(20, ge=1, le=500, description="Job cap per digest")
    dedup_ttl: str = Field("7d", description="How long a dedup marker suppresses re-matching")
    pending_match_ttl: str = Field("7d", description="How long an unaggregated match is kept")

    @field_validator("dedup_ttl", "pending_match_ttl")
    @classmethod
    def validate_ttl(cls, v: str, info) -> str:
        return _checked_duration(v, info.field_name, 60, 90 * 86400)

    @property
    def dedup_ttl_seconds(self) -> int:
        return parse_duration(self.dedup_ttl)

    @property
    def pending_match_ttl_seconds(self) -> int:
        return parse_duration(self.pending_match_ttl)


class MatchingConfig(BaseModel):
    """Scoring weights and keyword-extraction heuristics."""

    title_weight: int = Field(20, ge=0)
    skill_weight: int = Field(15, ge=0)
    description_weight: int = Field(5, ge=0)
    filter_weight: int = Field(30, ge=0)
    category_bonus: int = Field(10, ge=0)
    acceptance_threshold: int = Field(
        30, ge=0, description="A pair is accepted only if its score is strictly greater"
    )
    description_word_limit: int = Field(
        20, ge=0, le=1000, description="Leading description words used as keywords"
    )
    min_keyword_length: int = Field(3, ge=1, le=20)

    @model_validator(mode="after")
    def validate_reachable(self):
        best = (
            self.title_weight
            + self.skill_weight
            + self.description_weight
            + self.filter_weight
            + self.category_bonus
        )
        if best <= self.acceptance_threshold:
            raise ValueError(
                f"acceptance_threshold ({self.acceptance_threshold}) is unreachable: "
                f"the highest possible score is {best}"
            )
        return self


class ListenerConfig(BaseModel):
    """Change feed consumer settings."""

    backoff: str = Field("5s", description="Wait before resubscribing after a feed error")
    poll_interval: str = Field("1s", description="Idle wait between empty feed reads")
    batch_size: int = Field(100, ge=1, le=10000)
    consumer_name: str = Field("matching-worker", min_length=1)

    @field_validator("backoff", "poll_interval")
    @classmethod
    def validate_interval(cls, v: str, info) -> str:
        return _checked_duration(v, info.field_name, 1, 3600)

    @field_validator("consumer_name")
    @classmethod
    def strip_consumer_name(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("consumer_name cannot be empty")
        return stripped

    @property
    def backoff_seconds(self) -> int:
        return parse_duration(self.backoff)

    @property
    def poll_interval_seconds(self) -> int:
        return parse_duration(self.poll_interval)


class IndexConfig(BaseModel):
    """Subscription index settings."""

    timeout: str = Field("2s", description="Longest an index command group may wait")

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: str) -> str:
        return _checked_duration(v, "index timeout", 1, 60)

    @property
    def timeout_seconds(self) -> int:
        return parse_duration(self.timeout)


class GatewayConfig(BaseModel):
    """Outbound notification gateway settings."""

    routing_keys: Dict[Frequency, str] = Field(
        default_factory=lambda: {
            Frequency.DAILY: "notification.job_alert.daily",
            Frequency.WEEKLY: "notification.job_alert.weekly",
        }
    )
    timeout: int = Field(10, ge=1, le=120, description="HTTP request timeout (seconds)")
    max_retries: int = Field(
        3, ge=0, le=10, description="Number of retry attempts for failed publishes"
    )
    retry_backoff_multiplier: float = Field(
        2.0, ge=1.0, le=5.0, description="Exponential backoff multiplier for retries"
    )
    retry_initial_delay: float = Field(
        1.0, ge=0.0, le=60.0, description="Initial retry delay in seconds"
    )

    @model_validator(mode="after")
    def validate_routing_keys(self):
        missing = [f.value for f in Frequency if not self.routing_keys.get(f)]
        if missing:
            raise ValueError(f"routing_keys missing entries for: {', '.join(missing)}")
        return self

    def routing_key_for(self, frequency: Frequency) -> str:
        return self.routing_keys[Frequency(frequency)]


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(LogLevel.INFO, description="Log level")
    format: LogFormat = Field(
        LogFormat.KEY_VALUE, description="Log output format (json or key-value)"
    )

    model_config = {"use_enum_values": True, "validate_default": True}


class AppConfig(BaseModel):
    """Root configuration object for the job alert engine."""

    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    limits: LimitsConfig = Field(default_factory=LimitsConfig)
    matching: MatchingConfig = Field(default_factory=MatchingConfig)
    listener: ListenerConfig = Field(default_factory=ListenerConfig)
    index: IndexConfig = Field(default_factory=IndexConfig)
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )

