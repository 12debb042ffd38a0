"""Configuration schema using Pydantic."""

from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings


class ScheduleConfig(BaseModel):
    """Occurrence matching and duplicate-suppression tuning.

    The defaults reproduce the production behaviour: a 15-minute tolerance
    window around each rule's time, and a 5/15-minute cooldown split at a
    distance of 2 minutes.
    """

    tolerance_minutes: int = Field(15, ge=0)
    short_cooldown_minutes: int = Field(5, ge=0)
    long_cooldown_minutes: int = Field(15, ge=0)
    close_distance_threshold: int = Field(2, ge=0)
    utc_offset_hours: int = Field(9, ge=-12, le=14)  # reference timezone (KST)
    # Same-day distance by default: 23:58 vs 00:02 is 1436 minutes apart.
    wrap_midnight: bool = False
    retry_delay_s: float = Field(2.0, ge=0)
    timer_intervals_s: list[int] = Field(default_factory=lambda: [60, 300])

    @field_validator("timer_intervals_s")
    @classmethod
    def validate_intervals(cls, v: list[int]) -> list[int]:
        if not v:
            raise ValueError("timer_intervals_s must not be empty")
        for interval in v:
            if interval <= 0:
                raise ValueError(f"Invalid timer interval {interval}: must be positive")
        return v


class StoreConfig(BaseModel):
    """Which record store backs rules and the delivery ledger."""

    backend: Literal["supabase", "json"] = "supabase"
    json_path: str = "~/.weeklybot/store.json"  # used when backend == "json"


class SupabaseConfig(BaseModel):
    """Supabase (PostgREST) connection settings."""

    url: str = ""
    service_role_key: str = ""
    rules_table: str = "weekly_notifications"
    deliveries_table: str = "sent_notifications"
    timeout_s: float = 10.0


class SlackConfig(BaseModel):
    """Slack incoming-webhook settings."""

    webhook_url: str = ""
    test_webhook_url: str = ""  # Test/debug notifications go here when set
    username: str = "Weekly Notification Bot"
    icon_emoji: str = ":bell:"
    timeout_s: float = 10.0


class LedgerConfig(BaseModel):
    """Delivery ledger settings."""

    timeout_s: float = 10.0
    retention_hours: int = Field(24, ge=1)  # `weeklybot cleanup` horizon


class LogsConfig(BaseModel):
    """In-process log buffer settings."""

    max_entries: int = Field(50, ge=1)
    level: str = "INFO"


class Config(BaseSettings):
    """Root configuration for weeklybot."""

    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    supabase: SupabaseConfig = Field(default_factory=SupabaseConfig)
    slack: SlackConfig = Field(default_factory=SlackConfig)
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    logs: LogsConfig = Field(default_factory=LogsConfig)

    class Config:
        env_prefix = "WEEKLYBOT_"
        env_nested_delimiter = "__"
