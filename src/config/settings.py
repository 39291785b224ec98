"""Environment-driven settings for the deal notification engine.

Each group reads its own prefix:

- APP_*     application info and environment
- NOTIFY_*  reminder windows, digest sizing and link building
- REDIS_*   Redis connection used as the Celery broker
- CELERY_*  Celery worker and beat behaviour
"""

import logging
from functools import lru_cache
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class RedisSettings(BaseSettings):
    """Redis configuration for the Celery broker and result backend."""

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        extra="ignore",
    )

    host: str = Field(default="localhost", description="Broker hostname")
    port: int = 6379
    password: str = ""
    ssl: bool = Field(default=False, description="Connect with rediss://")

    def url_for(self, db: int) -> str:
        scheme = "rediss" if self.ssl else "redis"
        auth = f":{self.password}@" if self.password else ""
        return f"{scheme}://{auth}{self.host}:{self.port}/{db}"


class CelerySettings(BaseSettings):
    """Celery task queue and beat configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CELERY_",
        extra="ignore",
    )

    broker_db: int = Field(default=1, description="Redis DB number of the broker")
    result_db: int = Field(default=2, description="Redis DB number of the result backend")

    task_serializer: str = "json"
    result_serializer: str = "json"
    accept_content: List[str] = Field(default_factory=lambda: ["json"])

    task_acks_late: bool = Field(default=False, description="Ack only once the task has finished")
    worker_prefetch_multiplier: int = 1
    task_time_limit: int = Field(default=1800, description="Seconds before a task is killed")
    task_soft_time_limit: int = Field(default=1500, description="Seconds before SoftTimeLimitExceeded is raised")


class NotificationSettings(BaseSettings):
    """Reminder, digest and link settings for the notification engine."""

    model_config = SettingsConfigDict(
        env_prefix="NOTIFY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_url: str = Field(
        default="http://localhost:3000",
        description="Base URL used to build action links in notifications and emails",
    )
    platform_name: str = Field(
        default="RWA Platform",
        description="Platform name shown in email headers and footers",
    )
    from_email: str = Field(
        default="notifications@rwa-platform.com",
        description="Default sender address for outbound email",
    )

    # Deadline scanner
    milestone_windows_days: List[int] = Field(
        default=[1, 3, 7],
        description="Lookahead windows (days) for the 1day, 3day and 7day tiers",
    )
    escrow_stale_days: int = Field(
        default=3,
        ge=1,
        description="Days a deal may sit in awaiting_payment before the buyer is reminded",
    )
    dispute_response_days: int = Field(
        default=2,
        ge=1,
        description="Days a pending dispute may go unanswered before the respondent is reminded",
    )

    # Digest
    digest_lookback_hours: int = Field(default=24, ge=1, description="Activity window for the digest")
    digest_activity_limit: int = Field(default=10, ge=1, description="Max activity items gathered")
    digest_preview_items: int = Field(default=5, ge=1, description="Max deals/activities shown in email")

    # Scheduling
    scan_interval_seconds: float = Field(default=3600.0, gt=0, description="Deadline scan interval")
    digest_hour: int = Field(default=8, ge=0, le=23, description="UTC hour of the daily digest")
    digest_minute: int = Field(default=0, ge=0, le=59, description="UTC minute of the daily digest")

    @field_validator("milestone_windows_days")
    @classmethod
    def _windows_ascending(cls, value: List[int]) -> List[int]:
        if len(value) != 3 or any(v <= 0 for v in value) or sorted(value) != value:
            raise ValueError("milestone_windows_days must be three ascending positive integers")
        return value

    @field_validator("app_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def lookahead_days(self) -> int:
        """Widest milestone window; anything due later is ignored."""
        return self.milestone_windows_days[-1]


class Settings(BaseSettings):
    """APP_* settings plus accessors for the other groups."""

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    name: str = Field(default="Deal Notification Engine", description="Application name")
    version: str = "1.0.0"
    debug: bool = False
    environment: str = Field(default="development", description="development, test, staging or production")

    enable_email: bool = Field(default=True, description="Send transactional email alongside in-app notifications")

    @property
    def redis(self) -> RedisSettings:
        return RedisSettings()

    @property
    def celery(self) -> CelerySettings:
        return CelerySettings()

    @property
    def notifications(self) -> NotificationSettings:
        return NotificationSettings()

    @property
    def is_production(self) -> bool:
        return self.environment.lower() in ("production", "prod", "staging")


@lru_cache
def get_settings() -> Settings:
    settings = Settings()
    logger.debug(f"Loaded settings for environment={settings.environment}")
    return settings


@lru_cache
def get_notification_settings() -> NotificationSettings:
    return NotificationSettings()
