"""Configuration module for the deal notification engine."""

from .database import DatabaseSettings, get_database_settings
from .settings import (
    CelerySettings,
    NotificationSettings,
    RedisSettings,
    Settings,
    get_notification_settings,
    get_settings,
)

__all__ = [
    "DatabaseSettings",
    "get_database_settings",
    "CelerySettings",
    "NotificationSettings",
    "RedisSettings",
    "Settings",
    "get_notification_settings",
    "get_settings",
]
