"""Pytest configuration and fixtures for test suite."""

import os
import sys
from pathlib import Path

import pytest

# Set test environment BEFORE any other imports
os.environ.setdefault("APP_ENVIRONMENT", "test")
os.environ.setdefault("EMAIL_PROVIDER", "null")
os.environ.setdefault("DB_DRIVER", "sqlite")

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from config.settings import NotificationSettings, get_notification_settings, get_settings
from database import connection
from database.models import Base
from tests.helpers.trade_data import RecordingEmailProvider, Seeder


def _clear_settings_caches():
    get_settings.cache_clear()
    get_notification_settings.cache_clear()


@pytest.fixture(autouse=True)
def reset_settings_caches():
    """Settings are lru-cached; tests that patch the environment need a fresh load."""
    _clear_settings_caches()
    yield
    _clear_settings_caches()


@pytest.fixture
def engine():
    """In-memory SQLite shared by every session the code under test opens."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    connection.configure_engine(engine)
    yield engine
    connection.close_sync_engine()


@pytest.fixture
def db_session(engine):
    """Session bound to the shared test engine."""
    session = connection.get_sync_session_factory()()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def notification_settings():
    return NotificationSettings(app_url="https://app.example.com/")


@pytest.fixture
def email_provider():
    return RecordingEmailProvider()


@pytest.fixture
def seed(db_session):
    return Seeder(db_session)
