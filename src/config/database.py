"""
DB_* settings for the store shared with the trade workflow.

Deals, milestones and disputes are read; only notifications and reminder
ledger rows are written. PostgreSQL in deployments, SQLite locally and in
tests.
"""

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """
    Connection and pool settings.

        DB_DRIVER=postgresql DB_HOST=db DB_NAME=rwa_platform
        DB_USER=notifier DB_PASSWORD=secret
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    driver: str = Field(default="sqlite", description="postgresql or sqlite")

    host: str = "localhost"
    port: int = 5432
    name: str = "rwa_platform"
    user: str = ""
    password: str = ""

    sqlite_path: Path = Field(default=Path("data/notifications.db"))

    pool_size: int = Field(default=5, ge=1, le=100)
    max_overflow: int = Field(default=10, ge=0, le=100)
    pool_timeout: int = Field(default=30, ge=1, description="Seconds to wait for a free connection")
    pool_recycle: int = Field(default=1800, ge=60, description="Reconnect after this many seconds")
    pool_pre_ping: bool = True

    echo_sql: bool = False
    query_timeout: int = Field(default=30, ge=1, description="Per-statement limit in seconds")

    @computed_field
    @property
    def is_sqlite(self) -> bool:
        return self.driver.lower().startswith("sqlite")

    @computed_field
    @property
    def is_postgres(self) -> bool:
        return self.driver.lower().startswith("postgres")

    @computed_field
    @property
    def sync_url(self) -> str:
        """SQLAlchemy URL. For SQLite the parent directory is created if missing."""
        if self.is_sqlite:
            self.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
            return f"sqlite:///{self.sqlite_path.absolute()}"

        credentials = self.user
        if credentials and self.password:
            credentials = f"{credentials}:{self.password}"
        prefix = f"{credentials}@" if credentials else ""
        return f"postgresql+psycopg2://{prefix}{self.host}:{self.port}/{self.name}"

    def get_connect_args(self) -> Dict[str, Any]:
        if self.is_sqlite:
            return {"check_same_thread": False, "timeout": self.query_timeout}
        return {"options": f"-c statement_timeout={self.query_timeout * 1000}"}


@lru_cache
def get_database_settings() -> DatabaseSettings:
    return DatabaseSettings()
