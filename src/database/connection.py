"""
Engine and session handling for the notification jobs.

The deadline scan, the digest run and the dispute handler each open a
single session with ``get_db_session()`` and keep it for the whole run.
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import NullPool, QueuePool

from config.database import DatabaseSettings, get_database_settings

logger = logging.getLogger(__name__)

_sync_engine: Optional[Engine] = None
_sync_session_factory: Optional[sessionmaker] = None


def _engine_options(settings: DatabaseSettings) -> Dict[str, Any]:
    options: Dict[str, Any] = {
        "echo": settings.echo_sql,
        "connect_args": settings.get_connect_args(),
    }
    if settings.is_sqlite:
        options["poolclass"] = NullPool
        return options

    options.update(
        poolclass=QueuePool,
        pool_size=settings.pool_size,
        max_overflow=settings.max_overflow,
        pool_timeout=settings.pool_timeout,
        pool_recycle=settings.pool_recycle,
        pool_pre_ping=settings.pool_pre_ping,
    )
    return options


def _session_factory_for(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)


def get_sync_engine(settings: Optional[DatabaseSettings] = None) -> Engine:
    """Return the shared engine, building it from DB_* settings on first call."""
    global _sync_engine

    if _sync_engine is None:
        settings = settings or get_database_settings()
        target = settings.name if settings.is_postgres else str(settings.sqlite_path)
        logger.info(f"Opening {settings.driver} engine for {target}")
        _sync_engine = create_engine(settings.sync_url, **_engine_options(settings))

    return _sync_engine


def get_sync_session_factory(settings: Optional[DatabaseSettings] = None) -> sessionmaker:
    global _sync_session_factory

    if _sync_session_factory is None:
        _sync_session_factory = _session_factory_for(get_sync_engine(settings))
    return _sync_session_factory


def configure_engine(engine: Engine) -> None:
    """Use an engine owned by the caller instead of building one."""
    global _sync_engine, _sync_session_factory
    _sync_engine = engine
    _sync_session_factory = _session_factory_for(engine)


@contextmanager
def get_db_session(settings: Optional[DatabaseSettings] = None) -> Generator[Session, None, None]:
    """
    Session scope for one job run.

    Components commit their own writes; anything still pending is committed
    on clean exit and rolled back if the body raises.
    """
    session = get_sync_session_factory(settings)()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_database(settings: Optional[DatabaseSettings] = None) -> None:
    """Create missing tables; existing ones are not altered."""
    from database.models import Base

    Base.metadata.create_all(get_sync_engine(settings))
    logger.info("Notification tables present")


def close_sync_engine(close_connections: bool = True) -> None:
    """
    Dispose of the shared engine. Called on worker shutdown and in tests.

    A forked child passes ``close_connections=False`` so sockets still used
    by the parent are left open.
    """
    global _sync_engine, _sync_session_factory

    if _sync_engine is None:
        return
    logger.info("Disposing database engine")
    _sync_engine.dispose(close=close_connections)
    _sync_engine = None
    _sync_session_factory = None
