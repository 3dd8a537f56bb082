# SPDX-License-Identifier: AGPL-3.0-or-later
"""Engine and session factory for the application database."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

logger = logging.getLogger(__name__)

_ENGINE: Optional[Engine] = None
_SESSION_FACTORY: Optional[sessionmaker] = None


def sqlite_url(p: Path) -> str:
    """Windows-safe sqlite+pysqlite URL.

    Example:
      C:/data/bottleops.db -> sqlite+pysqlite:///C:/data/bottleops.db
      /var/data/bottleops.db -> sqlite+pysqlite:////var/data/bottleops.db
    """
    return f"sqlite+pysqlite:///{p.resolve().as_posix()}"


def _enable_sqlite_fk(dbapi_conn, _record) -> None:
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys = ON")
    cursor.close()


def configure(url: str | None = None) -> Engine:
    """(Re)bind the module engine. Without ``url`` the configured database path is used."""
    global _ENGINE, _SESSION_FACTORY

    if url is None:
        from bottleops.settings import get_settings

        path = get_settings().resolve_db_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        url = sqlite_url(path)

    if _ENGINE is not None:
        _ENGINE.dispose()

    if url.startswith("sqlite"):
        engine = create_engine(url, future=True, connect_args={"check_same_thread": False})
        event.listen(engine, "connect", _enable_sqlite_fk)
    else:
        engine = create_engine(url, future=True, pool_pre_ping=True)

    _ENGINE = engine
    _SESSION_FACTORY = sessionmaker(
        autocommit=False, autoflush=False, bind=engine, future=True, expire_on_commit=False
    )
    logger.info("database bound: %s", engine.url.render_as_string(hide_password=True))
    return engine


def get_engine() -> Engine:
    if _ENGINE is None:
        configure()
    return _ENGINE  # type: ignore[return-value]


def SessionLocal() -> Session:
    if _SESSION_FACTORY is None:
        configure()
    return _SESSION_FACTORY()  # type: ignore[misc]


def get_session() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(engine: Engine | None = None) -> None:
    from bottleops.appdb.models import Base

    Base.metadata.create_all(bind=engine or get_engine())


__all__ = ["SessionLocal", "configure", "get_engine", "get_session", "init_db", "sqlite_url"]
