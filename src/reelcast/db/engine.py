"""Database engine and session factory.

SQLite connections get WAL mode and a busy timeout so that several worker
processes can write to the same file without tripping over each other.
"""

from pathlib import Path

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from reelcast.config import get_settings
from reelcast.db.models import Base


def configure_sqlite_pragmas(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


def create_db_engine(url: str | None = None) -> Engine:
    """Create an engine for ``url`` (defaults to settings) and ensure the schema exists."""
    url = url or get_settings().database_url
    parsed = make_url(url)

    kwargs: dict = {}
    if parsed.get_backend_name() == "sqlite":
        kwargs["connect_args"] = {"check_same_thread": False}
        if parsed.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
        else:
            Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(url, **kwargs)
    if parsed.get_backend_name() == "sqlite":
        event.listens_for(engine, "connect")(configure_sqlite_pragmas)

    Base.metadata.create_all(engine)
    return engine


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(engine, expire_on_commit=False)
