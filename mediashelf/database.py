"""SQLite engine and session management."""

from typing import Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool

from .config import get_database_path


class Base(DeclarativeBase):
    """Declarative base shared by every table."""
    pass


# Process-wide engine and session maker, created on first use
_engine: Optional[Engine] = None
_session_maker: Optional[sessionmaker] = None


@event.listens_for(Engine, "connect")
def _enable_foreign_keys(dbapi_connection, connection_record):
    # Show -> season -> episode -> file cascades depend on this
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def make_engine(url: Optional[str] = None) -> Engine:
    """Create an engine for ``url``, defaulting to the library file.

    ``sqlite://`` gives one in-memory database shared by every session.
    """
    url = url or f"sqlite:///{get_database_path()}"
    kwargs = {"connect_args": {"check_same_thread": False}, "echo": False}
    if url == "sqlite://":
        kwargs["poolclass"] = StaticPool
    return create_engine(url, **kwargs)


def make_session_maker(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        _engine = make_engine()
    return _engine


def get_session_maker() -> sessionmaker:
    global _session_maker
    if _session_maker is None:
        _session_maker = make_session_maker(get_engine())
    return _session_maker


def init_database(engine: Optional[Engine] = None) -> None:
    """Create any missing tables."""
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=engine or get_engine())


def get_db():
    """FastAPI dependency yielding a session."""
    db = get_session_maker()()
    try:
        yield db
    finally:
        db.close()
