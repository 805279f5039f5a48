"""Database connection, session management and atomic operation scopes."""

from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.pool import StaticPool

from settlement_engine.config import get_settings
from settlement_engine.errors import ConflictError


def _enable_sqlite_savepoints(engine: Engine) -> None:
    """Let SQLAlchemy emit BEGIN itself so SAVEPOINT works under pysqlite."""

    @event.listens_for(engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_db_engine(database_url: str | None = None) -> Engine:
    """Create a database engine for the given (or configured) URL."""
    url = database_url or get_settings().database_url

    if url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url in ("sqlite://", "sqlite+pysqlite://"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(url, echo=False, **kwargs)
        _enable_sqlite_savepoints(engine)
        return engine

    return create_engine(url, echo=False, pool_pre_ping=True, pool_size=10, max_overflow=20)


# Global engine and session factory
_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def init_db(database_url: str | None = None) -> tuple[Engine, sessionmaker[Session]]:
    """Initialize database engine and session factory, creating tables."""
    global _engine, _session_factory
    if _engine is None:
        from settlement_engine.models import Base

        _engine = create_db_engine(database_url)
        Base.metadata.create_all(_engine)
        _session_factory = sessionmaker(
            _engine,
            expire_on_commit=False,
        )
    return _engine, _session_factory


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Get a database session that commits on success."""
    _, factory = init_db()
    with factory() as session:
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise


@contextmanager
def atomic(session: Session) -> Generator[Session, None, None]:
    """Run a multi-step operation as one unit.

    Every write made inside the block is rolled back together if any step
    raises. Stale version checks on flush surface as ConflictError.
    """
    try:
        with session.begin_nested():
            yield session
    except StaleDataError as exc:
        raise ConflictError(str(exc)) from exc
