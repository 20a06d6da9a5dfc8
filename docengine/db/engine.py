"""
Module: docengine.db.engine
Responsibility: Owns the process-wide SQLAlchemy engine and session factory
    and the ``session_scope`` transaction boundary.
Architecture position: Engine > DB.  ``create_tables``/``drop_tables``
    import docengine.models so every table is registered on the metadata;
    nothing else here depends on the model or service layers.

Dialect notes:
    - PostgreSQL runs at READ COMMITTED.  Per-key serialisation comes from
      row locks: the sequence UPDATE, and SELECT ... FOR UPDATE on journal
      entries.
    - SQLite gets ``PRAGMA foreign_keys=ON`` on every connection and a
      default busy timeout; writers queue on the database lock.

Nothing in this module commits except ``session_scope``.
"""

import atexit
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from docengine.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def _sqlite_on_connect(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys=ON")
    finally:
        cursor.close()


def _engine_options(
    backend: str,
    database: str | None,
    *,
    pool_size: int,
    max_overflow: int,
    pool_timeout: int,
    pool_recycle: int,
    sqlite_busy_timeout_s: float,
) -> dict[str, Any]:
    pooling = {
        "pool_size": pool_size,
        "max_overflow": max_overflow,
        "pool_timeout": pool_timeout,
    }
    if backend != "sqlite":
        return {
            **pooling,
            "pool_pre_ping": True,
            "pool_recycle": pool_recycle,
            "isolation_level": "READ COMMITTED",
        }

    options: dict[str, Any] = {
        "connect_args": {"check_same_thread": False, "timeout": sqlite_busy_timeout_s},
    }
    # :memory: databases use SingletonThreadPool, which rejects sizing
    if database not in (None, "", ":memory:"):
        options.update(pooling)
    return options


def init_engine_from_url(
    database_url: str,
    *,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    sqlite_busy_timeout_s: float = 30.0,
) -> Engine:
    """
    Create the engine and session factory, replacing any previous ones.

    ``sqlite_busy_timeout_s`` is only the connection default; allocation
    and transition calls apply their own per-call timeouts through
    db/locking.py.
    """
    global _engine, _session_factory

    url = make_url(database_url)
    backend = url.get_backend_name()

    engine = create_engine(
        url,
        echo=echo,
        **_engine_options(
            backend,
            url.database,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            sqlite_busy_timeout_s=sqlite_busy_timeout_s,
        ),
    )
    if backend == "sqlite":
        event.listen(engine, "connect", _sqlite_on_connect)

    _engine = engine
    _session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={"dialect": backend, "pool_size": pool_size, "max_overflow": max_overflow},
    )
    return engine


def _require_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Database engine not initialised; call init_engine_from_url() first")
    return _engine


def get_engine() -> Engine:
    return _require_engine()


def get_session_factory() -> sessionmaker[Session]:
    """Factory for callers that need one session per thread."""
    _require_engine()
    return _session_factory


def get_session() -> Session:
    return get_session_factory()()


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    Commit on success, roll back and re-raise on error, always close.

    Allocating a number and writing the document that carries it belong
    in one scope, so neither can be committed without the other::

        with session_scope() as session:
            DocumentService(session, allocator, actor_id).create(...)
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables() -> None:
    from docengine.db.base import Base
    import docengine.models  # noqa: F401

    Base.metadata.create_all(_require_engine())


def drop_tables() -> None:
    """Drop every engine table.  Test teardown only."""
    from docengine.db.base import Base
    import docengine.models  # noqa: F401

    Base.metadata.drop_all(_require_engine())


def reset_engine() -> None:
    """Dispose pooled connections and forget the engine."""
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


atexit.register(reset_engine)
