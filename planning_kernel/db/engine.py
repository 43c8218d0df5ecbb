"""
Engine and session management.

One process-wide engine, created by :func:`init_engine_from_url`:

* PostgreSQL: pooled connections at READ COMMITTED.  Services take a row
  lock on the budget request (``SELECT ... FOR UPDATE``) wherever a status
  check and the write that depends on it must agree.
* SQLite: a single shared connection (``StaticPool``) so an in-memory
  database outlives individual sessions.  Used by the test suite and local
  tooling; SQLite ignores ``FOR UPDATE``.

Sessions are created with ``expire_on_commit=False`` so DTOs can be built
from ORM rows after a service method has committed.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from planning_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")


@dataclass(frozen=True)
class PoolSettings:
    """Connection pool sizing for server databases.  Ignored for SQLite."""

    size: int = 20
    max_overflow: int = 10
    timeout_seconds: int = 30
    recycle_seconds: int = 1800
    pre_ping: bool = True


@dataclass
class _Database:
    engine: Engine
    sessions: sessionmaker[Session]


_database: _Database | None = None


def _build_engine(url: str, echo: bool, pool: PoolSettings) -> Engine:
    if make_url(url).get_backend_name() == "sqlite":
        return create_engine(
            url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    return create_engine(
        url,
        echo=echo,
        poolclass=QueuePool,
        pool_size=pool.size,
        max_overflow=pool.max_overflow,
        pool_timeout=pool.timeout_seconds,
        pool_recycle=pool.recycle_seconds,
        pool_pre_ping=pool.pre_ping,
        isolation_level="READ COMMITTED",
    )


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool: PoolSettings | None = None,
) -> Engine:
    """
    Create the engine and session factory, replacing any previous ones.

    ``database_url`` is any SQLAlchemy URL, e.g.
    ``postgresql+psycopg2://planning@localhost/planning`` or ``sqlite://``.
    """
    global _database
    reset_engine()
    engine = _build_engine(database_url, echo, pool or PoolSettings())
    _database = _Database(engine, sessionmaker(bind=engine, expire_on_commit=False))

    configure_logging()
    logger.info("engine_initialized", extra={
        "dialect": engine.dialect.name,
        "echo": echo,
    })
    return engine


def _current() -> _Database:
    if _database is None:
        raise RuntimeError("Database not initialised; call init_engine_from_url() first")
    return _database


def get_engine() -> Engine:
    return _current().engine


def get_session() -> Session:
    """Open a new session on the current engine."""
    return _current().sessions()


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    Commit on clean exit, roll back and re-raise on error, always close.

    Example::

        with session_scope() as session:
            service = BudgetRequestService(session, drug_master, clock=clock)
            service.submit(request_id, actor_id)
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("session_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables() -> None:
    """Create every planning table, importing the module ORM models first."""
    from planning_kernel.db.base import Base
    from planning_modules._orm_registry import import_all_orm_models

    import_all_orm_models()
    Base.metadata.create_all(get_engine())
    logger.info("tables_created", extra={"tables": sorted(Base.metadata.tables)})


def drop_tables() -> None:
    from planning_kernel.db.base import Base

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the current engine, if any.  Safe to call repeatedly."""
    global _database
    if _database is not None:
        _database.engine.dispose()
        _database = None
