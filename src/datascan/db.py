"""SQLAlchemy engine and session setup."""
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()


def is_memory_sqlite(url: str) -> bool:
    return url.startswith("sqlite") and (":memory:" in url or url in ("sqlite://", "sqlite:///"))


def create_db_engine(url: str, isolation_level: Optional[str] = None, echo: bool = False) -> Engine:
    """Create an engine; in-memory SQLite shares one connection across threads."""
    opts = dict(pool_pre_ping=True, echo=echo)
    if isolation_level:
        opts["isolation_level"] = isolation_level
    if url.startswith("sqlite"):
        opts["connect_args"] = {"check_same_thread": False}
        if is_memory_sqlite(url):
            opts["poolclass"] = StaticPool
    return create_engine(url, **opts)


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine,
    )


@contextmanager
def session_scope(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """Yield a DB session; commits on success, rolls back on error."""
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(engine: Engine) -> None:
    """Create all tables. Use Alembic in production for migrations."""
    from . import db_models  # noqa: F401 - register tables with Base
    Base.metadata.create_all(bind=engine)
