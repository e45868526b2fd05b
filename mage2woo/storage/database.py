"""Database engine and session management for the job store."""

from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool


class Base(DeclarativeBase):
    pass


def create_db_engine(url: str) -> Engine:
    """Create an engine; SQLite connections may be shared across threads."""
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(url, pool_pre_ping=True)


class Database:
    """Owns the engine and hands out sessions."""

    def __init__(self, url: Optional[str] = None, engine: Optional[Engine] = None):
        if engine is None and not url:
            raise ValueError("Either a database URL or an engine is required")
        self.engine = engine or create_db_engine(url)
        self.SessionLocal = sessionmaker(
            bind=self.engine,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )

    def create_all(self) -> None:
        # Table modules register themselves on Base.metadata
        from . import tables  # noqa: F401

        Base.metadata.create_all(self.engine)

    def new_session(self) -> Session:
        return self.SessionLocal()

    @contextmanager
    def session(self) -> Iterator[Session]:
        db = self.SessionLocal()
        try:
            yield db
        finally:
            db.close()

    def dispose(self) -> None:
        self.engine.dispose()
