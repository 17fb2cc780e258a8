"""Database session management with connection pooling"""

from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from revenue_sync.config import settings
from revenue_sync.infrastructure.database.models import Base


def build_engine(database_url: str) -> Engine:
    """Create an engine suited to the backend behind the URL"""
    if database_url.startswith("sqlite"):
        # In-memory SQLite must share one connection across sessions
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            return create_engine(
                database_url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        return create_engine(database_url, connect_args={"check_same_thread": False})

    # Connection pool: max 20 connections, recycle after 1 hour to avoid stale connections
    return create_engine(
        database_url,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=10,
        max_overflow=10,
        pool_recycle=3600,
    )


class RevenueStore:
    """
    Owns the engine and session factory shared by every component.

    Each unit of work opens its own session through session(); it commits on
    success and rolls back on error. reset() drops and recreates the schema
    for tests.
    """

    def __init__(self, database_url: Optional[str] = None, engine: Optional[Engine] = None):
        self.engine = engine or build_engine(database_url or settings.database_url)
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def create_all(self) -> None:
        Base.metadata.create_all(bind=self.engine)

    def reset(self) -> None:
        Base.metadata.drop_all(bind=self.engine)
        Base.metadata.create_all(bind=self.engine)

    def dispose(self) -> None:
        self.engine.dispose()

    @contextmanager
    def session(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
