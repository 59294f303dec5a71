"""
Embedded database connection and session management.
"""

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

from tornstock.db_models import Base

logger = logging.getLogger(__name__)


class Database:
    """
    Owns the SQLAlchemy engine and session factory for one store.

    Usage:
        db = Database("sqlite:///tornstock.db")
        db.init_db()
        with db.session() as session:
            ...
    """

    def __init__(self, url: str):
        """
        Initialize database.

        Args:
            url: SQLAlchemy database URL
        """
        self.url = url
        connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
        self.engine = create_engine(url, connect_args=connect_args)
        self.SessionLocal = sessionmaker(bind=self.engine)

    def init_db(self):
        """Create all tables and indexes that do not exist yet."""
        Base.metadata.create_all(bind=self.engine)
        logger.info(f"Database opened successfully: {self.engine.url.render_as_string(hide_password=True)}")

    @contextmanager
    def session(self) -> Iterator[Session]:
        """
        Context manager for a database session.

        Commits on success and rolls back on error.

        Usage:
            with db.session() as session:
                # Use session
                pass
        """
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self):
        """Release pooled connections."""
        self.engine.dispose()
