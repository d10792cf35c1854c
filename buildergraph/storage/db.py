"""SQLAlchemy engine and session factory.

The database is an explicit object built by the process bootstrap rather
than a module-level engine, so tests can run against a throwaway file.
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

Base = declarative_base()


class Database:
    """Owns the engine and hands out short-lived sessions."""

    def __init__(self, url: str = "sqlite:///./data/buildergraph.db", echo: bool = False) -> None:
        self.url = url
        kwargs: dict = {"echo": echo}
        if url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}  # Required for SQLite
            if ":memory:" in url or url in ("sqlite://", "sqlite:///"):
                # One shared connection, otherwise each session sees an empty database
                kwargs["poolclass"] = StaticPool
            else:
                self._ensure_parent_dir(url)
        self.engine = create_engine(url, **kwargs)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    @staticmethod
    def _ensure_parent_dir(url: str) -> None:
        path = url.split(":///", 1)[-1]
        if path:
            Path(path).parent.mkdir(parents=True, exist_ok=True)

    def init_db(self) -> None:
        """Create all tables. Call once at startup."""
        # Import models so Base.metadata knows about them
        from buildergraph.storage import models  # noqa: F401
        Base.metadata.create_all(bind=self.engine)
        logger.info("Database ready at %s", self.engine.url.render_as_string(hide_password=True))

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Transactional scope: commit on success, roll back on error."""
        db = self.SessionLocal()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def dispose(self) -> None:
        self.engine.dispose()
