"""Database setup for storing user records."""

import logging
from typing import Generator

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

Base = declarative_base()


class Database:
    """Engine and session factory for one application instance."""

    def __init__(self, url: str, echo: bool = False) -> None:
        engine_kwargs = {"future": True, "echo": echo}
        if url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if url in ("sqlite://", "sqlite:///:memory:"):
                # one shared connection, otherwise every session sees an empty database
                engine_kwargs["poolclass"] = StaticPool
        self.url = url
        self.engine = create_engine(url, **engine_kwargs)
        self.SessionLocal = sessionmaker(
            bind=self.engine, autoflush=False, autocommit=False, future=True
        )

    def init_db(self) -> None:
        """Create database tables if they do not exist."""
        # registers the mapped classes on Base.metadata
        from .models import user  # noqa: F401

        Base.metadata.create_all(bind=self.engine)
        logger.info("database ready at %s", self.engine.url.render_as_string(hide_password=True))

    def session(self) -> Session:
        return self.SessionLocal()

    def dispose(self) -> None:
        self.engine.dispose()


def get_db(request: Request) -> Generator[Session, None, None]:
    """Provide a transactional scope around a series of operations."""
    db = request.app.state.database.session()
    try:
        yield db
    finally:
        db.close()
