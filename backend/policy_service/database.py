"""Database engine and session handling

The :class:`Database` handle is built once by the application lifespan and
kept on ``app.state``; request handlers get sessions through :func:`get_db`.
"""
from typing import Any, Dict, Generator

from fastapi import Request
from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from policy_service.utils.logger import logger

Base = declarative_base()


class Database:
    """Owns the engine and session factory for one process"""

    def __init__(
        self,
        url: str,
        pool_size: int = 10,
        max_overflow: int = 10,
        pool_timeout: int = 30,
        pool_recycle: int = 3600,
    ):
        self.url = url
        if url.startswith("sqlite"):
            # SQLite has no connection pool to size; share across threads
            self.engine = create_engine(url, connect_args={"check_same_thread": False})
        else:
            self.engine = create_engine(
                url,
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_timeout=pool_timeout,
                pool_recycle=pool_recycle,
                pool_pre_ping=True,
            )
        self.session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def create_all(self) -> None:
        """Create tables directly (local development / SQLite); production uses Alembic"""
        # Import models so they register on Base.metadata
        from policy_service import models  # noqa: F401

        Base.metadata.create_all(bind=self.engine)
        logger.info("Database tables ensured")

    def session(self) -> Session:
        return self.session_factory()

    def ping(self) -> None:
        with self.engine.connect() as connection:
            connection.execute(text("SELECT 1"))

    def status(self) -> Dict[str, Any]:
        url = self.engine.url
        return {
            "dialect": url.get_backend_name(),
            "host": url.host,
            "name": url.database,
        }

    def dispose(self) -> None:
        self.engine.dispose()
        logger.info("Database connections closed")


def get_db(request: Request) -> Generator[Session, None, None]:
    """Yield a session bound to the application's database"""
    db = request.app.state.database.session()
    try:
        yield db
    finally:
        db.close()
