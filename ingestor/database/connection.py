"""
Database engine and session factory.
"""

import structlog
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from ingestor.config import settings
from ingestor.models.base import Base

logger = structlog.get_logger()


def create_db_engine(database_url: str = None, **kwargs) -> Engine:
    """Create an engine; SQLite gets foreign keys enabled so cascades apply"""
    url = database_url or settings.DATABASE_URL
    if url.startswith("sqlite"):
        engine = create_engine(url, connect_args={"check_same_thread": False}, **kwargs)

        @event.listens_for(engine, "connect")
        def _enable_sqlite_fks(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    return create_engine(
        url,
        pool_size=settings.DB_POOL_SIZE,
        pool_pre_ping=True,
        **kwargs,
    )


engine = create_db_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind: Engine = None) -> None:
    """Create any missing tables"""
    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database schema ensured")


def check_connection(session_factory: sessionmaker = None) -> None:
    """Fail fast at startup when storage is unreachable"""
    db: Session = (session_factory or SessionLocal)()
    try:
        db.execute(text("SELECT 1"))
    finally:
        db.close()
