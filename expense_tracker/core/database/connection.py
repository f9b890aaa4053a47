"""
Database connection and session management.
"""
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.exc import OperationalError, DBAPIError
from sqlalchemy.pool import StaticPool
from typing import Generator, Optional
import logging
import time

from expense_tracker.core.database.models import Base

logger = logging.getLogger(__name__)

engine: Optional[Engine] = None
SessionLocal: Optional[sessionmaker] = None


def _create_engine(database_url: str) -> Engine:
    # Railway and Heroku hand out postgres:// URLs
    if database_url.startswith('postgres://'):
        database_url = database_url.replace('postgres://', 'postgresql://', 1)

    if database_url.startswith('sqlite'):
        kwargs = {'connect_args': {'check_same_thread': False}}
        if ':memory:' in database_url or database_url in ('sqlite://', 'sqlite:///'):
            kwargs['poolclass'] = StaticPool
        return create_engine(database_url, **kwargs)

    return create_engine(
        database_url,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=5,
        max_overflow=10,
        pool_recycle=3600,  # Recycle connections after 1 hour
    )


def init_db(database_url: str, max_retries: int = 3, retry_delay: float = 1.0) -> Engine:
    """
    Initialize the engine and session factory, creating tables if missing.
    Call this once at application startup.

    Args:
        database_url: SQLAlchemy URL
        max_retries: Number of connection attempts
        retry_delay: Seconds to wait between retries

    Raises:
        RuntimeError: If connection fails after all retries
    """
    global engine, SessionLocal

    for attempt in range(max_retries):
        try:
            new_engine = _create_engine(database_url)

            with new_engine.connect() as conn:
                conn.execute(text("SELECT 1"))

            Base.metadata.create_all(bind=new_engine)

            engine = new_engine
            SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
            logger.info(f"Database initialized: {database_url.split('@')[1] if '@' in database_url else 'local'}")
            return engine

        except (OperationalError, DBAPIError) as e:
            logger.warning(f"Database connection attempt {attempt + 1}/{max_retries} failed: {e}")
            if attempt < max_retries - 1:
                time.sleep(retry_delay * (attempt + 1))
            else:
                logger.error(f"Database initialization failed after {max_retries} attempts")
                raise RuntimeError(f"Failed to connect to database: {e}") from e


def get_session_factory() -> sessionmaker:
    if not SessionLocal:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return SessionLocal


def get_db() -> Generator[Session, None, None]:
    """
    Get a database session (FastAPI dependency).

    Usage:
        @router.get("/users/{user_id}")
        def read_user(db: Session = Depends(get_db)):
            ...
    """
    db = get_session_factory()()
    try:
        yield db
    except (OperationalError, DBAPIError) as e:
        logger.error(f"Database session error: {e}")
        db.rollback()
        raise
    finally:
        db.close()
