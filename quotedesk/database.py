"""
Database connection and session management.
PostgreSQL in production, SQLite for local runs and tests.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from contextlib import contextmanager

from quotedesk.settings import settings


def _create_engine(url: str):
    """
    Create the engine for a database URL.

    SQLite connections are shared across FastAPI's worker threads, and an
    in-memory SQLite database must live on a single connection.
    """
    if not url.startswith("sqlite"):
        return create_engine(url)

    kwargs = {"connect_args": {"check_same_thread": False}}
    if url in ("sqlite://", "sqlite:///:memory:"):
        kwargs["poolclass"] = StaticPool
    return create_engine(url, **kwargs)


# Create engine
engine = _create_engine(settings.DATABASE_URL)

# Create session factory
SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def get_db_context():
    """
    Context manager for database session.

    Usage:
        with get_db_context() as db:
            # Use db session
            pass
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db():
    """
    Initialize the database by creating all tables.
    """
    from quotedesk.db_models import Base

    # Create all tables
    Base.metadata.create_all(bind=engine)
