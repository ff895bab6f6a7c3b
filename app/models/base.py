"""
Base database model and session management
"""
import os
from sqlalchemy import create_engine
from sqlalchemy.pool import NullPool, StaticPool
from sqlalchemy.orm import declarative_base, sessionmaker
from app.config import get_settings

settings = get_settings()


def build_engine(database_url: str):
    """Create an engine, with the SQLite special cases the sync workers need"""
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        # Single shared connection so every session sees the same in-memory DB
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    if database_url.startswith("sqlite:///") and not database_url.startswith("sqlite:////"):
        # Resolve relative SQLite paths so a changed cwd can't point at a new file
        rel_path = database_url[len("sqlite:///"):]
        database_url = "sqlite:///" + os.path.abspath(rel_path)

    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": 60},
            poolclass=NullPool,
            pool_pre_ping=True
        )

    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
        pool_recycle=300,
    )


engine = build_engine(settings.database_url)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for all models
Base = declarative_base()


def get_db():
    """Get database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None):
    """Create any missing tables"""
    # Register every model on Base.metadata before create_all
    import app.models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
