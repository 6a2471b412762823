"""Database configuration and session management."""
import os
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

# Use PostgreSQL in production (from DATABASE_URL env var), SQLite locally
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./audited.db")


def normalize_database_url(url: str) -> str:
    # Render/Heroku hand out postgres:// but SQLAlchemy needs postgresql://
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


def make_engine(url: str = None, **kwargs) -> Engine:
    """Engine for ``url`` (default DATABASE_URL) with per-backend settings."""
    url = normalize_database_url(url or DATABASE_URL)
    if url.startswith("sqlite"):
        # Sessions are used from FastAPI's worker threads
        return create_engine(url, connect_args={"check_same_thread": False}, **kwargs)
    return create_engine(
        url,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=5,
        max_overflow=10,
        **kwargs
    )


def make_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(autoflush=False, bind=bind)


engine = make_engine()

SessionLocal = make_session_factory(engine)

Base = declarative_base()
