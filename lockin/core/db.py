"""Database setup using SQLAlchemy with SQLite.

Creates engine, sessionmaker, and Base. Uses lockin/data/lockin.db unless DATABASE_URL is set.
Also owns STATE_LOCK, the single in-process serialization point for every
wallet and limit mutation.
"""
from __future__ import annotations

import threading
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base, Session
from sqlalchemy.pool import StaticPool

from lockin.core.config import get_settings


DATA_DIR = Path(__file__).resolve().parent.parent / "data"
DATA_DIR.mkdir(parents=True, exist_ok=True)
DB_PATH = DATA_DIR / "lockin.db"

SQLALCHEMY_DATABASE_URL = get_settings().database_url or f"sqlite:///{DB_PATH}"

Base = declarative_base()

# Re-entrant so the sync coordinator can hold it while calling wallet/limit methods.
STATE_LOCK = threading.RLock()


def make_engine(url: str) -> Engine:
    """Create an engine; in-memory SQLite shares one connection across threads."""
    if url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(url, pool_pre_ping=True)


def make_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=bind)


engine = make_engine(SQLALCHEMY_DATABASE_URL)

SessionLocal = make_session_factory(engine)


def init_db(bind: Engine | None = None) -> None:
    """Create all tables (idempotent)."""
    from lockin.core import models  # noqa: F401  (registers tables on Base)

    Base.metadata.create_all(bind=bind or engine)


def get_db() -> Generator[Session, None, None]:
    """Yield a DB session for FastAPI dependencies."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
