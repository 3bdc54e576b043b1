"""SQLAlchemy engine and session factory."""
from typing import Any, Dict

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from .config import get_settings


class Base(DeclarativeBase):
    pass


def build_engine(database_url: str, timeout: float = 5.0) -> Engine:
    connect_args: Dict[str, Any] = {}
    if database_url.startswith("sqlite"):
        # TestClient and the threadpool share one SQLite connection pool
        connect_args = {"check_same_thread": False, "timeout": timeout}
        return create_engine(database_url, connect_args=connect_args)
    return create_engine(database_url, pool_pre_ping=True, pool_timeout=timeout)


settings = get_settings()
engine = build_engine(settings.database_url, settings.store_timeout_seconds)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)

