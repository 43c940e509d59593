"""SQLAlchemy engine for the status store."""

from sqlalchemy import Engine, create_engine

from instrument_status.core.config import settings


def build_engine(url: str) -> Engine:
    connect_args = {}
    if url.startswith("sqlite"):
        # Upserts run in worker threads; wait on the SQLite write lock instead of failing fast
        connect_args = {"check_same_thread": False, "timeout": 30}
    return create_engine(url, connect_args=connect_args, pool_pre_ping=True)


engine = build_engine(settings.database_url)
