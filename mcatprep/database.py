"""
Engine, session factory and declarative base.

SQLite is used for local development and tests, PostgreSQL in production.
Statements slower than SLOW_QUERY_THRESHOLD_MS are logged as warnings on the
"sqlalchemy.query_timing" logger.
"""
import logging
import os
import time

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

query_logger = logging.getLogger("sqlalchemy.query_timing")
query_logger.setLevel(logging.DEBUG if os.getenv("DEBUG_QUERIES") else logging.WARNING)

SLOW_QUERY_THRESHOLD_MS = int(os.getenv("SLOW_QUERY_THRESHOLD_MS", "100"))
MAX_LOGGED_STATEMENT = 500


def normalize_database_url(url: str) -> str:
    # Hosted Postgres providers hand out postgres:// URLs
    if url.startswith("postgres://"):
        return "postgresql://" + url[len("postgres://"):]
    return url


DATABASE_URL = normalize_database_url(os.getenv("DATABASE_URL", "sqlite:///./mcatprep.db"))


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}, "pool_pre_ping": True}
    return {
        "pool_pre_ping": True,
        "pool_recycle": 1800,  # seconds
        "pool_size": 5,
        "max_overflow": 10,
        "pool_timeout": 30,
    }


engine = create_engine(DATABASE_URL, **_engine_options(DATABASE_URL))


@event.listens_for(Engine, "before_cursor_execute")
def _start_timer(conn, cursor, statement, parameters, context, executemany):
    conn.info.setdefault("query_start_time", []).append(time.perf_counter())


@event.listens_for(Engine, "after_cursor_execute")
def _log_slow_query(conn, cursor, statement, parameters, context, executemany):
    start_times = conn.info.get("query_start_time")
    if not start_times:
        return

    elapsed_ms = (time.perf_counter() - start_times.pop()) * 1000
    if elapsed_ms > SLOW_QUERY_THRESHOLD_MS:
        if len(statement) > MAX_LOGGED_STATEMENT:
            statement = statement[:MAX_LOGGED_STATEMENT] + "..."
        query_logger.warning("SLOW QUERY (%.2fms): %s", elapsed_ms, statement)
    else:
        query_logger.debug("query took %.2fms", elapsed_ms)


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Per-request session for FastAPI dependencies."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
