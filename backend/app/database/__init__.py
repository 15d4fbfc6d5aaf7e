"""
Engine, session factory and declarative Base for the events store.

Search runs the synchronous session in a worker thread and the Celery
moderation task opens its own session; both go through ``SessionLocal``.
"""

from __future__ import annotations

import logging
import random
import time
from typing import Any, Callable, Dict, TypeVar

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import DeclarativeMeta, declarative_base, sessionmaker

from app.core.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

# statement_timeout bounds full-text/vector ranking so a slow query
# surfaces as ERR_DB_CONNECT instead of stalling the dual search.
POSTGRES_STATEMENT_TIMEOUT_MS = 3000

# Substrings of OperationalError messages that mean the pooled connection
# was dropped underneath us; anything else is not retried.
TRANSIENT_DISCONNECT_MARKERS = (
    "server closed the connection",
    "ssl connection has been closed unexpectedly",
    "connection reset by peer",
)


def engine_options(url: str) -> Dict[str, Any]:
    if url.startswith("sqlite"):
        return {"future": True, "connect_args": {"check_same_thread": False}}
    return {
        "future": True,
        "pool_size": 5,
        "max_overflow": 5,
        "pool_timeout": 2,
        "pool_recycle": 300,
        "pool_pre_ping": True,
        "connect_args": {
            "connect_timeout": 5,
            "application_name": "eventa_search",
            "options": f"-c statement_timeout={POSTGRES_STATEMENT_TIMEOUT_MS}",
        },
    }


engine: Engine = create_engine(settings.database_url, **engine_options(settings.database_url))


@event.listens_for(engine, "connect")
def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
    logger.debug(f"New {engine.dialect.name} connection opened")


SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)

Base: DeclarativeMeta = declarative_base()


def is_transient_disconnect(exc: OperationalError) -> bool:
    message = str(exc).lower()
    return any(marker in message for marker in TRANSIENT_DISCONNECT_MARKERS)


def with_db_retry(op_name: str, func: Callable[[], T], *, max_attempts: int = 3) -> T:
    """Run ``func``, retrying dropped-connection errors with jittered backoff."""
    for attempt in range(1, max_attempts + 1):
        try:
            return func()
        except OperationalError as exc:
            if attempt == max_attempts or not is_transient_disconnect(exc):
                raise
            delay = 0.1 * (2 ** (attempt - 1)) + random.uniform(0, 0.05)
            logger.warning(f"{op_name}: connection dropped (attempt {attempt}), retrying in {delay:.2f}s")
            time.sleep(delay)
    raise AssertionError("unreachable")


__all__ = ["Base", "SessionLocal", "engine", "engine_options", "is_transient_disconnect", "with_db_retry"]
