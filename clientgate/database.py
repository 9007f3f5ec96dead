"""
Database connection and session.

Schema source of truth: clientgate.models. On startup, Base.metadata.create_all(bind=engine)
creates all tables from the current models.

Every connection carries a bounded timeout (settings.db_timeout_seconds) so a stuck
store call surfaces as TransientError instead of hanging the request.
"""
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.exc import DisconnectionError, OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from clientgate.config import get_settings
from clientgate.errors import TransientError
from clientgate.logger import log_event

settings = get_settings()


def build_engine(database_url: str, timeout_seconds: float, **kwargs):
    if database_url.startswith("sqlite"):
        # sqlite3 busy timeout: how long a writer waits for another writer's lock
        connect_args = {"check_same_thread": False, "timeout": timeout_seconds}
        return create_engine(database_url, connect_args=connect_args, **kwargs)
    connect_args = {
        "connect_timeout": max(1, int(timeout_seconds)),
        "options": f"-c statement_timeout={int(timeout_seconds * 1000)}",
    }
    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_timeout=timeout_seconds,
        connect_args=connect_args,
        **kwargs,
    )


engine = build_engine(settings.database_url, settings.db_timeout_seconds)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def store_errors(db: Session, operation: str):
    """Translate store timeouts and connection failures into TransientError.

    The session is rolled back so the caller can retry the same call on a clean slate.
    """
    try:
        yield
    except (OperationalError, PoolTimeoutError, DisconnectionError) as e:
        db.rollback()
        log_event("store", "transient_failure", operation=operation, error=type(e).__name__)
        raise TransientError(f"The data store did not respond while running {operation}. Please retry.") from e
    except StaleDataError as e:
        db.rollback()
        log_event("store", "concurrent_update", operation=operation)
        raise TransientError(f"The record changed while running {operation}. Please retry.") from e
