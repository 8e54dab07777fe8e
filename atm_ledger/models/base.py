"""
Database engine, session management, and base model.

This module is the foundation for all database operations.
Every model inherits from Base. The account store and the
transaction log open their own short sessions from the
session factory, one per store call.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from atm_ledger.config import get_settings

settings = get_settings()


def engine_connect_args(database_url: str, timeout: float) -> dict:
    """
    Driver arguments that bound how long one round trip may block.

    SQLite waits on a locked database for `timeout` seconds;
    PostgreSQL drivers take an integer connect timeout.
    """
    if database_url.startswith("sqlite"):
        return {"check_same_thread": False, "timeout": timeout}
    return {"connect_timeout": max(1, int(timeout))}


# --- Engine ---
# pool_pre_ping=True tests connections before using them,
# which handles cases where the database restarted or a
# connection went stale.
engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    connect_args=engine_connect_args(
        settings.DATABASE_URL, settings.STORE_TIMEOUT_SECONDS
    ),
)

# --- Session Factory ---
# expire_on_commit=False lets stores hand back values read
# inside a session after that session has committed and closed.
SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


# --- Dependency for FastAPI ---
def get_session_factory() -> sessionmaker:
    """
    Provide the session factory the stores open sessions from.

    Tests override this dependency to point the application
    at an isolated database.
    """
    return SessionLocal
