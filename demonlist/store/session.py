"""
Database engine and transaction helpers.

Every write the engine performs goes through session_scope(), so a recompute
either commits its totals together with the refreshed ranks or not at all.
"""

from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from demonlist.config import DATABASE_URL, ECHO_SQL
from demonlist.store.models import Base
from demonlist.utils import setup_logging

# --- Module Logger ---
logger = setup_logging(__name__)

_default_sessions: sessionmaker | None = None


def make_sessionmaker(url: str = DATABASE_URL, create_schema: bool = True, **engine_kwargs) -> sessionmaker:
    """
    Build a sessionmaker bound to a new engine.

    Args:
        url: SQLAlchemy database URL
        create_schema: Create missing tables on the engine
        **engine_kwargs: Extra arguments for create_engine()

    Returns:
        sessionmaker producing Session objects
    """
    engine = create_engine(url, echo=ECHO_SQL, future=True, **engine_kwargs)
    if create_schema:
        Base.metadata.create_all(engine)
    logger.debug(f"Connected to {engine.url.render_as_string(hide_password=True)}")
    return sessionmaker(bind=engine, expire_on_commit=False, future=True)


def get_sessionmaker() -> sessionmaker:
    """Return the process-wide sessionmaker, creating it from DATABASE_URL on first use."""
    global _default_sessions
    if _default_sessions is None:
        _default_sessions = make_sessionmaker()
    return _default_sessions


def configure(sessions: sessionmaker | None) -> None:
    """Replace the process-wide sessionmaker (None falls back to DATABASE_URL on next use)."""
    global _default_sessions
    _default_sessions = sessions


@contextmanager
def session_scope(sessions: sessionmaker | None = None):
    """
    Provide a transactional scope around a series of operations.

    Commits on success, rolls back and re-raises on any error.
    """
    session: Session = (sessions or get_sessionmaker())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
