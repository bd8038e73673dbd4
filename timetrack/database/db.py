"""Database connection and session management."""

from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import sessionmaker, Session as OrmSession

from ..settings import APP_HOME, load_settings
from .models import Base

# ── engine & session factory (created lazily) ─────────────────────────────

_engine = None
_SessionFactory = None


def _create(url: str, echo: bool = False):
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args, echo=echo)


def _get_engine():
    global _engine
    if _engine is None:
        settings = load_settings()
        if settings.database_url.startswith("sqlite:///"):
            APP_HOME.mkdir(parents=True, exist_ok=True)
        _engine = _create(settings.database_url, settings.echo_sql)
    return _engine


def _get_session_factory():
    global _SessionFactory
    if _SessionFactory is None:
        _SessionFactory = sessionmaker(bind=_get_engine(), expire_on_commit=False)
    return _SessionFactory


# ── public API ────────────────────────────────────────────────────────────


def configure_engine(url: str, echo: bool = False) -> None:
    """Override the database connection URL.  Used by tests to point at
    an in-memory SQLite database instead of the configured one."""
    global _engine, _SessionFactory
    _SessionFactory = None
    _engine = _create(url, echo)


def _run_migrations(engine) -> None:
    """Schema migrations for existing databases.

    Runs after ``create_all`` so new columns exist in fresh installs.
    Each migration is idempotent and safe to run repeatedly.
    """
    insp = inspect(engine)
    table_names = set(insp.get_table_names())

    with engine.connect() as conn:
        # ── M1: rename legacy entry sources ────────────────────────────
        if "time_entries" in table_names:
            _source_renames = {
                "autoStop": "auto_stop",
                "pomodoroBreak": "pomodoro_break",
            }
            for old, new in _source_renames.items():
                conn.execute(text(
                    "UPDATE time_entries SET source = :new WHERE source = :old"
                ), {"old": old, "new": new})

        conn.commit()


def init_db() -> None:
    """Create all tables and run migrations."""
    engine = _get_engine()
    Base.metadata.create_all(engine)
    _run_migrations(engine)


@contextmanager
def get_session():
    """Yield a SQLAlchemy session; commit on success, rollback on error."""
    factory = _get_session_factory()
    session: OrmSession = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
