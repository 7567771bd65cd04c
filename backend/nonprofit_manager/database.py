"""Database engine and helpers.

This module configures the SQLModel/SQLAlchemy engine and provides
small helpers used by the application and tests. By default the
database is a local SQLite file `app.db` next to the package; set
`DATABASE_URL` to point elsewhere.
"""

from sqlmodel import SQLModel, create_engine, Session
from .config import settings

DB_URL = settings.DATABASE_URL
_connect_args = {"check_same_thread": False} if DB_URL.startswith("sqlite") else {}
engine = create_engine(DB_URL, echo=False, connect_args=_connect_args)


def create_db_and_tables():
    """Create database tables using SQLModel metadata.

    This function is intended for local development and lightweight
    deployments; schema changes in production should go through a
    proper migration tool (alembic) instead.
    """
    # models must be imported so every table is registered on the metadata
    from . import models  # noqa: F401
    SQLModel.metadata.create_all(engine)


def get_session():
    """Yield a database `Session` for FastAPI dependency injection.

    The generator yields a session and ensures it is closed when the
    request scope finishes.
    """
    with Session(engine) as session:
        yield session
