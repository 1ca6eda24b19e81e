from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import DATABASE_URL

connect_args = {}
if DATABASE_URL.startswith("sqlite"):
    # search adapters read from worker threads
    connect_args = {"check_same_thread": False}


def _unicode_lower(value):
    return value.lower() if isinstance(value, str) else value


def enable_unicode_lower(engine):
    """Make ``lower()`` (and so ``ilike``) fold non-ASCII letters on SQLite.

    SQLite's built-in ``lower()`` only folds ASCII. Other dialects are left
    untouched.
    """
    if engine.dialect.name != "sqlite":
        return engine

    @event.listens_for(engine, "connect")
    def _register_lower(dbapi_conn, connection_record):
        dbapi_conn.create_function("lower", 1, _unicode_lower)

    return engine


engine = enable_unicode_lower(
    create_engine(DATABASE_URL, connect_args=connect_args)
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def init_db(bind=None):
    # import models so they register on Base.metadata
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
