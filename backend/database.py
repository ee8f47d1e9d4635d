"""Engine, session factory and store bootstrap for the configured backend."""

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from .config import get_settings
from .logging_utils import get_logger
from .models import Base
from .repository import Store, json_store, sql_store

LOGGER = get_logger(__name__)

DATABASE_URL = get_settings().database_url

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, connect_args=connect_args, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db():
    """Create tables if they do not exist"""
    LOGGER.info("Initializing database schema on %s", engine.url.render_as_string(hide_password=True))
    Base.metadata.create_all(bind=engine)


@contextmanager
def open_store(*, bootstrap: bool = False) -> Iterator[Store]:
    """Yield the store selected by ``STORE_BACKEND``.

    The relational backend gets one session for the lifetime of the block;
    *bootstrap* creates missing tables first.
    """
    settings = get_settings()
    if settings.store_backend == "json":
        yield json_store(settings.json_store_path)
        return

    if bootstrap:
        init_db()
    session = SessionLocal()
    try:
        yield sql_store(session)
    finally:
        session.close()
