"""Database session and engine setup."""

from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from clipguard.core.settings import PATHS

DATABASE_URL = f"sqlite:///{PATHS.db_path}"

# Pipeline jobs touch the store from worker threads.
engine = create_engine(
    DATABASE_URL,
    echo=False,
    future=True,
    connect_args={"check_same_thread": False},
)
SessionLocal = sessionmaker(bind=engine, class_=Session, autoflush=False, autocommit=False)


@contextmanager
def session_scope(factory: sessionmaker = SessionLocal) -> Session:
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_db_session() -> Session:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
