import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from forum.config import DATABASE_URL

logger = logging.getLogger(__name__)

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, pool_pre_ping=True, connect_args=_connect_args)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


@contextmanager
def get_session() -> Session:
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_db() -> Iterator[Session]:
    """FastAPI dependency yielding a request-scoped session."""
    with get_session() as session:
        yield session


@contextmanager
def best_effort(db: Session, action: str):
    """
    Run secondary writes after the primary write has been committed.

    The primary write is committed first so that a failing side effect can be
    rolled back on its own. Failures are logged and never re-raised.

    Args:
        db: Database session holding the primary write
        action: Short description used in the log line
    """
    db.commit()
    try:
        yield
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Secondary update failed: %s", action)
