from contextlib import contextmanager
from typing import Callable, Iterator

from sqlalchemy.orm import Session

from autopost.db.session import SessionLocal


@contextmanager
def get_db_session(session_factory: Callable[[], Session] = SessionLocal) -> Iterator[Session]:
    """Session for scripts and workers; rolls back on error, always closes."""
    db = session_factory()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
