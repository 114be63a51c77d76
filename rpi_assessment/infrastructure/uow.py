from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .exceptions import handle_store_error
from .logging import get_logger

logger = get_logger(__name__)


class UnitOfWork:
    """
    One short transaction per blob call.

    ``begin(operation)`` commits on a clean exit. Reads pass ``readonly=True``
    and are rolled back instead, so a read never leaves a write behind. Any
    database error rolls back and surfaces as a ``PersistenceError`` naming
    ``operation``.
    """

    def __init__(self, SessionLocal: sessionmaker):
        self.SessionLocal = SessionLocal

    @contextmanager
    def begin(self, operation: str, readonly: bool = False) -> Iterator[Session]:
        session = self.SessionLocal()
        try:
            yield session
            if readonly:
                session.rollback()
            else:
                session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.warning("Blob transaction %s rolled back: %s", operation, e)
            raise handle_store_error(e, operation) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
