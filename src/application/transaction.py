import logging
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from src.domain.exceptions import StorageError

logger = logging.getLogger(__name__)


@contextmanager
def storage_guard(db: Session, action: str):
    """
    Roll back on any database error. IntegrityError is re-raised untouched
    so callers can map it to a business conflict; everything else becomes
    StorageError.
    """
    try:
        yield
    except IntegrityError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Storage failure during %s", action)
        raise StorageError(f"Storage failure during {action}") from exc
