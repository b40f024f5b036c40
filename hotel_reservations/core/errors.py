from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session


class HotelCoreError(Exception):
    """Base class for exceptional (non business-rule) failures."""


class StorageFailure(HotelCoreError):
    """The data store could not complete the operation. Not retried here."""


@contextmanager
def storage_guard(db: Session, operation: str = "") -> Iterator[None]:
    """Roll back and re-raise database errors as StorageFailure."""
    try:
        yield
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageFailure(f"storage failure during {operation or 'operation'}: {e.__class__.__name__}") from e
