"""Exceptions raised by the persistence layer."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """The database could not be reached or failed to run a statement."""


class ConstraintViolation(PersistenceError):
    """The table rejected the content because it breaks a schema rule."""


@contextmanager
def translate_database_errors(action: str) -> Iterator[None]:
    """Re-raise driver and schema errors as persistence errors.

    ``ValueError`` covers the ORM validators in :mod:`app.db_models`, which run
    before a statement is ever sent.
    """

    try:
        yield
    except (IntegrityError, ValueError) as exc:
        logger.warning("Couldn't %s. %s", action, exc)
        raise ConstraintViolation(f"Couldn't {action}: {exc}") from exc
    except SQLAlchemyError as exc:
        logger.error("Couldn't %s. %s", action, exc)
        raise PersistenceError(f"Couldn't {action}: {exc}") from exc
