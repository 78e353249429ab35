"""
Transaction boundary for engine operations.

Every public state-changing operation runs its body inside ``atomic()``:
internal helpers only ``flush``; ``atomic`` commits once on success and
rolls back on any exception, so a failed operation never leaves partial
writes behind.

Losing a race surfaces from the database in one of two ways:
    - IntegrityError from a partial unique index (second open timer /
      second open work session), or
    - a serialization failure (SQLSTATE 40001) under SERIALIZABLE.

Both are translated into the caller-supplied typed error so the HTTP layer
can answer 409 instead of 500.

Usage:
    with atomic(conflict=lambda: ConflictError("Timer", "file_id", file_id)):
        ...
"""

import logging
from collections.abc import Callable
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, OperationalError

from printflow.core.exceptions import ConflictError, WorkflowError
from printflow.models import db

logger = logging.getLogger(__name__)

_SERIALIZATION_FAILURE = "40001"


def _default_conflict() -> WorkflowError:
    return ConflictError(
        "Record", "state",
        message="Concurrent update conflict, reload and try again",
    )


def is_serialization_failure(exc: OperationalError) -> bool:
    """True when the driver reports SQLSTATE 40001 (psycopg2 or psycopg 3)."""
    orig = getattr(exc, "orig", None)
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    return code == _SERIALIZATION_FAILURE


@contextmanager
def atomic(conflict: Callable[[], WorkflowError] | None = None):
    """Run the block as one transaction.

    Args:
        conflict: Factory for the typed error raised when the database
            rejects the write because a concurrent operation won.
    """
    make_conflict = conflict or _default_conflict
    try:
        yield db.session
        db.session.commit()
    except WorkflowError:
        db.session.rollback()
        raise
    except IntegrityError as exc:
        db.session.rollback()
        logger.info("Integrity conflict rolled back: %s", exc.orig)
        raise make_conflict() from exc
    except OperationalError as exc:
        db.session.rollback()
        if is_serialization_failure(exc):
            logger.info("Serialization failure rolled back")
            raise make_conflict() from exc
        raise
    except Exception:
        db.session.rollback()
        raise
