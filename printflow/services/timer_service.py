"""
Timer tracker: department occupancy on a file.

Single-active invariant: at most one open timer (``end_time IS NULL``) per
file.  ``start_timer`` refuses to open a second one; callers must stop the
current timer first.  The partial unique index ``uq_timers_file_open``
backs the check, so two concurrent starts cannot both succeed even if both
observed "nothing open".

``open_timer`` / ``close_open_timer`` are the flush-only building blocks the
workflow and claim services compose inside their own transaction; they
write no audit entry.  ``start_timer`` / ``stop_timer`` are standalone
operations with one audit entry each.
"""

import logging

from sqlalchemy import select

from printflow.core.exceptions import ConflictError, NotFoundError
from printflow.models import db
from printflow.models.audit import AuditAction, write_audit
from printflow.models.base import _utcnow, elapsed_seconds
from printflow.models.department import Department
from printflow.models.file import File
from printflow.models.time_tracking import Timer
from printflow.services.helpers.transactions import atomic

logger = logging.getLogger(__name__)


def _timer_conflict(file_id):
    return lambda: ConflictError(
        "Timer", "file_id", file_id,
        message=f"File {file_id} already has an active timer",
    )


# ── Queries ──────────────────────────────────────────────────────────────────


def get_active_timer(file_id: str) -> Timer | None:
    return db.session.execute(
        select(Timer).where(Timer.file_id == file_id, Timer.end_time.is_(None))
    ).scalar_one_or_none()


def get_file_timers(file_id: str) -> list[Timer]:
    """All timers of a file, oldest first."""
    return list(db.session.execute(
        select(Timer).where(Timer.file_id == file_id).order_by(Timer.start_time, Timer.id)
    ).scalars())


def user_has_active_timer(file_id: str, user_id: str) -> bool:
    timer = get_active_timer(file_id)
    return timer is not None and timer.user_id == user_id


# ── Flush-only building blocks ───────────────────────────────────────────────


def open_timer(file_id: str, department_id: str, user_id: str | None) -> Timer:
    if get_active_timer(file_id) is not None:
        raise _timer_conflict(file_id)()
    timer = Timer(
        file_id=file_id,
        department_id=department_id,
        user_id=user_id,
        start_time=_utcnow(),
    )
    db.session.add(timer)
    db.session.flush()
    return timer


def close_timer(timer: Timer) -> Timer:
    end = _utcnow()
    timer.end_time = end
    timer.duration_seconds = elapsed_seconds(timer.start_time, end)
    db.session.flush()
    return timer


def close_open_timer(file_id: str) -> Timer | None:
    """Close the file's open timer if there is one."""
    timer = get_active_timer(file_id)
    if timer is None:
        return None
    return close_timer(timer)


# ── Standalone operations ────────────────────────────────────────────────────


def start_timer(file_id: str, department_id: str, user_id: str | None) -> Timer:
    """Open a timer on ``file_id``.

    Raises:
        NotFoundError: file or department does not exist.
        ConflictError: the file already has an open timer.
    """
    with atomic(conflict=_timer_conflict(file_id)):
        if db.session.get(File, file_id) is None:
            raise NotFoundError(resource="File", resource_id=file_id)
        if db.session.get(Department, department_id) is None:
            raise NotFoundError(resource="Department", resource_id=department_id)
        timer = open_timer(file_id, department_id, user_id)
        write_audit(
            file_id=file_id,
            action_type=AuditAction.TIMER_STARTED,
            by_user_id=user_id,
            to_department_id=department_id,
            payload={"timer_id": timer.id},
        )
    logger.info(
        "Timer started",
        extra={"file_id": file_id, "user_id": user_id, "action": "timer_start"},
    )
    return timer


def stop_timer(file_id: str, user_id: str | None = None) -> Timer:
    """Close the open timer of ``file_id`` and return it.

    Raises:
        NotFoundError: no timer is open for the file.
    """
    with atomic():
        timer = get_active_timer(file_id)
        if timer is None:
            raise NotFoundError(resource="Active timer", resource_id=file_id)
        close_timer(timer)
        write_audit(
            file_id=file_id,
            action_type=AuditAction.TIMER_STOPPED,
            by_user_id=user_id,
            from_department_id=timer.department_id,
            payload={"timer_id": timer.id, "duration_seconds": timer.duration_seconds},
        )
    logger.info(
        "Timer stopped after %ss", timer.duration_seconds,
        extra={"file_id": file_id, "user_id": user_id, "action": "timer_stop"},
    )
    return timer
