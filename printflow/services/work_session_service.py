"""
Work-session tracker: one operator's attention on one file.

Single-active invariant: at most one open session per user.  Unlike the
timer tracker, starting a session while another is open is not an error:
the prior session is closed first ("switching files").  The partial unique
index ``uq_work_sessions_user_open`` turns a lost race into a typed
ConflictError.
"""

import logging

from sqlalchemy import select

from printflow.core.exceptions import ConflictError, NotFoundError
from printflow.models import db
from printflow.models.audit import AuditAction, write_audit
from printflow.models.auth import User
from printflow.models.base import _utcnow, elapsed_seconds
from printflow.models.file import File
from printflow.models.time_tracking import WorkSession
from printflow.services.helpers.transactions import atomic

logger = logging.getLogger(__name__)


def _session_conflict(user_id):
    return lambda: ConflictError(
        "WorkSession", "user_id", user_id,
        message=f"User {user_id} started another work session concurrently",
    )


# ── Queries ──────────────────────────────────────────────────────────────────


def get_active_session(user_id: str) -> WorkSession | None:
    return db.session.execute(
        select(WorkSession).where(
            WorkSession.user_id == user_id,
            WorkSession.end_time.is_(None),
        )
    ).scalar_one_or_none()


def get_all_active_sessions() -> list[WorkSession]:
    return list(db.session.execute(
        select(WorkSession)
        .where(WorkSession.end_time.is_(None))
        .order_by(WorkSession.start_time)
    ).scalars())


def get_file_sessions(file_id: str) -> list[WorkSession]:
    return list(db.session.execute(
        select(WorkSession)
        .where(WorkSession.file_id == file_id)
        .order_by(WorkSession.start_time, WorkSession.id)
    ).scalars())


# ── Flush-only building blocks ───────────────────────────────────────────────


def close_session(ws: WorkSession) -> WorkSession:
    end = _utcnow()
    ws.end_time = end
    ws.duration_minutes = elapsed_seconds(ws.start_time, end) // 60
    db.session.flush()
    return ws


def close_open_session(user_id: str) -> WorkSession | None:
    ws = get_active_session(user_id)
    if ws is None:
        return None
    return close_session(ws)


def open_session(user_id: str, file_id: str, department_id: str) -> tuple[WorkSession, WorkSession | None]:
    """Close the user's prior session (if any) and open a new one.

    Returns:
        (new_session, closed_prior_session_or_None)
    """
    prior = close_open_session(user_id)
    ws = WorkSession(
        user_id=user_id,
        file_id=file_id,
        department_id=department_id,
        start_time=_utcnow(),
    )
    db.session.add(ws)
    db.session.flush()
    return ws, prior


# ── Standalone operations ────────────────────────────────────────────────────


def start_work_session(user_id: str, file_id: str, department_id: str | None = None) -> WorkSession:
    """Start working on ``file_id``; any other open session of the user is closed.

    ``department_id`` defaults to the file's current department.

    Raises:
        NotFoundError: user or file does not exist.
    """
    with atomic(conflict=_session_conflict(user_id)):
        if db.session.get(User, user_id) is None:
            raise NotFoundError(resource="User", resource_id=user_id)
        file = db.session.get(File, file_id)
        if file is None:
            raise NotFoundError(resource="File", resource_id=file_id)
        dept_id = department_id or file.current_department_id
        ws, prior = open_session(user_id, file_id, dept_id)
        write_audit(
            file_id=file_id,
            action_type=AuditAction.WORK_STARTED,
            by_user_id=user_id,
            to_department_id=dept_id,
            payload={
                "work_session_id": ws.id,
                "closed_session_id": prior.id if prior else None,
                "closed_file_id": prior.file_id if prior else None,
            },
        )
    logger.info(
        "Work session started",
        extra={"file_id": file_id, "user_id": user_id, "action": "work_start"},
    )
    return ws


def stop_work_session(user_id: str) -> WorkSession:
    """Close the user's open session and return it.

    Raises:
        NotFoundError: the user has no open session.
    """
    with atomic():
        ws = get_active_session(user_id)
        if ws is None:
            raise NotFoundError(resource="Active work session", resource_id=user_id)
        close_session(ws)
        write_audit(
            file_id=ws.file_id,
            action_type=AuditAction.WORK_STOPPED,
            by_user_id=user_id,
            from_department_id=ws.department_id,
            payload={"work_session_id": ws.id, "duration_minutes": ws.duration_minutes},
        )
    logger.info(
        "Work session stopped",
        extra={"file_id": ws.file_id, "user_id": user_id, "action": "work_stop"},
    )
    return ws
