"""
File registry: creation, numbering and the read-only queues.

Business logic for:
    - File number generation: REP-2026-0001, REP-2026-0002 (prefix/year scoped)
    - File creation in AWAITING_ASSIGNMENT / PRE_REPRO
    - Lookups by id and by file number
    - Queues: pending takeover per department, department work queue,
      designer worklist, unassigned files, pre-repro queue
"""

import logging
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import case, select

from printflow.core.exceptions import ConflictError, NotFoundError, ValidationError
from printflow.models import db
from printflow.models.audit import AuditAction, write_audit
from printflow.models.auth import User
from printflow.models.department import DepartmentCode
from printflow.models.file import (
    TERMINAL_STATUSES,
    File,
    FileStatus,
    Priority,
    Stage,
    iteration_label,
)
from printflow.models.time_tracking import Timer
from printflow.services.department_service import get_department_id
from printflow.services.helpers.transactions import atomic

logger = logging.getLogger(__name__)

_PRIORITY_RANK = case(
    {
        Priority.URGENT.value: 4,
        Priority.HIGH.value: 3,
        Priority.NORMAL.value: 2,
        Priority.LOW.value: 1,
    },
    value=File.priority,
    else_=0,
)


# ── Numbering ────────────────────────────────────────────────────────────────


def next_file_no(prefix: str | None = None, year: int | None = None) -> str:
    """Next sequential file number: ``<PREFIX>-<YYYY>-<NNNN>``."""
    prefix = prefix or current_app.config.get("FILE_NO_PREFIX", "REP")
    year = year or datetime.now(timezone.utc).year
    stem = f"{prefix}-{year}-"
    numbers = db.session.execute(
        select(File.file_no).where(File.file_no.like(f"{stem}%"))
    ).scalars()
    highest = 0
    for file_no in numbers:
        suffix = file_no[len(stem):]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return f"{stem}{highest + 1:04d}"


# ── Creation & lookup ────────────────────────────────────────────────────────


def create_file(
    *,
    customer_name: str,
    created_by_id: str,
    file_no: str | None = None,
    customer_no: str | None = None,
    priority: Priority | str = Priority.NORMAL,
    location_code: str | None = None,
    requires_approval: bool = True,
    target_assignee_id: str | None = None,
) -> File:
    """Register a new file in the pre-repro queue.

    Raises:
        ValidationError: missing customer name or unknown priority.
        NotFoundError: creator or target assignee does not exist.
        ConflictError: ``file_no`` is already taken.
    """
    customer_name = (customer_name or "").strip()
    if not customer_name:
        raise ValidationError("customer_name is required", {"customer_name": "required"})
    try:
        priority = Priority(priority)
    except ValueError:
        raise ValidationError(
            f"Unknown priority {priority!r}", {"priority": [p.value for p in Priority]},
        ) from None

    requested_no = file_no.strip() if file_no else None
    with atomic(conflict=lambda: ConflictError("File", "file_no", requested_no)):
        if db.session.get(User, created_by_id) is None:
            raise NotFoundError(resource="User", resource_id=created_by_id)
        if target_assignee_id and db.session.get(User, target_assignee_id) is None:
            raise NotFoundError(resource="User", resource_id=target_assignee_id)
        if requested_no and get_file_by_no(requested_no) is not None:
            raise ConflictError("File", "file_no", requested_no)
        requested_no = requested_no or next_file_no()

        pre_repro_id = get_department_id(DepartmentCode.PRE_REPRO)
        file = File(
            file_no=requested_no,
            customer_name=customer_name,
            customer_no=customer_no,
            priority=priority,
            location_code=location_code,
            status=FileStatus.AWAITING_ASSIGNMENT,
            stage=Stage.PRE_REPRO,
            current_department_id=pre_repro_id,
            target_assignee_id=target_assignee_id or None,
            requires_approval=bool(requires_approval),
            iteration_number=1,
            iteration_label=iteration_label(1),
        )
        db.session.add(file)
        db.session.flush()
        write_audit(
            file_id=file.id,
            action_type=AuditAction.CREATE,
            by_user_id=created_by_id,
            to_department_id=pre_repro_id,
            payload={"file_no": file.file_no, "target_assignee_id": target_assignee_id},
        )
    logger.info(
        "File %s created", file.file_no,
        extra={"file_id": file.id, "user_id": created_by_id, "action": "create"},
    )
    return file


def get_file(file_id: str) -> File:
    file = db.session.get(File, file_id)
    if file is None:
        raise NotFoundError(resource="File", resource_id=file_id)
    return file


def get_file_by_no(file_no: str) -> File | None:
    return db.session.execute(
        select(File).where(File.file_no == file_no)
    ).scalar_one_or_none()


# ── Queues ───────────────────────────────────────────────────────────────────


def get_pending_takeover_files(department_id: str) -> list[File]:
    return list(db.session.execute(
        select(File)
        .where(File.current_department_id == department_id, File.pending_takeover.is_(True))
        .order_by(File.updated_at.desc())
    ).scalars())


def get_department_queue(department_id: str, user_id: str) -> dict:
    """Files of one department, split for the operator's work screen.

    Returns:
        {"active": files the user is clocked in on,
         "pending_takeover": files waiting for someone to start}
    """
    active = list(db.session.execute(
        select(File)
        .join(Timer, Timer.file_id == File.id)
        .where(
            File.current_department_id == department_id,
            File.pending_takeover.is_(False),
            File.status.not_in(list(TERMINAL_STATUSES)),
            Timer.user_id == user_id,
            Timer.end_time.is_(None),
        )
        .order_by(File.updated_at.desc())
    ).scalars())
    return {
        "active": active,
        "pending_takeover": get_pending_takeover_files(department_id),
    }


def get_designer_files(designer_id: str) -> list[File]:
    """Open REPRO-stage files owned by a designer; pre-repro claims never appear here."""
    return list(db.session.execute(
        select(File)
        .where(
            File.assigned_designer_id == designer_id,
            File.stage == Stage.REPRO,
            File.status.not_in(list(TERMINAL_STATUSES)),
        )
        .order_by(_PRIORITY_RANK.desc(), File.updated_at.desc())
    ).scalars())


def get_unassigned_files() -> list[File]:
    return list(db.session.execute(
        select(File)
        .where(File.status == FileStatus.AWAITING_ASSIGNMENT)
        .order_by(_PRIORITY_RANK.desc(), File.created_at)
    ).scalars())


def get_pre_repro_queue(only_unclaimed: bool = False) -> list[File]:
    """Files in stage PRE_REPRO, oldest first."""
    stmt = select(File).where(File.stage == Stage.PRE_REPRO)
    if only_unclaimed:
        stmt = stmt.where(File.assigned_designer_id.is_(None))
    return list(db.session.execute(stmt.order_by(File.created_at, File.file_no)).scalars())
