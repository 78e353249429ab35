"""
Pre-repro claim queue.

Files created in stage PRE_REPRO with no assignee sit in a shared queue.
Operators race for them; each operation is one atomic attempt, never a
lock held across think-time.

    claim            - compare-and-swap ``assigned_designer_id: NULL → user``
    complete         - hand the claimed file into REPRO under its target
                       assignee (or the configured fallback account)
    return_to_queue  - the claimant gives the file back (assignee → NULL)

Claim is not idempotent: the swap condition is "assignee is
NULL", which is false after the first success, so a second claim by the
same user fails with AlreadyClaimedError too.
"""

import logging

from flask import current_app
from sqlalchemy import select, update

from printflow.core.exceptions import (
    AlreadyClaimedError,
    InvalidStateError,
    NotFoundError,
    NotOwnerError,
)
from printflow.models import db
from printflow.models.audit import AuditAction, write_audit
from printflow.models.auth import User
from printflow.models.base import _utcnow
from printflow.models.file import (
    STATUS_DEPARTMENT,
    STATUS_STAGE,
    File,
    FileStatus,
    Stage,
)
from printflow.services import timer_service
from printflow.services.department_service import get_department_id
from printflow.services.helpers.transactions import atomic

logger = logging.getLogger(__name__)


def _load_pre_repro_file(file_id: str, action: str) -> File:
    file = db.session.get(File, file_id)
    if file is None:
        raise NotFoundError(resource="File", resource_id=file_id)
    if file.stage != Stage.PRE_REPRO:
        raise InvalidStateError(action, current=file.stage.value, reason="file is not in pre-repro")
    return file


def resolve_fallback_assignee() -> User:
    """The configured handoff account: FALLBACK_ASSIGNEE_ID wins over the username."""
    cfg = current_app.config
    fallback_id = cfg.get("FALLBACK_ASSIGNEE_ID")
    if fallback_id:
        user = db.session.get(User, fallback_id)
        if user is None:
            raise NotFoundError(resource="Fallback assignee", resource_id=fallback_id)
        return user
    username = cfg.get("FALLBACK_ASSIGNEE_USERNAME")
    user = None
    if username:
        user = db.session.execute(
            select(User).where(User.username == username)
        ).scalar_one_or_none()
    if user is None:
        raise NotFoundError(resource="Fallback assignee", resource_id=username)
    return user


def claim(file_id: str, user_id: str) -> File:
    """Take an unclaimed pre-repro file.

    Raises:
        NotFoundError: file or user does not exist.
        InvalidStateError: the file has left pre-repro.
        AlreadyClaimedError: someone (possibly the caller) holds it already.
    """
    with atomic(conflict=lambda: AlreadyClaimedError(file_id)):
        file = _load_pre_repro_file(file_id, "claim")
        if db.session.get(User, user_id) is None:
            raise NotFoundError(resource="User", resource_id=user_id)

        result = db.session.execute(
            update(File)
            .where(
                File.id == file_id,
                File.stage == Stage.PRE_REPRO,
                File.assigned_designer_id.is_(None),
            )
            .values(assigned_designer_id=user_id, updated_at=_utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise AlreadyClaimedError(file_id)
        db.session.refresh(file)

        timer_started = False
        if timer_service.get_active_timer(file.id) is None:
            timer_service.open_timer(file.id, file.current_department_id, user_id)
            timer_started = True

        write_audit(
            file_id=file.id,
            action_type=AuditAction.PRE_REPRO_CLAIMED,
            by_user_id=user_id,
            payload={"claimed_by": user_id, "timer_started": timer_started},
        )
    logger.info(
        "File %s claimed", file.file_no,
        extra={"file_id": file_id, "user_id": user_id, "action": "claim"},
    )
    return file


def complete(file_id: str, user_id: str) -> File:
    """Hand a claimed file into REPRO.

    The destination is ``target_assignee_id`` when set, otherwise the
    configured fallback account.  The file arrives pending takeover.

    Raises:
        NotFoundError: file missing, or no destination user can be resolved.
        InvalidStateError: the file has left pre-repro (e.g. second handoff).
        NotOwnerError: the caller has not claimed the file.
    """
    with atomic():
        file = _load_pre_repro_file(file_id, "complete")
        if file.assigned_designer_id != user_id:
            raise NotOwnerError(user_id, "complete", reason="You must claim this file before handing it off")

        if file.target_assignee_id:
            destination = db.session.get(User, file.target_assignee_id)
            if destination is None:
                raise NotFoundError(resource="User", resource_id=file.target_assignee_id)
        else:
            destination = resolve_fallback_assignee()

        from_department_id = file.current_department_id
        repro_id = get_department_id(STATUS_DEPARTMENT[FileStatus.ASSIGNED])
        timer_service.close_open_timer(file.id)

        file.status = FileStatus.ASSIGNED
        file.stage = STATUS_STAGE[FileStatus.ASSIGNED]
        file.current_department_id = repro_id
        file.assigned_designer_id = destination.id
        file.pending_takeover = True
        db.session.flush()

        write_audit(
            file_id=file.id,
            action_type=AuditAction.PRE_REPRO_HANDED_OFF,
            by_user_id=user_id,
            from_department_id=from_department_id,
            to_department_id=repro_id,
            payload={
                "from_stage": Stage.PRE_REPRO.value,
                "to_stage": file.stage.value,
                "from_assignee": user_id,
                "to_assignee": destination.id,
                "used_fallback": file.target_assignee_id is None,
            },
        )
    logger.info(
        "File %s handed off to %s", file.file_no, destination.username,
        extra={"file_id": file_id, "user_id": user_id, "action": "complete"},
    )
    return file


def return_to_queue(file_id: str, user_id: str) -> File:
    """Give a claimed file back to the shared queue.

    Raises:
        NotFoundError: file does not exist.
        InvalidStateError: the file has left pre-repro.
        NotOwnerError: the caller is not the current claimant.
    """
    with atomic():
        file = _load_pre_repro_file(file_id, "return_to_queue")
        if file.assigned_designer_id is None or file.assigned_designer_id != user_id:
            raise NotOwnerError(
                user_id, "return_to_queue",
                reason="Only the current claimant may return this file to the queue",
            )
        timer_service.close_open_timer(file.id)
        file.assigned_designer_id = None
        db.session.flush()
        write_audit(
            file_id=file.id,
            action_type=AuditAction.PRE_REPRO_RETURNED_TO_QUEUE,
            by_user_id=user_id,
            payload={"returned_by": user_id},
        )
    logger.info(
        "File %s returned to queue", file.file_no,
        extra={"file_id": file_id, "user_id": user_id, "action": "return_to_queue"},
    )
    return file
