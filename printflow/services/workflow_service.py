"""
Workflow engine: the file status state machine.

Every transition is a distinct function with its own input contract.  Each
one runs as a single transaction that

    1. loads the file and checks the status / ownership precondition,
       then the mandatory note where one is required,
    2. stops the file's open timer and the acting user's open work session,
    3. moves status, stage and department through ``STATUS_STAGE`` /
       ``STATUS_DEPARTMENT`` (models/file.py),
    4. persists the note, writes exactly one audit entry, commits.

Role permissions are not checked here; callers consult
``printflow.services.rbac.can_perform`` first.

Rework fast path (two persisted flags on File):
    - QualityNok sets ``skip_quality_after_customer_ok`` and
      ``quality_nok_return``.
    - RequestApproval with ``quality_nok_return`` goes straight to IN_KOLAJ
      and clears that flag.
    - CustomerOk with ``skip_quality_after_customer_ok`` goes to IN_KOLAJ
      and clears that flag.

Bulk assignment is a loop of independent ``assign`` calls; a failure on one
file never rolls back another.
"""

import logging
from dataclasses import dataclass, field

from flask import current_app
from sqlalchemy import update

from printflow.core.exceptions import (
    InvalidStateError,
    NotFoundError,
    NotOwnerError,
    ValidationError,
    WorkflowError,
)
from printflow.models import db
from printflow.models.audit import AuditAction, write_audit
from printflow.models.auth import User
from printflow.models.base import _utcnow
from printflow.models.department import Department, DepartmentCode
from printflow.models.file import (
    ARRIVAL_STATUS_BY_DEPARTMENT,
    STATUS_DEPARTMENT,
    STATUS_STAGE,
    File,
    FileStatus,
    iteration_label,
    validate_file_transition,
)
from printflow.services import timer_service, work_session_service
from printflow.services.department_service import get_department_id
from printflow.services.helpers.transactions import atomic
from printflow.services.note_service import attach_note

logger = logging.getLogger(__name__)


# ── Private helpers ──────────────────────────────────────────────────────────


def _require_note(note: str | None, action: str) -> str:
    """Rejection / restart notes are mandatory and have a minimum length."""
    min_len = current_app.config.get("REJECTION_NOTE_MIN_LENGTH", 10)
    text = (note or "").strip()
    if len(text) < min_len:
        raise ValidationError(
            f"A note of at least {min_len} characters is required for '{action}'",
            {"note": f"min {min_len} characters", "action": action},
        )
    return text


def _load_file(file_id: str) -> File:
    file = db.session.get(File, file_id)
    if file is None:
        raise NotFoundError(resource="File", resource_id=file_id)
    return file


def _require_status(file: File, action: str, *allowed: FileStatus) -> None:
    if file.status not in allowed:
        expected = "/".join(s.value for s in allowed)
        raise InvalidStateError(action, current=file.status.value, reason=f"requires {expected}")


def _require_owner(file: File, user_id: str, action: str) -> None:
    if file.assigned_designer_id != user_id:
        raise NotOwnerError(
            user_id, action,
            reason=f"Only the assigned designer may perform '{action}' on this file",
        )


def _stop_activity(file: File, user_id: str) -> None:
    timer_service.close_open_timer(file.id)
    work_session_service.close_open_session(user_id)


def _move(file: File, new_status: FileStatus, *, pending_takeover: bool) -> tuple[str, str]:
    """Apply the status → stage → department table to ``file``.

    Returns:
        (from_department_id, to_department_id)
    """
    if not validate_file_transition(file.status, new_status):
        raise InvalidStateError(
            new_status.value, current=file.status.value,
            reason=f"{file.status.value} → {new_status.value} is not a valid transition",
        )
    from_department_id = file.current_department_id
    dept_code = STATUS_DEPARTMENT[new_status]
    if dept_code is not None:
        file.current_department_id = get_department_id(dept_code)
    file.status = new_status
    file.stage = STATUS_STAGE[new_status]
    file.pending_takeover = pending_takeover
    db.session.flush()
    return from_department_id, file.current_department_id


def _record(
    file: File,
    user_id: str,
    action_type: AuditAction,
    from_department_id: str | None,
    to_department_id: str | None,
    payload: dict | None = None,
    note_message: str | None = None,
) -> None:
    if note_message:
        attach_note(file.id, user_id, note_message, department_id=from_department_id)
    write_audit(
        file_id=file.id,
        action_type=action_type,
        by_user_id=user_id,
        from_department_id=from_department_id,
        to_department_id=to_department_id,
        payload=payload,
    )


def _log(file: File, user_id: str, action: str) -> None:
    logger.info(
        "File %s: %s → %s", file.file_no, action, file.status.value,
        extra={"file_id": file.id, "user_id": user_id, "action": action},
    )


# ── Manager / takeover ───────────────────────────────────────────────────────


def assign(file_id: str, designer_id: str, manager_id: str, note: str | None = None) -> File:
    """Assign an AWAITING_ASSIGNMENT file to a designer.

    The status check is a compare-and-swap, so two managers assigning the
    same file concurrently cannot both succeed.

    Raises:
        NotFoundError: file or designer does not exist.
        InvalidStateError: the file is no longer awaiting assignment.
    """
    action = "assign"
    with atomic():
        file = _load_file(file_id)
        _require_status(file, action, FileStatus.AWAITING_ASSIGNMENT)
        designer = db.session.get(User, designer_id)
        if designer is None:
            raise NotFoundError(resource="User", resource_id=designer_id)

        from_department_id = file.current_department_id
        previous_claimant = file.assigned_designer_id
        repro_id = get_department_id(STATUS_DEPARTMENT[FileStatus.ASSIGNED])
        result = db.session.execute(
            update(File)
            .where(File.id == file_id, File.status == FileStatus.AWAITING_ASSIGNMENT)
            .values(
                assigned_designer_id=designer.id,
                status=FileStatus.ASSIGNED,
                stage=STATUS_STAGE[FileStatus.ASSIGNED],
                current_department_id=repro_id,
                pending_takeover=True,
                updated_at=_utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise InvalidStateError(action, reason="file was assigned concurrently")
        db.session.refresh(file)
        timer_service.close_open_timer(file.id)

        _record(
            file, manager_id, AuditAction.ASSIGN, from_department_id, repro_id,
            payload={
                "designer_id": designer.id,
                "designer_name": designer.full_name,
                "previous_claimant": previous_claimant,
                "note": note,
            },
            note_message=(note or "").strip() or None,
        )
    _log(file, manager_id, action)
    return file


def takeover(
    file_id: str,
    user_id: str,
    department_id: str | None = None,
    location_code: str | None = None,
    note: str | None = None,
) -> File:
    """An operator takes physical possession of a file and starts work.

    ``department_id`` defaults to the operator's home department.  Allowed
    when the file is pending takeover in that department, or when it is
    ASSIGNED / REVISION_REQUIRED and the operator is its assigned designer.
    Like ``assign``, the write is a compare-and-swap against the state read
    here: of two simultaneous takeovers only one succeeds.

    Raises:
        NotFoundError: file, user or department does not exist.
        ValidationError: the operator has no department and none was given.
        InvalidStateError: terminal file, or nothing to take over.
        NotOwnerError: the file is the assigned designer's to take.
    """
    action = "takeover"
    with atomic():
        file = _load_file(file_id)
        user = db.session.get(User, user_id)
        if user is None:
            raise NotFoundError(resource="User", resource_id=user_id)
        if file.is_terminal:
            raise InvalidStateError(action, current=file.status.value, reason="file is closed")

        department_id = department_id or user.department_id
        if not department_id:
            raise ValidationError("A department is required for takeover", {"department_id": "required"})
        department = db.session.get(Department, department_id)
        if department is None:
            raise NotFoundError(resource="Department", resource_id=department_id)

        pending_here = file.pending_takeover and file.current_department_id == department.id
        own_assignment = (
            file.status in (FileStatus.ASSIGNED, FileStatus.REVISION_REQUIRED)
            and file.assigned_designer_id == user.id
        )
        if not (pending_here or own_assignment):
            if file.pending_takeover or file.status in (FileStatus.ASSIGNED, FileStatus.REVISION_REQUIRED):
                raise NotOwnerError(user.id, action, reason="This file is not waiting for you or your department")
            raise InvalidStateError(action, current=file.status.value, reason="file is not pending takeover")

        previous_status = file.status
        from_department_id = file.current_department_id
        try:
            arrival = ARRIVAL_STATUS_BY_DEPARTMENT.get(DepartmentCode(department.code), file.status)
        except ValueError:
            arrival = file.status
        if arrival != file.status and not validate_file_transition(file.status, arrival):
            raise InvalidStateError(
                action, current=file.status.value,
                reason=f"a {department.code} operator cannot take over a {file.status.value} file",
            )

        # Swap only if nobody moved the file since it was read above.
        changes = {
            "status": arrival,
            "stage": STATUS_STAGE[arrival],
            "current_department_id": department.id,
            "pending_takeover": False,
            "updated_at": _utcnow(),
        }
        if location_code:
            changes["location_code"] = location_code
        result = db.session.execute(
            update(File)
            .where(
                File.id == file_id,
                File.status == previous_status,
                File.pending_takeover == file.pending_takeover,
                File.current_department_id == from_department_id,
                File.assigned_designer_id == file.assigned_designer_id,
            )
            .values(**changes)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise InvalidStateError(action, current=previous_status.value, reason="file was taken over concurrently")
        db.session.refresh(file)

        timer_service.close_open_timer(file.id)
        timer_service.open_timer(file.id, department.id, user.id)
        work_session_service.open_session(user.id, file.id, department.id)

        _record(
            file, user.id, AuditAction.TAKEOVER, from_department_id, department.id,
            payload={
                "previous_status": previous_status.value,
                "new_status": arrival.value,
                "note": note,
            },
            note_message=(note or "").strip() or None,
        )
    _log(file, user_id, action)
    return file


# ── Repro ────────────────────────────────────────────────────────────────────


def request_approval(file_id: str, user_id: str, note: str | None = None) -> File:
    """Designer finishes repro work and asks for customer approval.

    After a quality rejection the file skips approval and goes straight to
    collation.

    Raises:
        InvalidStateError: not IN_REPRO, or the file does not require approval.
        NotOwnerError: caller is not the assigned designer.
    """
    action = "request_approval"
    with atomic():
        file = _load_file(file_id)
        _require_status(file, action, FileStatus.IN_REPRO)
        _require_owner(file, user_id, action)

        if file.quality_nok_return:
            _stop_activity(file, user_id)
            file.quality_nok_return = False
            from_dept, to_dept = _move(file, FileStatus.IN_KOLAJ, pending_takeover=True)
            _record(
                file, user_id, AuditAction.TRANSFER, from_dept, to_dept,
                payload={"route": "repro_done_after_quality_nok_to_collation", "note": note},
                note_message=(note or "").strip() or None,
            )
        else:
            if not file.requires_approval:
                raise InvalidStateError(
                    action, current=file.status.value,
                    reason="this file does not require approval, send it directly to quality",
                )
            _stop_activity(file, user_id)
            from_dept, to_dept = _move(file, FileStatus.APPROVAL_PREP, pending_takeover=True)
            _record(
                file, user_id, AuditAction.TRANSFER, from_dept, to_dept,
                payload={"route": "request_approval", "note": note},
                note_message=(note or "").strip() or None,
            )
    _log(file, user_id, action)
    return file


def direct_to_quality(file_id: str, user_id: str, note: str | None = None) -> File:
    """Designer sends a no-approval file straight to quality.

    Raises:
        InvalidStateError: not IN_REPRO, or the file requires approval.
        NotOwnerError: caller is not the assigned designer.
    """
    action = "direct_to_quality"
    with atomic():
        file = _load_file(file_id)
        _require_status(file, action, FileStatus.IN_REPRO)
        _require_owner(file, user_id, action)
        if file.requires_approval:
            raise InvalidStateError(
                action, current=file.status.value,
                reason="this file requires customer approval first",
            )
        _stop_activity(file, user_id)
        from_dept, to_dept = _move(file, FileStatus.IN_QUALITY, pending_takeover=True)
        _record(
            file, user_id, AuditAction.TRANSFER, from_dept, to_dept,
            payload={"route": "direct_to_quality", "note": note},
            note_message=(note or "").strip() or None,
        )
    _log(file, user_id, action)
    return file


# ── Customer approval ────────────────────────────────────────────────────────


def send_to_customer(file_id: str, user_id: str, note: str | None = None) -> File:
    """Move an APPROVAL_PREP file to the virtual customer department.

    The customer timer has no user.
    """
    action = "send_to_customer"
    with atomic():
        file = _load_file(file_id)
        _require_status(file, action, FileStatus.APPROVAL_PREP)
        _stop_activity(file, user_id)
        from_dept, to_dept = _move(file, FileStatus.CUSTOMER_APPROVAL, pending_takeover=False)
        timer_service.open_timer(file.id, to_dept, None)
        _record(
            file, user_id, AuditAction.CUSTOMER_SENT, from_dept, to_dept,
            payload={"note": note},
            note_message=(note or "").strip() or None,
        )
    _log(file, user_id, action)
    return file


def customer_ok(file_id: str, user_id: str, note: str | None = None) -> File:
    """Customer approved: on to quality, or to collation on the rework path."""
    action = "customer_ok"
    with atomic():
        file = _load_file(file_id)
        _require_status(file, action, FileStatus.CUSTOMER_APPROVAL)
        _stop_activity(file, user_id)
        skip_quality = file.skip_quality_after_customer_ok
        if skip_quality:
            file.skip_quality_after_customer_ok = False
            target = FileStatus.IN_KOLAJ
        else:
            target = FileStatus.IN_QUALITY
        from_dept, to_dept = _move(file, target, pending_takeover=True)
        text = (note or "").strip()
        _record(
            file, user_id, AuditAction.CUSTOMER_OK, from_dept, to_dept,
            payload={"note": note, "skip_quality": skip_quality},
            note_message=f"Customer approved: {text}" if text else None,
        )
    _log(file, user_id, action)
    return file


def customer_nok(file_id: str, user_id: str, note: str) -> File:
    """Customer rejected: back to the same designer for revision.

    Raises:
        ValidationError: missing or too short note; the file is untouched.
    """
    action = "customer_nok"
    with atomic():
        file = _load_file(file_id)
        _require_status(file, action, FileStatus.CUSTOMER_APPROVAL)
        text = _require_note(note, action)
        _stop_activity(file, user_id)
        from_dept, to_dept = _move(file, FileStatus.REVISION_REQUIRED, pending_takeover=True)
        _record(
            file, user_id, AuditAction.CUSTOMER_NOK, from_dept, to_dept,
            payload={"note": text, "return_to_designer": file.assigned_designer_id},
            note_message=f"Customer rejected: {text}",
        )
    _log(file, user_id, action)
    return file


def restart_mg(file_id: str, user_id: str, note: str) -> File:
    """Start a new proof iteration (MG1 → MG2 …) and return to approval prep.

    Raises:
        ValidationError: missing or too short note; the file is untouched.
    """
    action = "restart_mg"
    with atomic():
        file = _load_file(file_id)
        _require_status(file, action, FileStatus.CUSTOMER_APPROVAL)
        text = _require_note(note, action)
        _stop_activity(file, user_id)
        previous_label = file.iteration_label
        file.iteration_number = (file.iteration_number or 1) + 1
        file.iteration_label = iteration_label(file.iteration_number)
        from_dept, to_dept = _move(file, FileStatus.APPROVAL_PREP, pending_takeover=True)
        _record(
            file, user_id, AuditAction.RESTART_MG, from_dept, to_dept,
            payload={
                "note": text,
                "previous_iteration": previous_label,
                "new_iteration": file.iteration_label,
            },
            note_message=f"{file.iteration_label} restarted: {text}",
        )
    _log(file, user_id, action)
    return file


# ── Quality ──────────────────────────────────────────────────────────────────


def quality_ok(file_id: str, user_id: str, note: str | None = None) -> File:
    action = "quality_ok"
    with atomic():
        file = _load_file(file_id)
        _require_status(file, action, FileStatus.IN_QUALITY)
        _stop_activity(file, user_id)
        from_dept, to_dept = _move(file, FileStatus.IN_KOLAJ, pending_takeover=True)
        text = (note or "").strip()
        _record(
            file, user_id, AuditAction.QUALITY_OK, from_dept, to_dept,
            payload={"note": note},
            note_message=f"Quality approved: {text}" if text else None,
        )
    _log(file, user_id, action)
    return file


def quality_nok(file_id: str, user_id: str, note: str) -> File:
    """Quality rejected: back to the designer, and arm the rework fast path.

    Raises:
        ValidationError: missing or too short note; the file is untouched.
    """
    action = "quality_nok"
    with atomic():
        file = _load_file(file_id)
        _require_status(file, action, FileStatus.IN_QUALITY)
        text = _require_note(note, action)
        _stop_activity(file, user_id)
        file.skip_quality_after_customer_ok = True
        file.quality_nok_return = True
        from_dept, to_dept = _move(file, FileStatus.REVISION_REQUIRED, pending_takeover=True)
        _record(
            file, user_id, AuditAction.QUALITY_NOK, from_dept, to_dept,
            payload={"note": text, "return_to_designer": file.assigned_designer_id},
            note_message=f"Quality rejected: {text}",
        )
    _log(file, user_id, action)
    return file


# ── Collation ────────────────────────────────────────────────────────────────


def send_to_production(file_id: str, user_id: str, note: str | None = None) -> File:
    """Terminal transition: no further operation is valid afterwards."""
    action = "send_to_production"
    with atomic():
        file = _load_file(file_id)
        _require_status(file, action, FileStatus.IN_KOLAJ)
        _stop_activity(file, user_id)
        from_dept, to_dept = _move(file, FileStatus.SENT_TO_PRODUCTION, pending_takeover=False)
        file.closed_at = _utcnow()
        file.location_code = None
        db.session.flush()
        text = (note or "").strip()
        _record(
            file, user_id, AuditAction.CLOSE, from_dept, to_dept,
            payload={"note": note},
            note_message=f"Sent to production: {text}" if text else None,
        )
    _log(file, user_id, action)
    return file


# ── Bulk ─────────────────────────────────────────────────────────────────────


@dataclass
class BulkResult:
    """Per-item outcome of a bulk assignment; partial success is normal."""
    total: int
    succeeded: int = 0
    failed: int = 0
    results: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "results": self.results,
        }


def bulk_assign(file_ids: list[str], designer_id: str, manager_id: str, note: str | None = None) -> BulkResult:
    """Assign many files to one designer, each in its own transaction.

    Raises:
        ValidationError: empty list or more than BULK_ASSIGN_MAX ids.
    """
    max_items = current_app.config.get("BULK_ASSIGN_MAX", 100)
    if not file_ids:
        raise ValidationError("file_ids must not be empty", {"file_ids": "required"})
    if len(file_ids) > max_items:
        raise ValidationError(
            f"At most {max_items} files can be assigned at once",
            {"file_ids": f"max {max_items}"},
        )

    outcome = BulkResult(total=len(file_ids))
    for file_id in file_ids:
        try:
            assign(file_id, designer_id, manager_id, note=note)
        except WorkflowError as exc:
            outcome.failed += 1
            outcome.results.append({
                "file_id": file_id, "success": False, "code": exc.code, "error": exc.message,
            })
        else:
            outcome.succeeded += 1
            outcome.results.append({"file_id": file_id, "success": True})
    logger.info(
        "Bulk assign: %d/%d succeeded", outcome.succeeded, outcome.total,
        extra={"user_id": manager_id, "action": "bulk_assign"},
    )
    return outcome
