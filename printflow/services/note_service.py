"""
File notes.

``attach_note`` is the flush-only helper workflow operations use to persist
the note they were given; ``add_note`` is the standalone operation.
"""

import logging

from flask import current_app
from sqlalchemy import select

from printflow.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from printflow.models import db
from printflow.models.audit import AuditAction, write_audit
from printflow.models.auth import User
from printflow.models.file import File
from printflow.models.note import Note
from printflow.services.helpers.transactions import atomic

logger = logging.getLogger(__name__)


def attach_note(file_id: str, user_id: str | None, message: str,
                department_id: str | None = None, is_system: bool = False) -> Note:
    note = Note(
        file_id=file_id,
        user_id=user_id,
        department_id=department_id,
        message=message,
        is_system=is_system,
    )
    db.session.add(note)
    db.session.flush()
    return note


def add_note(file_id: str, user_id: str, message: str, department_id: str | None = None) -> Note:
    """Attach a free-text note to a file.

    Raises:
        ValidationError: empty message or longer than NOTE_MAX_LENGTH.
        NotFoundError: file or user does not exist.
        InvalidStateError: the file has been sent to production.
    """
    message = (message or "").strip()
    max_len = current_app.config.get("NOTE_MAX_LENGTH", 5000)
    if not message:
        raise ValidationError("Note message is required", {"message": "required"})
    if len(message) > max_len:
        raise ValidationError(
            f"Note message must be at most {max_len} characters",
            {"message": f"max {max_len}"},
        )

    with atomic():
        file = db.session.get(File, file_id)
        if file is None:
            raise NotFoundError(resource="File", resource_id=file_id)
        user = db.session.get(User, user_id)
        if user is None:
            raise NotFoundError(resource="User", resource_id=user_id)
        if file.is_terminal:
            raise InvalidStateError("add_note", current=file.status.value, reason="file is closed")
        dept_id = department_id or user.department_id or file.current_department_id
        note = attach_note(file.id, user.id, message, department_id=dept_id)
        write_audit(
            file_id=file.id,
            action_type=AuditAction.NOTE_ADDED,
            by_user_id=user.id,
            payload={"note_id": note.id},
        )
    logger.info("Note added", extra={"file_id": file_id, "user_id": user_id, "action": "add_note"})
    return note


def get_file_notes(file_id: str) -> list[Note]:
    """Notes of a file, newest first."""
    if db.session.get(File, file_id) is None:
        raise NotFoundError(resource="File", resource_id=file_id)
    return list(db.session.execute(
        select(Note)
        .where(Note.file_id == file_id)
        .order_by(Note.created_at.desc(), Note.id)
    ).scalars())
