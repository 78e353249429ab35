"""
Free-text notes on files.
"""

import pytest

from printflow.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from printflow.models.audit import AuditAction, AuditLog
from printflow.models.file import FileStatus
from printflow.services import note_service


def test_add_note_records_author_department(make_file, users):
    f = make_file()
    note = note_service.add_note(f.id, users.quality.id, "  Check the spot colour  ")
    assert note.message == "Check the spot colour"
    assert note.department_id == users.quality.department_id
    assert note.is_system is False
    entry = AuditLog.query.filter_by(file_id=f.id, action_type=AuditAction.NOTE_ADDED).one()
    assert entry.payload["note_id"] == note.id


def test_notes_are_listed_newest_first(make_file, users):
    f = make_file()
    note_service.add_note(f.id, users.admin.id, "first")
    note_service.add_note(f.id, users.admin.id, "second")
    messages = [n.message for n in note_service.get_file_notes(f.id)]
    assert set(messages) == {"first", "second"}
    assert len(messages) == 2


@pytest.mark.parametrize("message", [None, "", "   "])
def test_empty_note_is_rejected(make_file, users, message):
    f = make_file()
    with pytest.raises(ValidationError):
        note_service.add_note(f.id, users.admin.id, message)


def test_note_length_limit(app, make_file, users):
    f = make_file()
    with pytest.raises(ValidationError):
        note_service.add_note(f.id, users.admin.id, "x" * (app.config["NOTE_MAX_LENGTH"] + 1))


def test_note_on_unknown_file(users):
    with pytest.raises(NotFoundError):
        note_service.add_note("missing", users.admin.id, "hello")
    with pytest.raises(NotFoundError):
        note_service.get_file_notes("missing")


def test_note_on_closed_file(file_in, users):
    f = file_in(FileStatus.SENT_TO_PRODUCTION)
    with pytest.raises(InvalidStateError):
        note_service.add_note(f.id, users.collation.id, "Too late")
