"""
Work-session tracker: at most one open session per user; starting a new
one closes the previous one.
"""

import pytest

from printflow.core.exceptions import ConflictError, NotFoundError
from printflow.models.audit import AuditAction, AuditLog
from printflow.models.time_tracking import WorkSession
from printflow.services import work_session_service


def _open_sessions(user_id):
    return WorkSession.query.filter_by(user_id=user_id, end_time=None).all()


class TestStart:
    def test_start_opens_session_in_file_department(self, make_file, users):
        f = make_file()
        ws = work_session_service.start_work_session(users.designer_a.id, f.id)
        assert ws.is_open
        assert ws.department_id == f.current_department_id
        assert work_session_service.get_active_session(users.designer_a.id).id == ws.id

    def test_switching_files_closes_prior_session(self, make_file, users):
        file_a, file_b = make_file(), make_file()
        first = work_session_service.start_work_session(users.designer_a.id, file_a.id)
        second = work_session_service.start_work_session(users.designer_a.id, file_b.id)

        assert first.end_time is not None
        assert first.duration_minutes is not None
        assert second.is_open and second.file_id == file_b.id
        assert [s.id for s in _open_sessions(users.designer_a.id)] == [second.id]

    def test_restart_on_same_file_still_single_active(self, make_file, users):
        f = make_file()
        work_session_service.start_work_session(users.designer_a.id, f.id)
        work_session_service.start_work_session(users.designer_a.id, f.id)
        assert len(_open_sessions(users.designer_a.id)) == 1
        assert len(work_session_service.get_file_sessions(f.id)) == 2

    def test_sessions_of_different_users_are_independent(self, make_file, users):
        f = make_file()
        work_session_service.start_work_session(users.designer_a.id, f.id)
        work_session_service.start_work_session(users.designer_b.id, f.id)
        assert len(work_session_service.get_all_active_sessions()) == 2

    def test_unique_index_rejects_concurrent_insert(self, monkeypatch, make_file, users):
        f = make_file()
        work_session_service.start_work_session(users.designer_a.id, f.id)
        monkeypatch.setattr(work_session_service, "get_active_session", lambda user_id: None)
        with pytest.raises(ConflictError):
            work_session_service.start_work_session(users.designer_a.id, f.id)
        monkeypatch.undo()
        assert len(_open_sessions(users.designer_a.id)) == 1

    def test_start_unknown_file(self, users):
        with pytest.raises(NotFoundError):
            work_session_service.start_work_session(users.designer_a.id, "missing")

    def test_start_unknown_user(self, make_file):
        f = make_file()
        with pytest.raises(NotFoundError):
            work_session_service.start_work_session("nobody", f.id)

    def test_start_audit_records_closed_session(self, make_file, users):
        file_a, file_b = make_file(), make_file()
        first = work_session_service.start_work_session(users.designer_a.id, file_a.id)
        work_session_service.start_work_session(users.designer_a.id, file_b.id)
        entry = AuditLog.query.filter_by(file_id=file_b.id, action_type=AuditAction.WORK_STARTED).one()
        assert entry.payload["closed_session_id"] == first.id


class TestStop:
    def test_stop_closes_active_session(self, make_file, users):
        f = make_file()
        work_session_service.start_work_session(users.designer_a.id, f.id)
        ws = work_session_service.stop_work_session(users.designer_a.id)
        assert ws.end_time is not None
        assert ws.duration_minutes == 0
        assert work_session_service.get_active_session(users.designer_a.id) is None

    def test_stop_without_session_is_not_found(self, users):
        with pytest.raises(NotFoundError):
            work_session_service.stop_work_session(users.designer_a.id)
