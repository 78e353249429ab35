"""
Timer tracker: at most one open timer per file.
"""

from datetime import timedelta

import pytest

from printflow.core.exceptions import ConflictError, NotFoundError
from printflow.models import db
from printflow.models.audit import AuditAction, AuditLog
from printflow.models.base import as_utc
from printflow.models.department import DepartmentCode
from printflow.models.time_tracking import Timer
from printflow.services import timer_service


@pytest.fixture()
def pre_repro_id(departments):
    return departments[DepartmentCode.PRE_REPRO].id


class TestStart:
    def test_start_opens_timer(self, make_file, users, pre_repro_id):
        f = make_file()
        timer = timer_service.start_timer(f.id, pre_repro_id, users.pre_a.id)
        assert timer.end_time is None
        assert timer_service.get_active_timer(f.id).id == timer.id
        assert timer_service.user_has_active_timer(f.id, users.pre_a.id)
        assert not timer_service.user_has_active_timer(f.id, users.pre_b.id)

    def test_second_start_on_same_file_conflicts(self, make_file, users, pre_repro_id):
        f = make_file()
        timer_service.start_timer(f.id, pre_repro_id, users.pre_a.id)
        with pytest.raises(ConflictError):
            timer_service.start_timer(f.id, pre_repro_id, users.pre_b.id)
        assert Timer.query.filter_by(file_id=f.id, end_time=None).count() == 1

    def test_timers_on_different_files_are_independent(self, make_file, users, pre_repro_id):
        f1, f2 = make_file(), make_file()
        timer_service.start_timer(f1.id, pre_repro_id, users.pre_a.id)
        timer_service.start_timer(f2.id, pre_repro_id, users.pre_a.id)
        assert timer_service.get_active_timer(f1.id) is not None
        assert timer_service.get_active_timer(f2.id) is not None

    def test_unique_index_rejects_concurrent_insert(self, monkeypatch, make_file, users, pre_repro_id):
        """Both starters saw "nothing open": the partial unique index decides."""
        f = make_file()
        timer_service.start_timer(f.id, pre_repro_id, users.pre_a.id)
        monkeypatch.setattr(timer_service, "get_active_timer", lambda file_id: None)
        with pytest.raises(ConflictError):
            timer_service.start_timer(f.id, pre_repro_id, users.pre_b.id)
        monkeypatch.undo()
        assert Timer.query.filter_by(file_id=f.id, end_time=None).count() == 1

    def test_start_unknown_file(self, users, pre_repro_id):
        with pytest.raises(NotFoundError):
            timer_service.start_timer("missing", pre_repro_id, users.pre_a.id)

    def test_start_writes_one_audit_entry(self, make_file, users, pre_repro_id):
        f = make_file()
        timer_service.start_timer(f.id, pre_repro_id, users.pre_a.id)
        entries = AuditLog.query.filter_by(file_id=f.id, action_type=AuditAction.TIMER_STARTED).all()
        assert len(entries) == 1


class TestStop:
    def test_stop_computes_exact_duration(self, make_file, users, pre_repro_id):
        f = make_file()
        timer = timer_service.start_timer(f.id, pre_repro_id, users.pre_a.id)
        timer.start_time = as_utc(timer.start_time) - timedelta(seconds=90)
        db.session.commit()

        stopped = timer_service.stop_timer(f.id, users.pre_a.id)
        elapsed = as_utc(stopped.end_time) - as_utc(stopped.start_time)
        assert stopped.duration_seconds == int(elapsed.total_seconds())
        assert stopped.duration_seconds >= 90
        assert timer_service.get_active_timer(f.id) is None

    def test_stop_without_open_timer_is_not_found(self, make_file, users):
        f = make_file()
        with pytest.raises(NotFoundError):
            timer_service.stop_timer(f.id, users.pre_a.id)

    def test_stopped_timer_is_never_reopened(self, make_file, users, pre_repro_id):
        f = make_file()
        first = timer_service.start_timer(f.id, pre_repro_id, users.pre_a.id)
        timer_service.stop_timer(f.id, users.pre_a.id)
        second = timer_service.start_timer(f.id, pre_repro_id, users.pre_a.id)
        assert second.id != first.id
        history = timer_service.get_file_timers(f.id)
        assert [t.id for t in history] == [first.id, second.id]
        assert history[0].end_time is not None

    def test_stop_audits_duration(self, make_file, users, pre_repro_id):
        f = make_file()
        timer_service.start_timer(f.id, pre_repro_id, users.pre_a.id)
        timer_service.stop_timer(f.id, users.pre_a.id)
        entry = AuditLog.query.filter_by(file_id=f.id, action_type=AuditAction.TIMER_STOPPED).one()
        assert "duration_seconds" in entry.payload
