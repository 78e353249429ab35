"""
Simultaneous claim / takeover attempts against a file-backed database.

The in-memory engine used by the rest of the suite serialises everything on
one connection, so these tests build their own app on a SQLite file and run
each contender in its own thread and app context.
"""

import threading

import pytest
from sqlalchemy import select

from printflow import create_app
from printflow.config import TestingConfig
from printflow.core.exceptions import WorkflowError
from printflow.models import db
from printflow.models.audit import AuditAction, AuditLog
from printflow.models.auth import Role, User
from printflow.models.department import DepartmentCode
from printflow.models.file import File, FileStatus
from printflow.models.time_tracking import Timer
from printflow.services import file_service, pre_repro_service, timer_service, workflow_service
from printflow.services.department_service import get_department_id, seed_departments

ROUNDS = 5


@pytest.fixture()
def race_app(tmp_path, monkeypatch):
    monkeypatch.setattr(TestingConfig, "SQLALCHEMY_DATABASE_URI", f"sqlite:///{tmp_path / 'race.db'}")
    application = create_app("testing")
    with application.app_context():
        seed_departments()
        yield application
        db.session.remove()
        db.engine.dispose()


def _user(username, role, code):
    user = User(
        username=username,
        full_name=username.title(),
        role=role,
        department_id=get_department_id(code),
    )
    db.session.add(user)
    db.session.commit()
    return user.id


def _race(app, *calls):
    """Release every call at once; return ``"ok"`` or the error code per call."""
    barrier = threading.Barrier(len(calls))
    outcomes = [None] * len(calls)

    def run(index, call):
        with app.app_context():
            try:
                barrier.wait()
                call()
            except WorkflowError as exc:
                outcomes[index] = exc.code
            else:
                outcomes[index] = "ok"
            finally:
                db.session.remove()

    threads = [threading.Thread(target=run, args=(i, c)) for i, c in enumerate(calls)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    return outcomes


def test_simultaneous_claims_have_one_winner(race_app):
    admin = _user("admin", Role.ADMIN, DepartmentCode.ADMIN)
    contenders = [
        _user("pre_a", Role.PRE_REPRO, DepartmentCode.PRE_REPRO),
        _user("pre_b", Role.PRE_REPRO, DepartmentCode.PRE_REPRO),
    ]

    for _ in range(ROUNDS):
        file_id = file_service.create_file(customer_name="Acme", created_by_id=admin).id

        outcomes = _race(
            race_app,
            *[lambda uid=uid: pre_repro_service.claim(file_id, uid) for uid in contenders],
        )

        assert sorted(outcomes) == ["ERR_ALREADY_CLAIMED", "ok"]
        winner = contenders[outcomes.index("ok")]
        db.session.expire_all()
        assert db.session.get(File, file_id).assigned_designer_id == winner
        assert timer_service.get_active_timer(file_id).user_id == winner
        claims = AuditLog.query.filter_by(file_id=file_id, action_type=AuditAction.PRE_REPRO_CLAIMED).all()
        assert [c.by_user_id for c in claims] == [winner]


def test_simultaneous_takeovers_have_one_winner(race_app):
    admin = _user("admin", Role.ADMIN, DepartmentCode.ADMIN)
    designer = _user("designer", Role.DESIGNER, DepartmentCode.REPRO)
    contenders = [
        _user("quality_a", Role.QUALITY, DepartmentCode.QUALITY),
        _user("quality_b", Role.QUALITY, DepartmentCode.QUALITY),
    ]

    for _ in range(ROUNDS):
        file_id = file_service.create_file(
            customer_name="Acme", created_by_id=admin, requires_approval=False,
        ).id
        workflow_service.assign(file_id, designer, admin)
        workflow_service.takeover(file_id, designer)
        workflow_service.direct_to_quality(file_id, designer)

        outcomes = _race(
            race_app,
            *[lambda uid=uid: workflow_service.takeover(file_id, uid) for uid in contenders],
        )

        assert outcomes.count("ok") == 1
        assert outcomes[1 - outcomes.index("ok")] in ("ERR_INVALID_STATE", "ERR_CONFLICT")
        winner = contenders[outcomes.index("ok")]

        db.session.expire_all()
        file = db.session.get(File, file_id)
        assert file.status == FileStatus.IN_QUALITY
        assert file.pending_takeover is False
        open_timers = db.session.execute(
            select(Timer).where(Timer.file_id == file_id, Timer.end_time.is_(None))
        ).scalars().all()
        assert [t.user_id for t in open_timers] == [winner]
        assert len(timer_service.get_file_timers(file_id)) == 2
        takeovers = AuditLog.query.filter_by(file_id=file_id, action_type=AuditAction.TAKEOVER).all()
        assert sorted(t.by_user_id for t in takeovers) == sorted([designer, winner])
