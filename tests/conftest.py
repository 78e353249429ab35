"""
Shared pytest fixtures for the print production workflow test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - departments: Seeded department directory, keyed by code
    - make_user / users: Operator factory and a standard cast of operators
    - make_file: File factory (goes through file_service.create_file)
    - file_in: Build a file and walk it to a given status through the engine
"""

import pytest

from printflow import create_app
from printflow.models import db as _db
from printflow.models.auth import Role, User
from printflow.models.department import DepartmentCode
from printflow.models.file import FileStatus
from printflow.services import file_service, workflow_service
from printflow.services.department_service import get_department_by_code, seed_departments


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Directory & operators ────────────────────────────────────────────────


@pytest.fixture()
def departments():
    """Seed the canonical departments and return them keyed by code."""
    seed_departments()
    return {code: get_department_by_code(code) for code in DepartmentCode}


_ROLE_HOME = {
    Role.ADMIN: DepartmentCode.ADMIN,
    Role.PRE_REPRO: DepartmentCode.PRE_REPRO,
    Role.DESIGNER: DepartmentCode.REPRO,
    Role.QUALITY: DepartmentCode.QUALITY,
    Role.COLLATION: DepartmentCode.COLLATION,
}


@pytest.fixture()
def make_user(departments):
    """Factory: ``make_user("alice", Role.DESIGNER)`` → committed User."""

    def _make(username, role, department_code=None):
        code = department_code or _ROLE_HOME[role]
        user = User(
            username=username,
            full_name=username.replace("_", " ").title(),
            role=role,
            department_id=departments[code].id,
        )
        _db.session.add(user)
        _db.session.commit()
        return user

    return _make


class Cast:
    """The operators most tests need, as attributes."""

    def __init__(self, make_user):
        self.admin = make_user("admin", Role.ADMIN)
        self.pre_a = make_user("pre_a", Role.PRE_REPRO)
        self.pre_b = make_user("pre_b", Role.PRE_REPRO)
        self.designer_a = make_user("designer_a", Role.DESIGNER)
        self.designer_b = make_user("designer_b", Role.DESIGNER)
        self.quality = make_user("quality", Role.QUALITY)
        self.collation = make_user("collation", Role.COLLATION)
        self.handoff = make_user("handoff", Role.DESIGNER)


@pytest.fixture()
def users(make_user):
    return Cast(make_user)


@pytest.fixture()
def make_file(users):
    """Factory: create a file in AWAITING_ASSIGNMENT / PRE_REPRO."""

    def _make(**kwargs):
        kwargs.setdefault("customer_name", "Acme Packaging")
        kwargs.setdefault("created_by_id", users.admin.id)
        return file_service.create_file(**kwargs)

    return _make


_REJECTION = "Colours do not match the approved proof"

# status → (previous status, step that reaches it from there)
_PATH = {
    FileStatus.ASSIGNED: (
        FileStatus.AWAITING_ASSIGNMENT,
        lambda f, u: workflow_service.assign(f.id, u.designer_a.id, u.admin.id),
    ),
    FileStatus.IN_REPRO: (
        FileStatus.ASSIGNED,
        lambda f, u: workflow_service.takeover(f.id, u.designer_a.id),
    ),
    FileStatus.APPROVAL_PREP: (
        FileStatus.IN_REPRO,
        lambda f, u: workflow_service.request_approval(f.id, u.designer_a.id),
    ),
    FileStatus.CUSTOMER_APPROVAL: (
        FileStatus.APPROVAL_PREP,
        lambda f, u: workflow_service.send_to_customer(f.id, u.pre_a.id),
    ),
    FileStatus.IN_QUALITY: (
        FileStatus.CUSTOMER_APPROVAL,
        lambda f, u: workflow_service.customer_ok(f.id, u.pre_a.id),
    ),
    FileStatus.REVISION_REQUIRED: (
        FileStatus.CUSTOMER_APPROVAL,
        lambda f, u: workflow_service.customer_nok(f.id, u.pre_a.id, _REJECTION),
    ),
    FileStatus.IN_KOLAJ: (
        FileStatus.IN_QUALITY,
        lambda f, u: workflow_service.quality_ok(f.id, u.quality.id),
    ),
    FileStatus.SENT_TO_PRODUCTION: (
        FileStatus.IN_KOLAJ,
        lambda f, u: workflow_service.send_to_production(f.id, u.collation.id),
    ),
}


@pytest.fixture()
def file_in(make_file, users):
    """Factory: ``file_in(FileStatus.IN_QUALITY)`` → file walked there by the engine.

    The walk assigns to ``designer_a`` and uses the standard cast for every
    other step.
    """

    def _walk(status, **kwargs):
        f = make_file(**kwargs)
        steps = []
        current = status
        while current != FileStatus.AWAITING_ASSIGNMENT:
            previous, step = _PATH[current]
            steps.append(step)
            current = previous
        for step in reversed(steps):
            f = step(f, users)
        assert f.status == status
        return f

    return _walk
