"""
Department directory.

Static code → record lookup consumed by every transition.  The canonical
set lives in ``DEFAULT_DEPARTMENTS``; ``seed_departments`` is idempotent and
is exposed as ``flask seed-departments``.
"""

import logging

from sqlalchemy import select

from printflow.core.exceptions import NotFoundError
from printflow.models import db
from printflow.models.department import DEFAULT_DEPARTMENTS, Department, DepartmentCode

logger = logging.getLogger(__name__)


def seed_departments() -> int:
    """Insert any missing canonical department. Returns how many were created."""
    existing = set(db.session.execute(select(Department.code)).scalars())
    created = 0
    for code, name, sort_order, is_virtual in DEFAULT_DEPARTMENTS:
        if code.value in existing:
            continue
        db.session.add(Department(
            code=code.value, name=name, sort_order=sort_order, is_virtual=is_virtual,
        ))
        created += 1
    db.session.commit()
    if created:
        logger.info("Seeded %d department(s)", created)
    return created


def get_department_by_code(code: DepartmentCode | str) -> Department:
    code = code.value if isinstance(code, DepartmentCode) else code
    dept = db.session.execute(
        select(Department).where(Department.code == code)
    ).scalar_one_or_none()
    if dept is None:
        raise NotFoundError(resource="Department", resource_id=code)
    return dept


def get_department_id(code: DepartmentCode | str) -> str:
    return get_department_by_code(code).id


def get_department(department_id: str) -> Department:
    dept = db.session.get(Department, department_id)
    if dept is None:
        raise NotFoundError(resource="Department", resource_id=department_id)
    return dept


def list_departments() -> list[Department]:
    return list(db.session.execute(
        select(Department).order_by(Department.sort_order, Department.code)
    ).scalars())
