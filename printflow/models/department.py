"""
Print Production Workflow
Department directory model.

Models:
    - Department: one production department (or the virtual CUSTOMER desk).

Files travel PRE_REPRO → REPRO → QUALITY → COLLATION and leave to
production; CUSTOMER is a virtual department whose timer has no user.
"""

import enum

from printflow.models import db
from printflow.models.base import _utcnow, _uuid, iso


class DepartmentCode(str, enum.Enum):
    PRE_REPRO = "PRE_REPRO"
    REPRO = "REPRO"
    QUALITY = "QUALITY"
    COLLATION = "COLLATION"
    CUSTOMER = "CUSTOMER"
    ADMIN = "ADMIN"


# (code, display name, sort order, is_virtual)
DEFAULT_DEPARTMENTS = (
    (DepartmentCode.PRE_REPRO, "Pre-Repro", 10, False),
    (DepartmentCode.REPRO, "Repro", 20, False),
    (DepartmentCode.QUALITY, "Quality", 30, False),
    (DepartmentCode.COLLATION, "Collation", 40, False),
    (DepartmentCode.CUSTOMER, "Customer", 50, True),
    (DepartmentCode.ADMIN, "Administration", 90, False),
)


class Department(db.Model):
    __tablename__ = "departments"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    code = db.Column(db.String(30), nullable=False, unique=True)
    name = db.Column(db.String(100), nullable=False)
    sort_order = db.Column(db.Integer, nullable=False, default=0)
    is_virtual = db.Column(
        db.Boolean, nullable=False, default=False,
        comment="True for CUSTOMER: no operator ever takes it over",
    )
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "sort_order": self.sort_order,
            "is_virtual": self.is_virtual,
            "created_at": iso(self.created_at),
        }

    def to_ref(self):
        """Compact form embedded in file / timer payloads."""
        return {"id": self.id, "code": self.code, "name": self.name}

    def __repr__(self):
        return f"<Department {self.code}>"
