"""
Print Production Workflow
Operator accounts.

Authentication itself lives outside this package; the engine only needs
an operator's id, role and home department.
"""

import enum

from printflow.models import db
from printflow.models.base import _utcnow, _uuid, iso


class Role(str, enum.Enum):
    ADMIN = "ADMIN"
    PRE_REPRO = "PRE_REPRO"
    DESIGNER = "DESIGNER"
    QUALITY = "QUALITY"
    COLLATION = "COLLATION"


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    username = db.Column(db.String(50), nullable=False, unique=True)
    full_name = db.Column(db.String(200), nullable=False)
    role = db.Column(db.Enum(Role, native_enum=False, length=20), nullable=False)
    department_id = db.Column(
        db.String(36), db.ForeignKey("departments.id", ondelete="RESTRICT"),
        nullable=True, index=True,
    )
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    department = db.relationship("Department", lazy="joined")

    def to_dict(self):
        return {
            "id": self.id,
            "username": self.username,
            "full_name": self.full_name,
            "role": self.role.value if self.role else None,
            "department_id": self.department_id,
            "is_active": self.is_active,
            "created_at": iso(self.created_at),
        }

    def to_ref(self):
        return {"id": self.id, "full_name": self.full_name, "username": self.username}

    def __repr__(self):
        return f"<User {self.username} ({self.role})>"
