"""
Print Production Workflow
File notes: free-text remarks and the mandatory rejection notes that
workflow operations attach.
"""

from printflow.models import db
from printflow.models.base import _utcnow, _uuid, iso


class Note(db.Model):
    __tablename__ = "notes"
    __table_args__ = (
        db.Index("idx_notes_file_created", "file_id", "created_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    file_id = db.Column(
        db.String(36), db.ForeignKey("files.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    department_id = db.Column(
        db.String(36), db.ForeignKey("departments.id", ondelete="SET NULL"),
        nullable=True,
    )
    message = db.Column(db.Text, nullable=False)
    is_system = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    user = db.relationship("User")
    department = db.relationship("Department")

    def to_dict(self):
        return {
            "id": self.id,
            "file_id": self.file_id,
            "user_id": self.user_id,
            "user": self.user.to_ref() if self.user else None,
            "department_id": self.department_id,
            "department": self.department.to_ref() if self.department else None,
            "message": self.message,
            "is_system": self.is_system,
            "created_at": iso(self.created_at),
        }
