"""
Print Production Workflow
Time tracking models.

Models:
    - Timer:       department occupancy interval on one file.
    - WorkSession: one operator's attention interval on one file.

Single-active invariants (also enforced by partial unique indexes):
    - at most one open Timer (end_time IS NULL) per file_id
    - at most one open WorkSession (end_time IS NULL) per user_id

Rows are closed, never deleted and never reopened.
"""

from printflow.models import db
from printflow.models.base import _utcnow, _uuid, elapsed_seconds, iso


class Timer(db.Model):
    __tablename__ = "timers"
    __table_args__ = (
        db.Index(
            "uq_timers_file_open", "file_id",
            unique=True,
            postgresql_where=db.text("end_time IS NULL"),
            sqlite_where=db.text("end_time IS NULL"),
        ),
        db.Index("idx_timers_user_open", "user_id", "end_time"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    file_id = db.Column(
        db.String(36), db.ForeignKey("files.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    department_id = db.Column(
        db.String(36), db.ForeignKey("departments.id", ondelete="RESTRICT"),
        nullable=False,
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        comment="NULL for the virtual customer department",
    )
    start_time = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    end_time = db.Column(db.DateTime(timezone=True), nullable=True)
    duration_seconds = db.Column(db.Integer, nullable=True)

    department = db.relationship("Department")
    user = db.relationship("User")

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    def to_dict(self):
        return {
            "id": self.id,
            "file_id": self.file_id,
            "department_id": self.department_id,
            "department": self.department.to_ref() if self.department else None,
            "user_id": self.user_id,
            "user": self.user.to_ref() if self.user else None,
            "start_time": iso(self.start_time),
            "end_time": iso(self.end_time),
            "duration_seconds": self.duration_seconds,
            "elapsed_seconds": (
                self.duration_seconds if self.end_time else elapsed_seconds(self.start_time)
            ),
        }

    def __repr__(self):
        state = "open" if self.is_open else f"{self.duration_seconds}s"
        return f"<Timer file={self.file_id} {state}>"


class WorkSession(db.Model):
    __tablename__ = "work_sessions"
    __table_args__ = (
        db.Index(
            "uq_work_sessions_user_open", "user_id",
            unique=True,
            postgresql_where=db.text("end_time IS NULL"),
            sqlite_where=db.text("end_time IS NULL"),
        ),
        db.Index("idx_work_sessions_file", "file_id"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    file_id = db.Column(
        db.String(36), db.ForeignKey("files.id", ondelete="CASCADE"),
        nullable=False,
    )
    department_id = db.Column(
        db.String(36), db.ForeignKey("departments.id", ondelete="RESTRICT"),
        nullable=False,
    )
    start_time = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    end_time = db.Column(db.DateTime(timezone=True), nullable=True)
    duration_minutes = db.Column(db.Integer, nullable=True)

    file = db.relationship("File")
    department = db.relationship("Department")
    user = db.relationship("User")

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    def to_dict(self):
        minutes = self.duration_minutes
        if minutes is None:
            minutes = elapsed_seconds(self.start_time, self.end_time) // 60
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user": self.user.to_ref() if self.user else None,
            "file_id": self.file_id,
            "file_no": self.file.file_no if self.file else None,
            "department_id": self.department_id,
            "department": self.department.to_ref() if self.department else None,
            "start_time": iso(self.start_time),
            "end_time": iso(self.end_time),
            "duration_minutes": minutes,
            "is_active": self.is_open,
        }

    def __repr__(self):
        state = "open" if self.is_open else f"{self.duration_minutes}m"
        return f"<WorkSession user={self.user_id} file={self.file_id} {state}>"
