"""
Print Production Workflow
Audit domain model.

Models:
    - AuditLog: immutable, append-only trail of every file transition.
"""

import enum
import json

from sqlalchemy import event

from printflow.models import db
from printflow.models.base import _utcnow, iso


class AuditAction(str, enum.Enum):
    CREATE = "CREATE"
    ASSIGN = "ASSIGN"
    TAKEOVER = "TAKEOVER"
    TRANSFER = "TRANSFER"
    CUSTOMER_SENT = "CUSTOMER_SENT"
    CUSTOMER_OK = "CUSTOMER_OK"
    CUSTOMER_NOK = "CUSTOMER_NOK"
    RESTART_MG = "RESTART_MG"
    QUALITY_OK = "QUALITY_OK"
    QUALITY_NOK = "QUALITY_NOK"
    CLOSE = "CLOSE"
    NOTE_ADDED = "NOTE_ADDED"
    PRE_REPRO_CLAIMED = "PRE_REPRO_CLAIMED"
    PRE_REPRO_HANDED_OFF = "PRE_REPRO_HANDED_OFF"
    PRE_REPRO_RETURNED_TO_QUEUE = "PRE_REPRO_RETURNED_TO_QUEUE"
    TIMER_STARTED = "TIMER_STARTED"
    TIMER_STOPPED = "TIMER_STOPPED"
    WORK_STARTED = "WORK_STARTED"
    WORK_STOPPED = "WORK_STOPPED"


class AuditLog(db.Model):
    """
    Immutable audit trail for every state-changing operation.

    One row per operation, written in the same transaction as the mutation
    it describes.  ``payload_json`` carries free-form detail (notes,
    previous/new status, outgoing/incoming assignee).
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_file_ts", "file_id", "timestamp"),
        db.Index("idx_audit_actor", "by_user_id"),
        db.Index("idx_audit_action", "action_type"),
    )

    id = db.Column(db.Integer, primary_key=True)
    file_id = db.Column(
        db.String(36), db.ForeignKey("files.id", ondelete="CASCADE"),
        nullable=False,
    )
    action_type = db.Column(db.Enum(AuditAction, native_enum=False, length=40), nullable=False)
    by_user_id = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    from_department_id = db.Column(
        db.String(36), db.ForeignKey("departments.id", ondelete="SET NULL"),
        nullable=True,
    )
    to_department_id = db.Column(
        db.String(36), db.ForeignKey("departments.id", ondelete="SET NULL"),
        nullable=True,
    )
    payload_json = db.Column(db.Text, default="{}")
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    by_user = db.relationship("User")
    from_department = db.relationship("Department", foreign_keys=[from_department_id])
    to_department = db.relationship("Department", foreign_keys=[to_department_id])

    # ── Helpers ──────────────────────────────────────────────────────────

    @property
    def payload(self) -> dict:
        """Deserialise *payload_json* to a Python dict."""
        try:
            return json.loads(self.payload_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "file_id": self.file_id,
            "action_type": self.action_type.value if self.action_type else None,
            "by_user_id": self.by_user_id,
            "by_user": self.by_user.to_ref() if self.by_user else None,
            "from_department_id": self.from_department_id,
            "from_department": self.from_department.to_ref() if self.from_department else None,
            "to_department_id": self.to_department_id,
            "to_department": self.to_department.to_ref() if self.to_department else None,
            "payload": self.payload,
            "timestamp": iso(self.timestamp),
        }

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.action_type} on file/{self.file_id}>"


@event.listens_for(AuditLog, "before_update")
def _reject_audit_update(mapper, connection, target):
    raise RuntimeError("audit_logs rows are append-only")


@event.listens_for(AuditLog, "before_delete")
def _reject_audit_delete(mapper, connection, target):
    raise RuntimeError("audit_logs rows are append-only")


# ── Convenience writer ───────────────────────────────────────────────────────

def write_audit(
    *,
    file_id: str,
    action_type: AuditAction,
    by_user_id: str | None,
    from_department_id: str | None = None,
    to_department_id: str | None = None,
    payload: dict | None = None,
) -> AuditLog:
    """
    Append a single audit row.  Uses ``flush`` so callers keep
    transaction control.

    Returns the (flushed) AuditLog instance.
    """
    entry = AuditLog(
        file_id=file_id,
        action_type=action_type,
        by_user_id=by_user_id,
        from_department_id=from_department_id,
        to_department_id=to_department_id,
        payload_json=json.dumps(
            {k: v for k, v in (payload or {}).items() if v is not None},
            default=str,
        ),
    )
    db.session.add(entry)
    db.session.flush()
    return entry
