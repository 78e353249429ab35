"""
Read side of the audit log.

Writes happen through ``printflow.models.audit.write_audit`` inside the
operation being recorded; this module only queries.
"""

from datetime import datetime

from sqlalchemy import select

from printflow.models import db
from printflow.models.audit import AuditAction, AuditLog


def get_file_audit_trail(file_id: str) -> list[AuditLog]:
    """Every entry for one file, newest first."""
    return list(db.session.execute(
        select(AuditLog)
        .where(AuditLog.file_id == file_id)
        .order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
    ).scalars())


def get_recent_audit_logs(
    limit: int = 50,
    action_type: AuditAction | str | None = None,
    user_id: str | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
) -> list[AuditLog]:
    stmt = select(AuditLog)
    if action_type is not None:
        stmt = stmt.where(AuditLog.action_type == AuditAction(action_type))
    if user_id is not None:
        stmt = stmt.where(AuditLog.by_user_id == user_id)
    if since is not None:
        stmt = stmt.where(AuditLog.timestamp >= since)
    if until is not None:
        stmt = stmt.where(AuditLog.timestamp <= until)
    stmt = stmt.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc()).limit(max(1, limit))
    return list(db.session.execute(stmt).scalars())
