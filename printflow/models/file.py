"""
Print Production Workflow
File (job) model and the status → stage → department table.

Models:
    - File: one print-production job moving through the departments.

Lifecycle:
    AWAITING_ASSIGNMENT → ASSIGNED → IN_REPRO → APPROVAL_PREP | IN_QUALITY
    APPROVAL_PREP → CUSTOMER_APPROVAL → IN_QUALITY | REVISION_REQUIRED | APPROVAL_PREP
    REVISION_REQUIRED → IN_REPRO
    IN_QUALITY → IN_KOLAJ | REVISION_REQUIRED
    IN_KOLAJ → SENT_TO_PRODUCTION (terminal)

Every transition in ``printflow.services.workflow_service`` derives the
stage and destination department from ``STATUS_STAGE`` and
``STATUS_DEPARTMENT``; nothing else re-derives them.
"""

import enum

from sqlalchemy.orm import validates

from printflow.models import db
from printflow.models.base import _utcnow, _uuid, iso
from printflow.models.department import DepartmentCode


class FileStatus(str, enum.Enum):
    AWAITING_ASSIGNMENT = "AWAITING_ASSIGNMENT"
    ASSIGNED = "ASSIGNED"
    IN_REPRO = "IN_REPRO"
    APPROVAL_PREP = "APPROVAL_PREP"
    CUSTOMER_APPROVAL = "CUSTOMER_APPROVAL"
    REVISION_REQUIRED = "REVISION_REQUIRED"
    IN_QUALITY = "IN_QUALITY"
    IN_KOLAJ = "IN_KOLAJ"
    SENT_TO_PRODUCTION = "SENT_TO_PRODUCTION"


class Stage(str, enum.Enum):
    PRE_REPRO = "PRE_REPRO"
    REPRO = "REPRO"
    DONE = "DONE"


class Priority(str, enum.Enum):
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    URGENT = "URGENT"


# ── Status tables ────────────────────────────────────────────────────────────

STATUS_STAGE = {
    FileStatus.AWAITING_ASSIGNMENT: Stage.PRE_REPRO,
    FileStatus.ASSIGNED: Stage.REPRO,
    FileStatus.IN_REPRO: Stage.REPRO,
    FileStatus.APPROVAL_PREP: Stage.REPRO,
    FileStatus.CUSTOMER_APPROVAL: Stage.REPRO,
    FileStatus.REVISION_REQUIRED: Stage.REPRO,
    FileStatus.IN_QUALITY: Stage.REPRO,
    FileStatus.IN_KOLAJ: Stage.REPRO,
    FileStatus.SENT_TO_PRODUCTION: Stage.DONE,
}

# Department a file sits in while in each status; None keeps the current one.
STATUS_DEPARTMENT = {
    FileStatus.AWAITING_ASSIGNMENT: DepartmentCode.PRE_REPRO,
    FileStatus.ASSIGNED: DepartmentCode.REPRO,
    FileStatus.IN_REPRO: DepartmentCode.REPRO,
    FileStatus.APPROVAL_PREP: DepartmentCode.PRE_REPRO,
    FileStatus.CUSTOMER_APPROVAL: DepartmentCode.CUSTOMER,
    FileStatus.REVISION_REQUIRED: DepartmentCode.REPRO,
    FileStatus.IN_QUALITY: DepartmentCode.QUALITY,
    FileStatus.IN_KOLAJ: DepartmentCode.COLLATION,
    FileStatus.SENT_TO_PRODUCTION: None,
}

# Status a file takes when an operator of that department takes it over.
ARRIVAL_STATUS_BY_DEPARTMENT = {
    DepartmentCode.REPRO: FileStatus.IN_REPRO,
    DepartmentCode.QUALITY: FileStatus.IN_QUALITY,
    DepartmentCode.COLLATION: FileStatus.IN_KOLAJ,
}

FILE_TRANSITIONS = {
    FileStatus.AWAITING_ASSIGNMENT: [FileStatus.ASSIGNED],
    FileStatus.ASSIGNED: [FileStatus.IN_REPRO],
    FileStatus.IN_REPRO: [FileStatus.APPROVAL_PREP, FileStatus.IN_QUALITY, FileStatus.IN_KOLAJ],
    FileStatus.APPROVAL_PREP: [FileStatus.CUSTOMER_APPROVAL],
    FileStatus.CUSTOMER_APPROVAL: [
        FileStatus.IN_QUALITY, FileStatus.REVISION_REQUIRED,
        FileStatus.APPROVAL_PREP, FileStatus.IN_KOLAJ,
    ],
    FileStatus.REVISION_REQUIRED: [FileStatus.IN_REPRO],
    FileStatus.IN_QUALITY: [FileStatus.IN_KOLAJ, FileStatus.REVISION_REQUIRED],
    FileStatus.IN_KOLAJ: [FileStatus.SENT_TO_PRODUCTION],
    FileStatus.SENT_TO_PRODUCTION: [],
}

# Statuses in which ``assigned_designer_id`` must name an owner.
OWNED_STATUSES = frozenset({
    FileStatus.ASSIGNED,
    FileStatus.IN_REPRO,
    FileStatus.REVISION_REQUIRED,
    FileStatus.IN_QUALITY,
    FileStatus.IN_KOLAJ,
})

TERMINAL_STATUSES = frozenset({FileStatus.SENT_TO_PRODUCTION})


def validate_file_transition(old_status, new_status):
    """Check if a status transition is an edge of the file state machine."""
    return new_status in FILE_TRANSITIONS.get(old_status, [])


def iteration_label(number: int) -> str:
    return f"MG{number}"


class File(db.Model):
    """
    One print-production job.

    ``file_no`` is human-readable and immutable once assigned.
    ``assigned_designer_id`` is the current claimant/owner;
    ``target_assignee_id`` is only read by the pre-repro handoff.
    """

    __tablename__ = "files"
    __table_args__ = (
        db.Index("idx_files_dept_pending", "current_department_id", "pending_takeover"),
        db.Index("idx_files_stage", "stage"),
        db.Index("idx_files_status", "status"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    file_no = db.Column(db.String(50), nullable=False, unique=True)
    customer_name = db.Column(db.String(200), nullable=False)
    customer_no = db.Column(db.String(50), nullable=True)
    priority = db.Column(
        db.Enum(Priority, native_enum=False, length=10),
        nullable=False, default=Priority.NORMAL,
    )
    location_code = db.Column(
        db.String(50), nullable=True,
        comment="Physical shelf slot; cleared when the file leaves for production",
    )

    # Workflow
    status = db.Column(
        db.Enum(FileStatus, native_enum=False, length=30),
        nullable=False, default=FileStatus.AWAITING_ASSIGNMENT,
    )
    stage = db.Column(
        db.Enum(Stage, native_enum=False, length=20),
        nullable=False, default=Stage.PRE_REPRO,
    )
    current_department_id = db.Column(
        db.String(36), db.ForeignKey("departments.id", ondelete="RESTRICT"),
        nullable=False,
    )
    assigned_designer_id = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    target_assignee_id = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    pending_takeover = db.Column(db.Boolean, nullable=False, default=False)
    requires_approval = db.Column(db.Boolean, nullable=False, default=True)

    # Quality-rejection rework path
    skip_quality_after_customer_ok = db.Column(db.Boolean, nullable=False, default=False)
    quality_nok_return = db.Column(
        db.Boolean, nullable=False, default=False,
        comment="Set by quality rejection: repro completion goes straight to collation",
    )

    iteration_number = db.Column(db.Integer, nullable=False, default=1)
    iteration_label = db.Column(db.String(10), nullable=False, default="MG1")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=_utcnow, onupdate=_utcnow,
    )
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # ── Relationships ────────────────────────────────────────────────────
    current_department = db.relationship("Department", foreign_keys=[current_department_id])
    assigned_designer = db.relationship("User", foreign_keys=[assigned_designer_id])
    target_assignee = db.relationship("User", foreign_keys=[target_assignee_id])

    @validates("file_no")
    def _freeze_file_no(self, key, value):
        if self.file_no is not None and value != self.file_no:
            raise ValueError("file_no is immutable once assigned")
        return value

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self, include_relations=True):
        d = {
            "id": self.id,
            "file_no": self.file_no,
            "customer_name": self.customer_name,
            "customer_no": self.customer_no,
            "priority": self.priority.value if self.priority else None,
            "location_code": self.location_code,
            "status": self.status.value if self.status else None,
            "stage": self.stage.value if self.stage else None,
            "current_department_id": self.current_department_id,
            "assigned_designer_id": self.assigned_designer_id,
            "target_assignee_id": self.target_assignee_id,
            "pending_takeover": self.pending_takeover,
            "requires_approval": self.requires_approval,
            "iteration_number": self.iteration_number,
            "iteration_label": self.iteration_label,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
            "closed_at": iso(self.closed_at),
        }
        if include_relations:
            d["current_department"] = (
                self.current_department.to_ref() if self.current_department else None
            )
            d["assigned_designer"] = (
                self.assigned_designer.to_ref() if self.assigned_designer else None
            )
            d["target_assignee"] = (
                self.target_assignee.to_ref() if self.target_assignee else None
            )
        return d

    def __repr__(self):
        return f"<File {self.file_no} [{self.status}]>"
