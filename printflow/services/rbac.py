"""
Access policy (RBAC) for workflow actions.

``can_perform`` is a pure decision function: role, action, a snapshot of the
file and whether the actor is clocked in on it → allowed / denied.  It has
no side effects and never touches the database.  The HTTP layer calls it
before invoking an engine operation; the engine itself only checks
structural preconditions (status, ownership).

Usage:
    from printflow.services.rbac import Actor, FileSnapshot, WorkflowAction, can_perform

    actor = Actor.from_user(user)
    snapshot = FileSnapshot.from_file(file)
    if not can_perform(actor, WorkflowAction.QUALITY_OK, snapshot, has_active_timer=True):
        raise PermissionDeniedError(actor.id, "quality_ok")
"""

import enum
from collections.abc import Callable
from dataclasses import dataclass

from printflow.models.auth import Role
from printflow.models.department import DepartmentCode
from printflow.models.file import FileStatus, Stage, validate_file_transition


class WorkflowAction(str, enum.Enum):
    ASSIGN = "ASSIGN"
    TAKEOVER = "TAKEOVER"
    REQUEST_APPROVAL = "REQUEST_APPROVAL"
    DIRECT_TO_QUALITY = "DIRECT_TO_QUALITY"
    SEND_TO_CUSTOMER = "SEND_TO_CUSTOMER"
    CUSTOMER_OK = "CUSTOMER_OK"
    CUSTOMER_NOK = "CUSTOMER_NOK"
    RESTART_MG = "RESTART_MG"
    QUALITY_OK = "QUALITY_OK"
    QUALITY_NOK = "QUALITY_NOK"
    SEND_TO_PRODUCTION = "SEND_TO_PRODUCTION"
    CLAIM = "CLAIM"
    COMPLETE = "COMPLETE"
    RETURN_TO_QUEUE = "RETURN_TO_QUEUE"
    ADD_NOTE = "ADD_NOTE"


# ── Coarse permissions per role ──────────────────────────────────────────────

ROLE_PERMISSIONS = {
    Role.ADMIN: frozenset({
        "file:create", "file:assign", "file:takeover", "file:transfer",
        "file:view_all", "note:create", "customer:approve", "quality:approve",
        "production:send", "pre_repro:claim", "report:view", "user:manage",
        "override:execute",
    }),
    Role.PRE_REPRO: frozenset({
        "file:create", "file:takeover", "file:transfer", "file:view_all",
        "note:create", "customer:approve", "pre_repro:claim",
    }),
    Role.DESIGNER: frozenset({"file:takeover", "file:transfer", "note:create"}),
    Role.QUALITY: frozenset({"file:takeover", "file:transfer", "note:create", "quality:approve"}),
    Role.COLLATION: frozenset({"file:takeover", "file:transfer", "note:create", "production:send"}),
}

ROLE_DEPARTMENT = {
    Role.ADMIN: DepartmentCode.ADMIN,
    Role.PRE_REPRO: DepartmentCode.PRE_REPRO,
    Role.DESIGNER: DepartmentCode.REPRO,
    Role.QUALITY: DepartmentCode.QUALITY,
    Role.COLLATION: DepartmentCode.COLLATION,
}


def has_permission(role: Role | str, permission: str) -> bool:
    try:
        role = Role(role)
    except ValueError:
        return False
    return permission in ROLE_PERMISSIONS.get(role, frozenset())


def department_for_role(role: Role | str) -> DepartmentCode:
    return ROLE_DEPARTMENT[Role(role)]


def is_valid_transition(from_status: FileStatus | str, to_status: FileStatus | str) -> bool:
    return validate_file_transition(FileStatus(from_status), FileStatus(to_status))


# ── Inputs ───────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Actor:
    """Who is acting: id, role and home department."""
    id: str
    role: Role
    department_id: str | None = None

    @classmethod
    def from_user(cls, user) -> "Actor":
        return cls(id=user.id, role=Role(user.role), department_id=user.department_id)


@dataclass(frozen=True)
class FileSnapshot:
    """The only file fields the policy may look at."""
    status: FileStatus
    assigned_designer_id: str | None
    current_department_id: str | None
    pending_takeover: bool
    requires_approval: bool
    stage: Stage | None = None

    @classmethod
    def from_file(cls, file) -> "FileSnapshot":
        return cls(
            status=FileStatus(file.status),
            assigned_designer_id=file.assigned_designer_id,
            current_department_id=file.current_department_id,
            pending_takeover=bool(file.pending_takeover),
            requires_approval=bool(file.requires_approval),
            stage=Stage(file.stage) if file.stage is not None else None,
        )


# ── Rules ────────────────────────────────────────────────────────────────────

_Rule = Callable[[Actor, FileSnapshot, bool], bool]


def _is_role(actor: Actor, *roles: Role) -> bool:
    return actor.role in roles


def _assign(actor, f, timer):
    return _is_role(actor, Role.ADMIN) and f.status == FileStatus.AWAITING_ASSIGNMENT


def _takeover(actor, f, timer):
    if f.pending_takeover and f.current_department_id == actor.department_id:
        return True
    return (
        f.status in (FileStatus.ASSIGNED, FileStatus.REVISION_REQUIRED)
        and f.assigned_designer_id == actor.id
    )


def _request_approval(actor, f, timer):
    return (
        _is_role(actor, Role.DESIGNER)
        and f.status == FileStatus.IN_REPRO
        and f.requires_approval
        and f.assigned_designer_id == actor.id
        and timer
    )


def _direct_to_quality(actor, f, timer):
    return (
        _is_role(actor, Role.DESIGNER)
        and f.status == FileStatus.IN_REPRO
        and not f.requires_approval
        and f.assigned_designer_id == actor.id
        and timer
    )


def _send_to_customer(actor, f, timer):
    return _is_role(actor, Role.ADMIN, Role.PRE_REPRO) and f.status == FileStatus.APPROVAL_PREP


def _customer_decision(actor, f, timer):
    return _is_role(actor, Role.ADMIN, Role.PRE_REPRO) and f.status == FileStatus.CUSTOMER_APPROVAL


def _quality_decision(actor, f, timer):
    return _is_role(actor, Role.ADMIN, Role.QUALITY) and f.status == FileStatus.IN_QUALITY and timer


def _send_to_production(actor, f, timer):
    return _is_role(actor, Role.ADMIN, Role.COLLATION) and f.status == FileStatus.IN_KOLAJ and timer


def _claim(actor, f, timer):
    return (
        _is_role(actor, Role.ADMIN, Role.PRE_REPRO)
        and f.stage == Stage.PRE_REPRO
        and f.assigned_designer_id is None
    )


def _claimant(actor, f, timer):
    return (
        _is_role(actor, Role.ADMIN, Role.PRE_REPRO)
        and f.stage == Stage.PRE_REPRO
        and f.assigned_designer_id == actor.id
    )


def _add_note(actor, f, timer):
    return f.status != FileStatus.SENT_TO_PRODUCTION


_RULES: dict[WorkflowAction, _Rule] = {
    WorkflowAction.ASSIGN: _assign,
    WorkflowAction.TAKEOVER: _takeover,
    WorkflowAction.REQUEST_APPROVAL: _request_approval,
    WorkflowAction.DIRECT_TO_QUALITY: _direct_to_quality,
    WorkflowAction.SEND_TO_CUSTOMER: _send_to_customer,
    WorkflowAction.CUSTOMER_OK: _customer_decision,
    WorkflowAction.CUSTOMER_NOK: _customer_decision,
    WorkflowAction.RESTART_MG: _customer_decision,
    WorkflowAction.QUALITY_OK: _quality_decision,
    WorkflowAction.QUALITY_NOK: _quality_decision,
    WorkflowAction.SEND_TO_PRODUCTION: _send_to_production,
    WorkflowAction.CLAIM: _claim,
    WorkflowAction.COMPLETE: _claimant,
    WorkflowAction.RETURN_TO_QUEUE: _claimant,
    WorkflowAction.ADD_NOTE: _add_note,
}

_missing = set(WorkflowAction) - set(_RULES)
if _missing:
    raise RuntimeError(f"RBAC rules missing for: {sorted(a.value for a in _missing)}")


def can_perform(
    actor: Actor,
    action: WorkflowAction | str,
    snapshot: FileSnapshot,
    has_active_timer: bool = False,
) -> bool:
    """Pure allow/deny decision; unknown actions are denied."""
    try:
        action = WorkflowAction(action)
    except ValueError:
        return False
    return bool(_RULES[action](actor, snapshot, bool(has_active_timer)))


def available_actions(actor: Actor, snapshot: FileSnapshot, has_active_timer: bool = False) -> list[WorkflowAction]:
    return [a for a in WorkflowAction if can_perform(actor, a, snapshot, has_active_timer)]
