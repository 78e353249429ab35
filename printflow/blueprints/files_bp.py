"""
Files Blueprint: JSON surface over the workflow engine.

Endpoints:
    POST   /api/v1/files                                 create a file
    GET    /api/v1/files/<id>                            file + available actions
    POST   /api/v1/files/<id>/actions/<action>           one workflow action
    POST   /api/v1/files/<id>/pre-repro/claim
    POST   /api/v1/files/<id>/pre-repro/complete
    POST   /api/v1/files/<id>/pre-repro/return-to-queue
    GET    /api/v1/files/<id>/timeline                   audit trail, newest first
    GET    /api/v1/files/<id>/notes
    POST   /api/v1/files/<id>/notes
    POST   /api/v1/assignments/bulk
    GET    /api/v1/queues/pre-repro                      ?only_unclaimed=true
    GET    /api/v1/queues/unassigned
    GET    /api/v1/my-files
    GET    /api/v1/departments
    GET    /api/v1/departments/<id>/queue
    GET    /api/v1/audit-logs                            admin only
    POST   /api/v1/time/start
    POST   /api/v1/time/stop
    POST   /api/v1/work-sessions/start
    POST   /api/v1/work-sessions/stop
    GET    /api/v1/work-sessions/active

Layer contract:
    - The acting user comes from the ``X-User-Id`` header; authentication
      itself happens upstream.
    - RBAC is asked here, before the engine is called; a denial is
      PermissionDeniedError → 403.
    - NO db.session writes here: all writes are owned by the services.
    - Engine errors propagate to the app-level WorkflowError handler.
"""

import logging

from flask import Blueprint, jsonify, request

from printflow.blueprints import bool_arg, limit_arg
from printflow.core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from printflow.models import db
from printflow.models.audit import AuditAction
from printflow.models.auth import User
from printflow.services import (
    audit_service,
    department_service,
    file_service,
    note_service,
    pre_repro_service,
    timer_service,
    work_session_service,
    workflow_service,
)
from printflow.services.rbac import (
    Actor,
    FileSnapshot,
    WorkflowAction,
    available_actions,
    can_perform,
    has_permission,
)
from printflow.utils.errors import E, api_error

logger = logging.getLogger(__name__)

files_bp = Blueprint("files", __name__, url_prefix="/api/v1")


# ── Helpers ──────────────────────────────────────────────────────────────────


def _current_user():
    """Resolve the acting user from ``X-User-Id``. Returns (user, err_response)."""
    user_id = (request.headers.get("X-User-Id") or "").strip()
    if not user_id:
        return None, api_error(E.UNAUTHORIZED, "X-User-Id header is required")
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        return None, api_error(E.UNAUTHORIZED, "Unknown or inactive user")
    return user, None


def _body() -> dict:
    return request.get_json(silent=True) or {}


def _authorize(user: User, action: WorkflowAction, file) -> None:
    """Ask the access policy; raise PermissionDeniedError on denial."""
    has_timer = timer_service.user_has_active_timer(file.id, user.id)
    if not can_perform(Actor.from_user(user), action, FileSnapshot.from_file(file), has_timer):
        logger.info(
            "RBAC denied %s", action.value,
            extra={"file_id": file.id, "user_id": user.id, "action": action.value},
        )
        raise PermissionDeniedError(user.id, action.value.lower())


def _require_permission(user: User, permission: str) -> None:
    if not has_permission(user.role, permission):
        raise PermissionDeniedError(user.id, permission)


def _file_payload(file, user: User) -> dict:
    data = file.to_dict()
    timer = timer_service.get_active_timer(file.id)
    data["active_timer"] = timer.to_dict() if timer else None
    data["available_actions"] = [
        a.value for a in available_actions(
            Actor.from_user(user),
            FileSnapshot.from_file(file),
            timer is not None and timer.user_id == user.id,
        )
    ]
    return data


def _bool_field(data: dict, name: str, default: bool) -> bool:
    value = data.get(name, default)
    if not isinstance(value, bool):
        raise ValidationError(f"Field '{name}' must be a boolean", {name: "boolean"})
    return value


def _parse_action(raw: str) -> WorkflowAction:
    try:
        return WorkflowAction(raw.strip().upper().replace("-", "_"))
    except ValueError:
        raise ValidationError(
            f"Unknown action '{raw}'",
            {"valid_actions": [a.value for a in WorkflowAction]},
        ) from None


# ── Action dispatch (closed set, one typed call per action) ──────────────────


def _do_assign(file_id, user, data):
    designer_id = data.get("designer_id")
    if not designer_id:
        raise ValidationError("Field 'designer_id' is required", {"designer_id": "required"})
    return workflow_service.assign(file_id, designer_id, user.id, note=data.get("note"))


def _do_takeover(file_id, user, data):
    return workflow_service.takeover(
        file_id, user.id,
        department_id=data.get("department_id"),
        location_code=data.get("location_code"),
        note=data.get("note"),
    )


_ACTION_HANDLERS = {
    WorkflowAction.ASSIGN: _do_assign,
    WorkflowAction.TAKEOVER: _do_takeover,
    WorkflowAction.REQUEST_APPROVAL: lambda fid, u, d: workflow_service.request_approval(fid, u.id, d.get("note")),
    WorkflowAction.DIRECT_TO_QUALITY: lambda fid, u, d: workflow_service.direct_to_quality(fid, u.id, d.get("note")),
    WorkflowAction.SEND_TO_CUSTOMER: lambda fid, u, d: workflow_service.send_to_customer(fid, u.id, d.get("note")),
    WorkflowAction.CUSTOMER_OK: lambda fid, u, d: workflow_service.customer_ok(fid, u.id, d.get("note")),
    WorkflowAction.CUSTOMER_NOK: lambda fid, u, d: workflow_service.customer_nok(fid, u.id, d.get("note")),
    WorkflowAction.RESTART_MG: lambda fid, u, d: workflow_service.restart_mg(fid, u.id, d.get("note")),
    WorkflowAction.QUALITY_OK: lambda fid, u, d: workflow_service.quality_ok(fid, u.id, d.get("note")),
    WorkflowAction.QUALITY_NOK: lambda fid, u, d: workflow_service.quality_nok(fid, u.id, d.get("note")),
    WorkflowAction.SEND_TO_PRODUCTION: lambda fid, u, d: workflow_service.send_to_production(fid, u.id, d.get("note")),
    WorkflowAction.CLAIM: lambda fid, u, d: pre_repro_service.claim(fid, u.id),
    WorkflowAction.COMPLETE: lambda fid, u, d: pre_repro_service.complete(fid, u.id),
    WorkflowAction.RETURN_TO_QUEUE: lambda fid, u, d: pre_repro_service.return_to_queue(fid, u.id),
}


def _run_action(file_id: str, action: WorkflowAction):
    user, err = _current_user()
    if err:
        return err
    file = file_service.get_file(file_id)
    _authorize(user, action, file)
    updated = _ACTION_HANDLERS[action](file_id, user, _body())
    return jsonify(_file_payload(updated, user)), 200


# ── Files ────────────────────────────────────────────────────────────────────


@files_bp.route("/files", methods=["POST"])
def create_file():
    user, err = _current_user()
    if err:
        return err
    _require_permission(user, "file:create")
    data = _body()
    file = file_service.create_file(
        customer_name=data.get("customer_name"),
        created_by_id=user.id,
        file_no=data.get("file_no"),
        customer_no=data.get("customer_no"),
        priority=data.get("priority") or "NORMAL",
        location_code=data.get("location_code"),
        requires_approval=_bool_field(data, "requires_approval", default=True),
        target_assignee_id=data.get("target_assignee_id"),
    )
    return jsonify(_file_payload(file, user)), 201


@files_bp.route("/files/<file_id>", methods=["GET"])
def get_file(file_id):
    user, err = _current_user()
    if err:
        return err
    return jsonify(_file_payload(file_service.get_file(file_id), user)), 200


@files_bp.route("/files/<file_id>/actions/<action>", methods=["POST"])
def file_action(file_id, action):
    """Run one workflow action.  ``ADD_NOTE`` is served by ``/notes``."""
    parsed = _parse_action(action)
    if parsed == WorkflowAction.ADD_NOTE:
        return add_note(file_id)
    return _run_action(file_id, parsed)


@files_bp.route("/files/<file_id>/pre-repro/claim", methods=["POST"])
def pre_repro_claim(file_id):
    return _run_action(file_id, WorkflowAction.CLAIM)


@files_bp.route("/files/<file_id>/pre-repro/complete", methods=["POST"])
def pre_repro_complete(file_id):
    return _run_action(file_id, WorkflowAction.COMPLETE)


@files_bp.route("/files/<file_id>/pre-repro/return-to-queue", methods=["POST"])
def pre_repro_return(file_id):
    return _run_action(file_id, WorkflowAction.RETURN_TO_QUEUE)


@files_bp.route("/files/<file_id>/timeline", methods=["GET"])
def file_timeline(file_id):
    user, err = _current_user()
    if err:
        return err
    file_service.get_file(file_id)
    entries = audit_service.get_file_audit_trail(file_id)
    return jsonify({"items": [e.to_dict() for e in entries], "total": len(entries)}), 200


@files_bp.route("/files/<file_id>/notes", methods=["GET"])
def list_notes(file_id):
    user, err = _current_user()
    if err:
        return err
    notes = note_service.get_file_notes(file_id)
    return jsonify({"items": [n.to_dict() for n in notes], "total": len(notes)}), 200


@files_bp.route("/files/<file_id>/notes", methods=["POST"])
def add_note(file_id):
    user, err = _current_user()
    if err:
        return err
    file = file_service.get_file(file_id)
    _authorize(user, WorkflowAction.ADD_NOTE, file)
    data = _body()
    note = note_service.add_note(file_id, user.id, data.get("message") or data.get("note"))
    return jsonify(note.to_dict()), 201


# ── Assignment ───────────────────────────────────────────────────────────────


@files_bp.route("/assignments/bulk", methods=["POST"])
def bulk_assign():
    user, err = _current_user()
    if err:
        return err
    _require_permission(user, "file:assign")
    data = _body()
    file_ids = data.get("file_ids")
    designer_id = data.get("designer_id")
    if not isinstance(file_ids, list) or not designer_id:
        raise ValidationError(
            "Fields 'file_ids' (list) and 'designer_id' are required",
            {"file_ids": "list required", "designer_id": "required"},
        )
    result = workflow_service.bulk_assign(file_ids, designer_id, user.id, note=data.get("note"))
    return jsonify(result.to_dict()), 200


# ── Queues ───────────────────────────────────────────────────────────────────


@files_bp.route("/queues/pre-repro", methods=["GET"])
def pre_repro_queue():
    user, err = _current_user()
    if err:
        return err
    files = file_service.get_pre_repro_queue(only_unclaimed=bool_arg("only_unclaimed"))
    return jsonify({"items": [f.to_dict() for f in files], "total": len(files)}), 200


@files_bp.route("/queues/unassigned", methods=["GET"])
def unassigned_queue():
    user, err = _current_user()
    if err:
        return err
    files = file_service.get_unassigned_files()
    return jsonify({"items": [f.to_dict() for f in files], "total": len(files)}), 200


@files_bp.route("/my-files", methods=["GET"])
def my_files():
    user, err = _current_user()
    if err:
        return err
    files = file_service.get_designer_files(user.id)
    return jsonify({"items": [f.to_dict() for f in files], "total": len(files)}), 200


@files_bp.route("/departments", methods=["GET"])
def list_departments():
    return jsonify({"items": [d.to_dict() for d in department_service.list_departments()]}), 200


@files_bp.route("/departments/<department_id>/queue", methods=["GET"])
def department_queue(department_id):
    user, err = _current_user()
    if err:
        return err
    department_service.get_department(department_id)
    queue = file_service.get_department_queue(department_id, user.id)
    return jsonify({
        "active": [f.to_dict() for f in queue["active"]],
        "pending_takeover": [f.to_dict() for f in queue["pending_takeover"]],
    }), 200


@files_bp.route("/audit-logs", methods=["GET"])
def recent_audit_logs():
    user, err = _current_user()
    if err:
        return err
    _require_permission(user, "report:view")
    action_type = request.args.get("action_type")
    if action_type and action_type not in AuditAction.__members__:
        raise ValidationError(
            f"Unknown action_type '{action_type}'",
            {"valid_action_types": list(AuditAction.__members__)},
        )
    entries = audit_service.get_recent_audit_logs(
        limit=limit_arg(),
        action_type=action_type or None,
        user_id=request.args.get("user_id") or None,
    )
    return jsonify({"items": [e.to_dict() for e in entries], "total": len(entries)}), 200


# ── Time tracking ────────────────────────────────────────────────────────────


def _file_id_from_body(data: dict) -> str:
    file_id = data.get("file_id")
    if not file_id:
        raise ValidationError("Field 'file_id' is required", {"file_id": "required"})
    return file_id


@files_bp.route("/time/start", methods=["POST"])
def time_start():
    user, err = _current_user()
    if err:
        return err
    data = _body()
    file_id = _file_id_from_body(data)
    department_id = data.get("department_id") or user.department_id
    if not department_id:
        raise ValidationError("Field 'department_id' is required", {"department_id": "required"})
    timer = timer_service.start_timer(file_id, department_id, user.id)
    return jsonify(timer.to_dict()), 201


@files_bp.route("/time/stop", methods=["POST"])
def time_stop():
    user, err = _current_user()
    if err:
        return err
    file_id = _file_id_from_body(_body())
    active = timer_service.get_active_timer(file_id)
    if active is None:
        raise NotFoundError(resource="Active timer", resource_id=file_id)
    # The customer timer has no user; only the workflow transitions or an override close it.
    if active.user_id != user.id and not has_permission(user.role, "override:execute"):
        raise PermissionDeniedError(user.id, "timer_stop")
    timer = timer_service.stop_timer(file_id, user.id)
    return jsonify(timer.to_dict()), 200


@files_bp.route("/work-sessions/start", methods=["POST"])
def work_session_start():
    user, err = _current_user()
    if err:
        return err
    file_id = _file_id_from_body(_body())
    ws = work_session_service.start_work_session(user.id, file_id)
    return jsonify(ws.to_dict()), 201


@files_bp.route("/work-sessions/stop", methods=["POST"])
def work_session_stop():
    user, err = _current_user()
    if err:
        return err
    ws = work_session_service.stop_work_session(user.id)
    return jsonify(ws.to_dict()), 200


@files_bp.route("/work-sessions/active", methods=["GET"])
def work_session_active():
    user, err = _current_user()
    if err:
        return err
    ws = work_session_service.get_active_session(user.id)
    return jsonify({"session": ws.to_dict() if ws else None}), 200
