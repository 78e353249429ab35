"""Standardised API error responses.

Usage
-----
    from printflow.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "File not found")
    return api_error(E.VALIDATION_FAILED, "note is required", details={"note": "..."})
"""

from __future__ import annotations

from flask import jsonify


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants.

    The workflow codes match ``WorkflowError.code`` on the exception
    classes in ``printflow.core.exceptions``.
    """

    # Input – HTTP 400 / 422
    BAD_REQUEST = "ERR_BAD_REQUEST"
    VALIDATION_FAILED = "ERR_VALIDATION_FAILED"

    # Identity / permissions – HTTP 401 / 403
    UNAUTHORIZED = "ERR_UNAUTHORIZED"
    FORBIDDEN = "ERR_FORBIDDEN"
    NOT_OWNER = "ERR_NOT_OWNER"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # State / concurrency – HTTP 409
    INVALID_STATE = "ERR_INVALID_STATE"
    ALREADY_CLAIMED = "ERR_ALREADY_CLAIMED"
    CONFLICT = "ERR_CONFLICT"

    # Server – HTTP 500
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.BAD_REQUEST: 400,
    E.VALIDATION_FAILED: 422,
    E.UNAUTHORIZED: 401,
    E.FORBIDDEN: 403,
    E.NOT_OWNER: 403,
    E.NOT_FOUND: 404,
    E.INVALID_STATE: 409,
    E.ALREADY_CLAIMED: 409,
    E.CONFLICT: 409,
    E.INTERNAL: 500,
}


def status_for(code: str) -> int:
    """HTTP status for an error code, ``400`` when the code is unknown."""
    return _DEFAULT_STATUS.get(code, 400)


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """``({"error", "code", "details"?}, status)`` for a Flask view.

    ``status`` defaults to the code's mapped HTTP status.  Engine errors
    pass ``WorkflowError.details`` straight through as ``details``.
    """
    body = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or status_for(code)
