"""Standardised API error responses.

Usage
-----
    from itdesk.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Project not found")
    return api_error(E.VALIDATION_INVALID, "quantity must be >= 1")
    return api_error(exc.code, str(exc), details=exc.details)
"""

from __future__ import annotations

from flask import jsonify


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants.

    Convention:
     • ERR_  prefix for standard application errors
     • one code per WorkflowError subclass; all map to 409
    """

    # Validation – HTTP 400 / 422
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict / duplicate – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"

    # Workflow rules – HTTP 409 (carried as ``WorkflowError.code``)
    WORKFLOW_STATE = "ERR_WORKFLOW_STATE"
    NOT_INFRASTRUCTURE_PROJECT = "ERR_NOT_INFRASTRUCTURE_PROJECT"
    ALREADY_COMPLETED = "ERR_ALREADY_COMPLETED"
    PHASE_NOT_APPROVED = "ERR_PHASE_NOT_APPROVED"
    WRONG_PHASE = "ERR_WRONG_PHASE"
    STAGE_LOCKED = "ERR_STAGE_LOCKED"
    INVALID_STAGE_TRANSITION = "ERR_INVALID_STAGE_TRANSITION"
    CONCURRENT_MODIFICATION = "ERR_CONCURRENT_MODIFICATION"

    # Permissions – HTTP 403
    FORBIDDEN = "ERR_FORBIDDEN"

    # Server – HTTP 500
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 422,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.WORKFLOW_STATE: 409,
    E.NOT_INFRASTRUCTURE_PROJECT: 409,
    E.ALREADY_COMPLETED: 409,
    E.PHASE_NOT_APPROVED: 409,
    E.WRONG_PHASE: 409,
    E.STAGE_LOCKED: 409,
    E.INVALID_STAGE_TRANSITION: 409,
    E.CONCURRENT_MODIFICATION: 409,
    E.FORBIDDEN: 403,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants or
        ``WorkflowError.code``).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (stage, phase, offending fields).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status
