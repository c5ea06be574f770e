"""
Role guard decorators for workflow decision endpoints.

Authentication itself is handled upstream (SSO / reverse proxy); the
authenticated identity arrives as request headers:

    X-User       display name of the caller ("system" when absent)
    X-User-Role  role code, e.g. ADMIN | STAFF | USER

Usage:
    @bp.route("/infra/projects/<int:project_id>/rkb/approve", methods=["POST"])
    @require_approver
    def approve_rkb(project_id):
        ...
"""

import functools
import logging

from flask import current_app, request

from itdesk.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def current_actor() -> str:
    """Best-effort current user extraction (no auth enforcement)."""
    return (
        request.headers.get("X-User", "").strip()
        or request.headers.get("X-Forwarded-User", "").strip()
        or "system"
    )


def current_role() -> str:
    return (request.headers.get("X-User-Role", "") or "").strip().upper()


def require_role(*roles: str):
    """Decorator: require the caller's role to be one of ``roles``."""
    allowed = frozenset(r.upper() for r in roles)

    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            role = current_role()
            if role not in allowed:
                logger.warning(
                    "Role %r denied on %s (requires one of %s)",
                    role or None, f.__name__, sorted(allowed),
                    extra={"actor": current_actor()},
                )
                return api_error(
                    E.FORBIDDEN,
                    "Permission denied",
                    details={"required_roles": sorted(allowed)},
                )
            return f(*args, **kwargs)
        return decorated
    return decorator


def require_approver(f):
    """Decorator: caller must hold one of the configured ``APPROVER_ROLES``."""

    @functools.wraps(f)
    def decorated(*args, **kwargs):
        allowed = current_app.config.get("APPROVER_ROLES", frozenset({"ADMIN", "STAFF"}))
        role = current_role()
        if role not in allowed:
            logger.warning(
                "Role %r denied on %s (approver roles: %s)",
                role or None, f.__name__, sorted(allowed),
                extra={"actor": current_actor()},
            )
            return api_error(
                E.FORBIDDEN,
                "Only approvers may approve or reject",
                details={"required_roles": sorted(allowed)},
            )
        return f(*args, **kwargs)
    return decorated
