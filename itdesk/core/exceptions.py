"""
Platform-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and get consistent HTTP status codes everywhere.

Usage:
    from itdesk.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Project", resource_id=42)
    raise ValidationError("quantity must be >= 1", details={"quantity": "..."})
    raise PhaseNotApproved("Proposal")
"""

from itdesk.utils.errors import E


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "Project", "RkbItem").
        resource_id: The PK that was looked up. Included in the message.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    Always raised before any mutation, so no partial state change is left
    behind.  Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would create a duplicate unique constraint violation.

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} already exists")


# ── Workflow-state errors ────────────────────────────────────────────────────


class WorkflowError(Exception):
    """Base class for infrastructure-workflow state violations (HTTP 409).

    ``code`` is the machine-readable error code surfaced in API responses.
    """

    code = E.WORKFLOW_STATE

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class NotInfrastructureProject(WorkflowError):
    """The project has no phase (e.g. a WEB_DEV project)."""

    code = E.NOT_INFRASTRUCTURE_PROJECT

    def __init__(self, project_id: int) -> None:
        self.project_id = project_id
        super().__init__(
            f"Project id={project_id} is not an infrastructure project",
            details={"project_id": project_id},
        )


class AlreadyCompleted(WorkflowError):
    """The project is already in the terminal COMPLETED phase."""

    code = E.ALREADY_COMPLETED

    def __init__(self, project_id: int) -> None:
        self.project_id = project_id
        super().__init__(
            f"Project id={project_id} is already completed",
            details={"project_id": project_id},
        )


class PhaseNotApproved(WorkflowError):
    """The outgoing phase's stage has not been approved.

    Args:
        stage: Stage label ("Proposal", "RKB" or "Disbursement").
        status: The stage's current approval status, if the row exists.
    """

    code = E.PHASE_NOT_APPROVED

    def __init__(self, stage: str, status: str | None = None) -> None:
        self.stage = stage
        self.status = status
        msg = f"{stage} has not been approved"
        if status:
            msg += f" (status={status})"
        super().__init__(msg, details={"stage": stage, "status": status})


class WrongPhase(WorkflowError):
    """The operation belongs to a phase other than the project's current one."""

    code = E.WRONG_PHASE

    def __init__(self, project_id: int, expected: str, actual: str | None) -> None:
        self.project_id = project_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Project id={project_id} is in phase {actual}, operation requires {expected}",
            details={"project_id": project_id, "expected": expected, "actual": actual},
        )


class StageLocked(WorkflowError):
    """The stage is PENDING or APPROVED and its fields can no longer be edited."""

    code = E.STAGE_LOCKED

    def __init__(self, stage: str, status: str) -> None:
        self.stage = stage
        self.status = status
        super().__init__(
            f"{stage} cannot be modified while {status}",
            details={"stage": stage, "status": status},
        )


class InvalidStageTransition(WorkflowError):
    """An approve/reject decision was requested from a status that does not allow it."""

    code = E.INVALID_STAGE_TRANSITION

    def __init__(self, stage: str, action: str, status: str) -> None:
        self.stage = stage
        self.action = action
        self.status = status
        super().__init__(
            f"Cannot '{action}' {stage} (status={status})",
            details={"stage": stage, "action": action, "status": status},
        )


class ConcurrentModification(WorkflowError):
    """A concurrent request changed the project between read and write."""

    code = E.CONCURRENT_MODIFICATION

    def __init__(self, project_id: int, detail: str | None = None) -> None:
        self.project_id = project_id
        msg = f"Project id={project_id} was modified concurrently"
        if detail:
            msg += f": {detail}"
        super().__init__(msg, details={"project_id": project_id})
