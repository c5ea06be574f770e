"""API blueprints.

``register_error_handlers`` maps the service-layer exception hierarchy to
standard JSON error bodies for a blueprint:

    NotFoundError     → 404 ERR_NOT_FOUND
    ValidationError   → 422 ERR_VALIDATION_INVALID
    ConflictError     → 409 ERR_CONFLICT_DUPLICATE
    WorkflowError     → 409 <exception code>
    anything else     → 500 ERR_INTERNAL (logged)
"""

import logging

from flask import request
from werkzeug.exceptions import HTTPException

from itdesk.core.exceptions import ConflictError, NotFoundError, ValidationError, WorkflowError
from itdesk.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def register_error_handlers(bp):
    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_INVALID, str(error), details=error.details)

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return api_error(E.CONFLICT_DUPLICATE, str(error), details={"field": error.field})

    @bp.errorhandler(WorkflowError)
    def _handle_workflow(error: WorkflowError):
        logger.info(
            "Workflow rule rejected %s: %s", request.endpoint, error,
            extra={"project_id": error.details.get("project_id")},
        )
        return api_error(error.code, str(error), details=error.details)

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return error
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")

    return bp
