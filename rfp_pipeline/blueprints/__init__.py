"""
RFP Pricing Pipeline
Blueprint registry and shared request helpers.
"""

import logging

from flask import current_app, request
from werkzeug.exceptions import HTTPException

from rfp_pipeline.core.exceptions import (
    CollaboratorError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from rfp_pipeline.models import db
from rfp_pipeline.services.permission import PermissionDenied
from rfp_pipeline.services.rfp_lifecycle import TransitionError
from rfp_pipeline.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def page_params(default_limit=50, max_limit=None):
    """Read ``page`` / ``limit`` query params.

    Query params:
        page   — 1-based page number (default 1, floor 1)
        limit  — page size (default 50, capped at RFP_LIST_MAX_LIMIT)

    Returns:
        (page, limit)
    """
    if max_limit is None:
        max_limit = current_app.config.get("RFP_LIST_MAX_LIMIT", 200)
    try:
        page = max(int(request.args.get("page", 1)), 1)
    except (ValueError, TypeError):
        page = 1
    try:
        limit = min(max(int(request.args.get("limit", default_limit)), 1), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    return page, limit


def json_body() -> dict:
    """Request JSON as a dict; anything else counts as an empty body."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def register_error_handlers(bp):
    """Map the service exception taxonomy onto HTTP responses for ``bp``."""

    @bp.errorhandler(PermissionDenied)
    def _handle_permission(error: PermissionDenied):
        logger.warning(
            "Permission denied: %s", error,
            extra={"path": request.path, "actor": error.actor_name},
        )
        return api_error(E.FORBIDDEN, str(error))

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        code = E.VALIDATION_REQUIRED if "required" in str(error) else E.VALIDATION_INVALID
        return api_error(code, str(error), field=error.field, details=error.details)

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        logger.info("Conflict: %s", error, extra={"path": request.path})
        code = E.CONFLICT_STATE if isinstance(error, TransitionError) else E.CONFLICT_DUPLICATE
        return api_error(code, str(error), field=error.field)

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(CollaboratorError)
    def _handle_collaborator(error: CollaboratorError):
        db.session.rollback()
        logger.exception("Collaborator failure on %s", request.path)
        return api_error(E.COLLABORATOR, str(error))

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return {"error": error.description or error.name}, error.code
        db.session.rollback()
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")

    return bp
