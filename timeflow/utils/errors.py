"""Standardised API error responses.

Usage
-----
    from timeflow.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Process not found")
    return api_error(E.VALIDATION_REQUIRED, "name is required")

Blueprints call ``register_error_handlers(bp)`` once so every domain error
raised by the service layer is rendered with the same body shape and status.
"""

from __future__ import annotations

import logging

from flask import jsonify, request

from timeflow.core.exceptions import (
    AccessDeniedError,
    ConcurrencyConflictError,
    DuplicateAssignmentError,
    InvalidDependencyError,
    NotFoundError,
    ValidationError,
)
from timeflow.models import db

logger = logging.getLogger(__name__)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants (``ERR_`` prefix)."""

    # Validation – HTTP 400 (malformed input) / 422 (business rule)
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    VALIDATION_RULE = "ERR_VALIDATION_RULE"

    # Dependency graph – HTTP 400
    INVALID_DEPENDENCY = "ERR_INVALID_DEPENDENCY"

    # Routing – HTTP 404 / 405
    NOT_FOUND = "ERR_NOT_FOUND"
    METHOD_NOT_ALLOWED = "ERR_METHOD_NOT_ALLOWED"

    # Conflict / duplicate
    DUPLICATE_ASSIGNMENT = "ERR_DUPLICATE_ASSIGNMENT"
    CONFLICT_CONCURRENT = "ERR_CONFLICT_CONCURRENT"

    # Auth – HTTP 401 / 403
    UNAUTHORIZED = "ERR_UNAUTHORIZED"
    FORBIDDEN = "ERR_FORBIDDEN"

    # Throttling – HTTP 429
    RATE_LIMITED = "ERR_RATE_LIMITED"

    # Server – HTTP 500
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.VALIDATION_RULE: 422,
    E.INVALID_DEPENDENCY: 400,
    E.NOT_FOUND: 404,
    E.METHOD_NOT_ALLOWED: 405,
    E.DUPLICATE_ASSIGNMENT: 400,
    E.CONFLICT_CONCURRENT: 409,
    E.UNAUTHORIZED: 401,
    E.FORBIDDEN: 403,
    E.RATE_LIMITED: 429,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Build ``(jsonify(body), status)`` with body ``{"error", "code", "details"?}``.

    ``status`` defaults to the code's entry in ``_DEFAULT_STATUS`` (400 if
    unmapped); ``details`` is omitted from the body when empty.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


# ── Domain error → HTTP mapping ───────────────────────────────────────

def register_error_handlers(bp):
    """Attach the domain-error handlers to a blueprint (or the app)."""

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        db.session.rollback()
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        db.session.rollback()
        return api_error(E.VALIDATION_RULE, str(error), details=error.details)

    @bp.errorhandler(InvalidDependencyError)
    def _handle_invalid_dependency(error: InvalidDependencyError):
        db.session.rollback()
        return api_error(E.INVALID_DEPENDENCY, str(error), details=error.details)

    @bp.errorhandler(DuplicateAssignmentError)
    def _handle_duplicate(error: DuplicateAssignmentError):
        db.session.rollback()
        return api_error(E.DUPLICATE_ASSIGNMENT, str(error), details=error.details)

    @bp.errorhandler(AccessDeniedError)
    def _handle_access_denied(error: AccessDeniedError):
        db.session.rollback()
        return api_error(E.FORBIDDEN, str(error))

    @bp.errorhandler(ConcurrencyConflictError)
    def _handle_conflict(error: ConcurrencyConflictError):
        db.session.rollback()
        logger.warning("Concurrency conflict endpoint=%s: %s", request.endpoint, error)
        return api_error(E.CONFLICT_CONCURRENT, str(error))

    return bp
