"""
Process Access Middleware — verifies the caller may reach a process.

Provides the ``@require_process_access`` decorator that loads the process
named by a route parameter and runs the composed access check (superadmin,
direct assignment, project assignment, admin in area) before the view.

Usage:
    @bp.route("/processes/<int:process_id>/activities")
    @require_process_access("process_id")
    def list_activities(process_id):
        ...  # g.process is the loaded Process

Missing processes raise NotFoundError and failed checks AccessDeniedError;
blueprint error handlers turn them into 404 / 403.
"""

import functools
import logging

from flask import g, request

from timeflow.core.exceptions import AccessDeniedError
from timeflow.services.permission_service import ensure_process_access
from timeflow.services.process_service import get_process

logger = logging.getLogger(__name__)


def current_caller():
    """Return ``g.caller`` or raise AccessDeniedError when unauthenticated."""
    caller = getattr(g, "caller", None)
    if caller is None:
        raise AccessDeniedError("Authentication required")
    return caller


def require_process_access(param_name: str = "process_id"):
    """
    Decorator: require the caller to have access to the process identified by
    the given route parameter. The loaded process is stored on ``g.process``.
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            caller = current_caller()
            process_id = kwargs.get(param_name)
            if process_id is None:
                process_id = (request.view_args or {}).get(param_name)

            process = get_process(process_id)
            ensure_process_access(caller, process)
            g.process = process
            return f(*args, **kwargs)
        return decorated
    return decorator
