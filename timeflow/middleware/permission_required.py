"""
Permission Decorators — role checks for route protection.

Usage:
    @bp.route("/processes", methods=["POST"])
    @require_manager
    def create_process():
        ...

    @bp.route("/admin/stats")
    @require_role(Role.SUPERADMIN)
    def stats():
        ...
"""

import functools
import logging

from timeflow.core.exceptions import AccessDeniedError
from timeflow.middleware.process_access import current_caller
from timeflow.models.user import Role

logger = logging.getLogger(__name__)


def require_role(*roles: Role):
    """Decorator: require the caller's role to be one of ``roles``."""
    allowed = frozenset(roles)

    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            caller = current_caller()
            if caller.role not in allowed:
                logger.warning(
                    "User %s (%s) denied: %s requires one of %s",
                    caller.user_id, caller.role.value, f.__name__,
                    sorted(r.value for r in allowed),
                )
                raise AccessDeniedError("Only admins can perform this action")
            return f(*args, **kwargs)
        return decorated
    return decorator


require_manager = require_role(Role.SUPERADMIN, Role.ADMIN)
