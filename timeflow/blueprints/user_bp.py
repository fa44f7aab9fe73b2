"""
User Blueprint — per-user views over assignments.

Endpoints:
  GET /users/<id>/workload   open work snapshot
  GET /users/<id>/processes  processes assigned to the user
  GET /users/me/projects     projects visible to the caller

A user may read their own data; admins and superadmins may read anyone's.
"""

import logging

from flask import Blueprint, jsonify

from timeflow.core.exceptions import AccessDeniedError
from timeflow.middleware.process_access import current_caller
from timeflow.services import assignment_service, permission_service
from timeflow.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)

user_bp = Blueprint("user", __name__, url_prefix="/api/v1/users")
register_error_handlers(user_bp)


def _ensure_self_or_manager(user_id: int):
    caller = current_caller()
    if caller.user_id != user_id and not permission_service.can_manage_processes(caller):
        raise AccessDeniedError("You can only view your own assignments")
    return caller


@user_bp.route("/<int:user_id>/workload", methods=["GET"])
def user_workload(user_id):
    _ensure_self_or_manager(user_id)
    workload = assignment_service.get_user_workload(user_id)
    return jsonify(workload.to_dict())


@user_bp.route("/<int:user_id>/processes", methods=["GET"])
def user_processes(user_id):
    _ensure_self_or_manager(user_id)
    items = assignment_service.get_engine().get_user_assigned_processes(user_id)
    return jsonify({"items": [p.to_dict() for p in items], "total": len(items)})


@user_bp.route("/me/projects", methods=["GET"])
def my_projects():
    caller = current_caller()
    items = assignment_service.get_projects_visible_to_user(caller.user_id)
    return jsonify({"items": [p.to_dict() for p in items], "total": len(items)})
