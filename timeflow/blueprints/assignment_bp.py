"""
Assignment Blueprint — user ↔ process and user ↔ project assignments.

Endpoints:
  GET    /processes/<id>/assignments            assigned users
  POST   /processes/<id>/assign                 {"user_id": n} or {"user_ids": [...]}
  DELETE /processes/<id>/assignments/<user_id>  remove one assignment
  PUT    /projects/<id>/assignments             replace the active project set
"""

import logging

from flask import Blueprint, jsonify

from timeflow.blueprints import json_body
from timeflow.core.exceptions import NotFoundError
from timeflow.middleware.permission_required import require_manager
from timeflow.middleware.process_access import current_caller, require_process_access
from timeflow.models import db
from timeflow.models.project import Project
from timeflow.services import assignment_service, permission_service, process_service
from timeflow.utils.errors import E, api_error, register_error_handlers
from timeflow.utils.helpers import parse_int_list

logger = logging.getLogger(__name__)

assignment_bp = Blueprint("assignment", __name__, url_prefix="/api/v1")
register_error_handlers(assignment_bp)


@assignment_bp.route("/processes/<int:process_id>/assignments", methods=["GET"])
@require_process_access("process_id")
def list_process_assignments(process_id):
    users = assignment_service.get_engine().get_process_assignments(process_id)
    return jsonify({"items": [u.to_dict() for u in users], "total": len(users)})


@assignment_bp.route("/processes/<int:process_id>/assign", methods=["POST"])
@require_manager
def assign_users(process_id):
    """Assign one user (strict: duplicate → 400) or a batch (per-id outcome)."""
    caller = current_caller()
    process = process_service.get_process(process_id)
    permission_service.ensure_can_manage_process(caller, process)
    data = json_body()

    if "user_ids" in data:
        try:
            user_ids = parse_int_list(data.get("user_ids"))
        except ValueError as exc:
            return api_error(E.VALIDATION_INVALID, str(exc))
        if not user_ids:
            return api_error(E.VALIDATION_REQUIRED, "user_ids cannot be empty")
        result = assignment_service.assign_multiple_users_to_process(process_id, user_ids)
        return jsonify(result.to_dict()), 200

    user_id = data.get("user_id")
    if user_id is None:
        return api_error(E.VALIDATION_REQUIRED, "user_id or user_ids is required")
    if isinstance(user_id, bool) or not isinstance(user_id, int):
        return api_error(E.VALIDATION_INVALID, "user_id must be an integer")
    assignment_service.assign_user_to_process(process_id, user_id)
    return jsonify({"message": "User assigned", "process_id": process_id, "user_id": user_id}), 201


@assignment_bp.route("/processes/<int:process_id>/assignments/<int:user_id>", methods=["DELETE"])
@require_manager
def remove_assignment(process_id, user_id):
    caller = current_caller()
    process = process_service.get_process(process_id)
    permission_service.ensure_can_manage_process(caller, process)
    assignment_service.remove_user_from_process(process_id, user_id)
    return jsonify({"message": "User removed", "process_id": process_id, "user_id": user_id}), 200


@assignment_bp.route("/projects/<int:project_id>/assignments", methods=["PUT"])
@require_manager
def set_project_assignments(project_id):
    """Replace the active user set of a project; history rows are kept."""
    caller = current_caller()
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError("Project", project_id)
    permission_service.ensure_project_in_area(caller, project)

    data = json_body()
    if "user_ids" not in data:
        return api_error(E.VALIDATION_REQUIRED, "user_ids is required")
    try:
        user_ids = parse_int_list(data.get("user_ids"))
    except ValueError as exc:
        return api_error(E.VALIDATION_INVALID, str(exc))

    rows = assignment_service.get_engine().set_project_assignments(
        project_id,
        user_ids,
        assigned_by=caller.user_id,
        can_modify=bool(data.get("can_modify", True)),
    )
    return jsonify({"items": [a.to_dict() for a in rows], "total": len(rows)})
