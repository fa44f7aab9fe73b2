"""
Process Blueprint — processes and their activities.

Endpoints:
  Process:          GET/POST /processes, GET/PUT/DELETE /processes/<id>
  Anchored create:  POST /requirements/<id>/processes
                    POST /incidents/<id>/processes
                    POST /activities/<id>/processes
  Activities:       GET/POST /processes/<id>/activities

Reads require process access; writes require an admin in the project's
area, except process creation for an incident (reporter or project member).
"""

import logging

from flask import Blueprint, g, jsonify, request

from timeflow.blueprints import json_body, paginate_items
from timeflow.middleware.permission_required import require_manager
from timeflow.middleware.process_access import current_caller, require_process_access
from timeflow.models.process import PROCESS_STATUSES
from timeflow.services import permission_service, process_service
from timeflow.utils.errors import E, api_error, register_error_handlers

logger = logging.getLogger(__name__)

process_bp = Blueprint("process", __name__, url_prefix="/api/v1")
register_error_handlers(process_bp)


def _created(process, batch):
    body = process.to_dict()
    if batch is not None:
        body["assignments"] = batch.to_dict()
    return jsonify(body), 201


# ═════════════════════════════════════════════════════════════════════════════
# Process CRUD
# ═════════════════════════════════════════════════════════════════════════════

@process_bp.route("/processes", methods=["GET"])
def list_processes():
    """List processes the caller may access.

    Query params: requirement_id, incident_id, activity_id, status, limit, offset
    """
    caller = current_caller()
    status = request.args.get("status")
    if status and status not in PROCESS_STATUSES:
        return api_error(E.VALIDATION_INVALID, f"Invalid status: {status}")

    filters = {
        "requirement_id": request.args.get("requirement_id", type=int),
        "incident_id": request.args.get("incident_id", type=int),
        "activity_id": request.args.get("activity_id", type=int),
        "status": status,
    }
    items = process_service.list_processes(filters)
    if not caller.is_superadmin:
        items = [p for p in items if permission_service.has_process_access(caller, p)]
    page, total = paginate_items(items)
    return jsonify({"items": [p.to_dict() for p in page], "total": total})


@process_bp.route("/processes", methods=["POST"])
@require_manager
def create_process():
    """Create a process, optionally anchored and with initial ``user_ids``."""
    caller = current_caller()
    data = json_body()
    if not data.get("name"):
        return api_error(E.VALIDATION_REQUIRED, "name is required")

    if data.get("requirement_id"):
        requirement = process_service.get_requirement(data["requirement_id"])
        permission_service.ensure_project_in_area(caller, requirement.project)
    if data.get("incident_id"):
        incident = process_service.get_incident(data["incident_id"])
        permission_service.ensure_project_in_area(caller, incident.project)
    if data.get("activity_id"):
        activity = process_service.get_activity(data["activity_id"])
        permission_service.ensure_project_in_area(caller, activity.project)

    process, batch = process_service.create_process(data, created_by=caller.user_id)
    return _created(process, batch)


@process_bp.route("/processes/<int:process_id>", methods=["GET"])
@require_process_access("process_id")
def get_process(process_id):
    return jsonify(g.process.to_dict(include_activities=True))


@process_bp.route("/processes/<int:process_id>", methods=["PUT"])
@require_manager
def update_process(process_id):
    caller = current_caller()
    process = process_service.get_process(process_id)
    permission_service.ensure_can_manage_process(caller, process)
    data = json_body()
    process = process_service.update_process(process, data)
    return jsonify(process.to_dict())


@process_bp.route("/processes/<int:process_id>", methods=["DELETE"])
@require_manager
def delete_process(process_id):
    caller = current_caller()
    process = process_service.get_process(process_id)
    permission_service.ensure_can_manage_process(caller, process)
    process_service.delete_process(process)
    return jsonify({"message": "Process deleted", "id": process_id}), 200


# ═════════════════════════════════════════════════════════════════════════════
# Anchored creation
# ═════════════════════════════════════════════════════════════════════════════

@process_bp.route("/requirements/<int:requirement_id>/processes", methods=["POST"])
@require_manager
def create_requirement_process(requirement_id):
    caller = current_caller()
    requirement = process_service.get_requirement(requirement_id)
    permission_service.ensure_project_in_area(caller, requirement.project)
    data = json_body()
    if not data.get("name"):
        return api_error(E.VALIDATION_REQUIRED, "name is required")
    process, batch = process_service.create_process_for_requirement(
        requirement_id, data, created_by=caller.user_id,
    )
    return _created(process, batch)


@process_bp.route("/incidents/<int:incident_id>/processes", methods=["POST"])
def create_incident_process(incident_id):
    """Admins in area, the incident reporter, or members of its project."""
    caller = current_caller()
    incident = process_service.get_incident(incident_id)
    permission_service.ensure_can_create_incident_process(caller, incident)
    data = json_body()
    if not data.get("name"):
        return api_error(E.VALIDATION_REQUIRED, "name is required")
    process, batch = process_service.create_process_for_incident(
        incident_id, data, created_by=caller.user_id,
    )
    return _created(process, batch)


@process_bp.route("/activities/<int:activity_id>/processes", methods=["POST"])
@require_manager
def create_activity_process(activity_id):
    caller = current_caller()
    activity = process_service.get_activity(activity_id)
    permission_service.ensure_project_in_area(caller, activity.project)
    data = json_body()
    if not data.get("name"):
        return api_error(E.VALIDATION_REQUIRED, "name is required")
    process, batch = process_service.create_process_for_activity(
        activity_id, data, created_by=caller.user_id,
    )
    return _created(process, batch)


# ═════════════════════════════════════════════════════════════════════════════
# Activities of a process
# ═════════════════════════════════════════════════════════════════════════════

@process_bp.route("/processes/<int:process_id>/activities", methods=["GET"])
@require_process_access("process_id")
def list_process_activities(process_id):
    items = process_service.list_process_activities(process_id)
    return jsonify({"items": [a.to_dict() for a in items], "total": len(items)})


@process_bp.route("/processes/<int:process_id>/activities", methods=["POST"])
@require_manager
def create_process_activity(process_id):
    caller = current_caller()
    process = process_service.get_process(process_id)
    permission_service.ensure_can_manage_process(caller, process)
    data = json_body()
    if not data.get("name"):
        return api_error(E.VALIDATION_REQUIRED, "name is required")
    if data.get("assigned_user_id") is None:
        return api_error(E.VALIDATION_REQUIRED, "assigned_user_id is required")
    activity = process_service.create_process_activity(process, data)
    return jsonify(activity.to_dict()), 201
