"""
Process Activity Blueprint — single-activity operations.

Endpoints:
  PUT /process-activities/<id>                   partial update (status, dependency, ...)
  GET /process-activities/<id>/can-start         start eligibility with reason
  GET /process-activities/<id>/dependency-chain  root → activity
  GET /process-activities/<id>/blocked           direct successors
"""

import logging

from flask import Blueprint, jsonify

from timeflow.blueprints import json_body
from timeflow.middleware.process_access import current_caller
from timeflow.services import dependency_service, permission_service, process_service
from timeflow.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)

process_activity_bp = Blueprint("process_activity", __name__, url_prefix="/api/v1/process-activities")
register_error_handlers(process_activity_bp)


def _load_readable(activity_id):
    """Fetch the activity and check the caller may read its process."""
    caller = current_caller()
    activity = process_service.get_process_activity(activity_id)
    permission_service.ensure_process_access(caller, activity.process)
    return activity


@process_activity_bp.route("/<int:activity_id>", methods=["PUT"])
def update_activity(activity_id):
    """Managers update anything; the assignee may update their own progress."""
    caller = current_caller()
    activity = process_service.get_process_activity(activity_id)
    data = json_body()
    permission_service.ensure_can_update_activity(caller, activity, data.keys())
    activity = process_service.update_process_activity(activity, data)
    return jsonify(activity.to_dict())


@process_activity_bp.route("/<int:activity_id>/can-start", methods=["GET"])
def can_start(activity_id):
    _load_readable(activity_id)
    result = dependency_service.can_start(activity_id)
    return jsonify({"activity_id": activity_id, **result.to_dict()})


@process_activity_bp.route("/<int:activity_id>/dependency-chain", methods=["GET"])
def dependency_chain(activity_id):
    _load_readable(activity_id)
    chain = dependency_service.get_dependency_chain(activity_id)
    return jsonify({
        "activity_id": activity_id,
        "items": [a.to_dict(include_dependency=False) for a in chain],
        "total": len(chain),
    })


@process_activity_bp.route("/<int:activity_id>/blocked", methods=["GET"])
def blocked_activities(activity_id):
    _load_readable(activity_id)
    items = dependency_service.get_blocked_activities(activity_id)
    return jsonify({
        "activity_id": activity_id,
        "items": [a.to_dict(include_dependency=False) for a in items],
        "total": len(items),
    })
