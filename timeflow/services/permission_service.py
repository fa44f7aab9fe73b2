"""
Permission Service — role and area policy layered over the Assignment Engine.

Policy:
  - superadmin: everything
  - admin: manages processes; limited to projects of their own area (a
    project without an area, or an admin without an area, is not limited)
  - user: reads processes reachable through the three access paths; may
    update the activities assigned to them; may create processes for
    incidents they reported or whose project they are assigned to

Every check raises AccessDeniedError; nothing here formats HTTP responses.
"""

import logging
from dataclasses import dataclass

from timeflow.core.exceptions import AccessDeniedError
from timeflow.models import db
from timeflow.models.incident import Incident
from timeflow.models.process import Process, ProcessActivity
from timeflow.models.project import Project
from timeflow.models.user import Role
from timeflow.services.assignment_service import AssignmentEngine, get_engine

logger = logging.getLogger(__name__)

# Fields an activity's assignee may change without manager rights.
ASSIGNEE_EDITABLE_FIELDS = frozenset({"status", "used_hours", "description", "start_date", "end_date"})


@dataclass(frozen=True)
class Caller:
    """Authenticated identity resolved from the bearer token."""

    user_id: int
    role: Role
    area_id: int | None = None

    @property
    def is_superadmin(self) -> bool:
        return self.role is Role.SUPERADMIN

    def to_dict(self) -> dict:
        return {"user_id": self.user_id, "role": self.role.value, "area_id": self.area_id}


def can_manage_processes(caller: Caller) -> bool:
    return caller.role.is_manager


def ensure_can_manage_processes(caller: Caller) -> None:
    if not can_manage_processes(caller):
        raise AccessDeniedError("Only admins can manage processes")


def caller_in_project_area(caller: Caller, project: Project | None) -> bool:
    """Area scoping: superadmin always; admin when areas match or either side
    has no area; users are never granted anything by area."""
    if caller.role is Role.SUPERADMIN:
        return True
    if caller.role is not Role.ADMIN:
        return False
    if project is None or project.area_id is None or caller.area_id is None:
        return True
    return project.area_id == caller.area_id


def ensure_project_in_area(caller: Caller, project: Project | None) -> None:
    ensure_can_manage_processes(caller)
    if not caller_in_project_area(caller, project):
        logger.warning(
            "Admin %s (area %s) denied project %s (area %s)",
            caller.user_id, caller.area_id,
            project.id if project else None, project.area_id if project else None,
        )
        raise AccessDeniedError("Can only manage processes for projects in your area")


def process_project(process: Process, engine: AssignmentEngine | None = None) -> Project | None:
    engine = engine or get_engine()
    project_id = engine.resolve_project_id(process)
    if project_id is None:
        return None
    return db.session.get(Project, project_id)


def has_process_access(caller: Caller, process: Process, engine: AssignmentEngine | None = None) -> bool:
    """Three access paths, OR an admin in the area of the process's project."""
    engine = engine or get_engine()
    if engine.can_user_access_process(process.id, caller.user_id, caller.role):
        return True
    if caller.role is Role.ADMIN:
        return caller_in_project_area(caller, process_project(process, engine))
    return False


def ensure_process_access(caller: Caller, process: Process, engine: AssignmentEngine | None = None) -> None:
    if not has_process_access(caller, process, engine):
        logger.warning("User %s denied access to process %s", caller.user_id, process.id)
        raise AccessDeniedError("You do not have access to this process")


def ensure_can_manage_process(caller: Caller, process: Process, engine: AssignmentEngine | None = None) -> None:
    """Mutations on an existing process: manager role within area."""
    ensure_project_in_area(caller, process_project(process, engine))


def ensure_can_create_incident_process(caller: Caller, incident: Incident, engine: AssignmentEngine | None = None) -> None:
    if can_manage_processes(caller):
        ensure_project_in_area(caller, incident.project)
        return
    engine = engine or get_engine()
    if incident.reported_by == caller.user_id:
        return
    if engine.has_active_project_assignment(incident.project_id, caller.user_id):
        return
    logger.warning("User %s denied process creation for incident %s", caller.user_id, incident.id)
    raise AccessDeniedError("Access denied")


def ensure_can_update_activity(caller: Caller, activity: ProcessActivity, fields) -> None:
    """Managers in area may change anything; the assignee only their own progress."""
    if can_manage_processes(caller):
        ensure_can_manage_process(caller, activity.process)
        return
    if activity.assigned_user_id != caller.user_id:
        raise AccessDeniedError("Only the assigned user or an admin can update this activity")
    forbidden = sorted(set(fields) - ASSIGNEE_EDITABLE_FIELDS)
    if forbidden:
        raise AccessDeniedError(f"Only admins can change: {', '.join(forbidden)}")
