"""
Tests: role and area policy layered over the access check.
"""

import pytest

from timeflow.core.exceptions import AccessDeniedError
from timeflow.models import db as _db
from timeflow.models.process import Process
from timeflow.models.project import Project, ProjectAssignment
from timeflow.models.user import Role
from timeflow.services import permission_service
from timeflow.services.permission_service import Caller


def _caller(u) -> Caller:
    return Caller(user_id=u.id, role=Role.parse(u.role), area_id=u.area_id)


@pytest.mark.unit
def test_area_scoping_for_admins(project, admin, other_admin, superadmin, user):
    assert permission_service.caller_in_project_area(_caller(superadmin), project)
    assert permission_service.caller_in_project_area(_caller(admin), project)
    assert not permission_service.caller_in_project_area(_caller(other_admin), project)
    assert not permission_service.caller_in_project_area(_caller(user), project)

    unscoped = Project(name="No area")
    _db.session.add(unscoped)
    _db.session.commit()
    assert permission_service.caller_in_project_area(_caller(other_admin), unscoped)
    assert permission_service.caller_in_project_area(_caller(other_admin), None)


@pytest.mark.unit
def test_ensure_project_in_area(project, admin, other_admin, user):
    permission_service.ensure_project_in_area(_caller(admin), project)
    with pytest.raises(AccessDeniedError):
        permission_service.ensure_project_in_area(_caller(other_admin), project)
    with pytest.raises(AccessDeniedError):
        permission_service.ensure_project_in_area(_caller(user), project)


@pytest.mark.unit
def test_process_access_adds_admin_area_path(process, admin, other_admin, user):
    assert permission_service.has_process_access(_caller(admin), process)
    assert not permission_service.has_process_access(_caller(other_admin), process)
    assert not permission_service.has_process_access(_caller(user), process)
    with pytest.raises(AccessDeniedError):
        permission_service.ensure_process_access(_caller(user), process)


@pytest.mark.unit
def test_incident_process_creation_policy(incident, admin, other_admin, user, other_user, project):
    # other_user reported the incident
    permission_service.ensure_can_create_incident_process(_caller(other_user), incident)
    permission_service.ensure_can_create_incident_process(_caller(admin), incident)
    with pytest.raises(AccessDeniedError):
        permission_service.ensure_can_create_incident_process(_caller(other_admin), incident)
    with pytest.raises(AccessDeniedError):
        permission_service.ensure_can_create_incident_process(_caller(user), incident)

    _db.session.add(ProjectAssignment(project_id=project.id, user_id=user.id))
    _db.session.commit()
    permission_service.ensure_can_create_incident_process(_caller(user), incident)


@pytest.mark.unit
def test_activity_update_policy(process, make_step, admin, other_admin, user, other_user):
    step = make_step(process, "Mine", assignee=user)

    permission_service.ensure_can_update_activity(_caller(user), step, {"status", "used_hours"})
    permission_service.ensure_can_update_activity(_caller(admin), step, {"depends_on_id", "name"})

    with pytest.raises(AccessDeniedError) as excinfo:
        permission_service.ensure_can_update_activity(_caller(user), step, {"status", "depends_on_id"})
    assert "depends_on_id" in str(excinfo.value)
    with pytest.raises(AccessDeniedError):
        permission_service.ensure_can_update_activity(_caller(other_user), step, {"status"})
    with pytest.raises(AccessDeniedError):
        permission_service.ensure_can_update_activity(_caller(other_admin), step, {"status"})


@pytest.mark.unit
def test_standalone_process_is_managed_by_any_admin(other_admin):
    standalone = Process(name="Standalone")
    _db.session.add(standalone)
    _db.session.commit()
    permission_service.ensure_can_manage_process(_caller(other_admin), standalone)
    assert permission_service.has_process_access(_caller(other_admin), standalone)
