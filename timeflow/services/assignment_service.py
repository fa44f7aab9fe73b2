"""
Timeflow Process Tracking
Assignment / Authorization Engine.

Owns the user ↔ process join (``process_assignments``) and the user ↔ project
assignment history (``ProjectAssignment``), and answers whether a user may
access a process.

Access resolution (any path grants):
    1. role is superadmin
    2. direct row in process_assignments
    3. active ProjectAssignment on the process's owning project, where the
       project is resolved requirement → incident → activity (an activity
       without a project yields no project path)

Area scoping for admins is a separate policy (see permission_service) layered
on top of this check.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import case, delete, func, insert, select, union
from sqlalchemy.exc import IntegrityError, OperationalError

from timeflow.core.exceptions import (
    ConcurrencyConflictError,
    DuplicateAssignmentError,
    NotFoundError,
    ValidationError,
)
from timeflow.models import db
from timeflow.models.activity import Activity
from timeflow.models.incident import Incident
from timeflow.models.process import OPEN_STATUSES, Process, ProcessActivity, process_assignments
from timeflow.models.project import Project, ProjectAssignment
from timeflow.models.requirement import Requirement
from timeflow.models.user import Role, User

logger = logging.getLogger(__name__)


# ── Value objects ───────────────────────────────────────────────────────────

ASSIGNED = "assigned"
ALREADY_ASSIGNED = "already_assigned"
USER_NOT_FOUND = "user_not_found"


@dataclass(frozen=True)
class AssignmentOutcome:
    user_id: int
    status: str
    reason: str = ""

    def to_dict(self) -> dict:
        return {"user_id": self.user_id, "status": self.status, "reason": self.reason}


@dataclass
class BatchAssignmentResult:
    """Per-id outcome of a batch assignment, in input order."""

    process_id: int
    outcomes: list[AssignmentOutcome] = field(default_factory=list)

    @property
    def assigned(self) -> list[int]:
        return [o.user_id for o in self.outcomes if o.status == ASSIGNED]

    @property
    def skipped(self) -> list[AssignmentOutcome]:
        return [o for o in self.outcomes if o.status != ASSIGNED]

    def to_dict(self) -> dict:
        return {
            "process_id": self.process_id,
            "assigned": self.assigned,
            "results": [o.to_dict() for o in self.outcomes],
        }


@dataclass(frozen=True)
class UserWorkload:
    user_id: int
    active_processes: int
    pending_activities: int
    estimated_hours_remaining: float
    active_projects: int
    timestamp: datetime

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "active_processes": self.active_processes,
            "pending_activities": self.pending_activities,
            "estimated_hours_remaining": self.estimated_hours_remaining,
            "active_projects": self.active_projects,
            "timestamp": self.timestamp.isoformat(),
        }


# ── Engine ──────────────────────────────────────────────────────────────────

class AssignmentEngine:
    """Assignment writes and access checks bound to one session."""

    def __init__(self, session, clamp_remaining_hours: bool = True) -> None:
        self.session = session
        self.clamp_remaining_hours = clamp_remaining_hours

    # ── Lookups ──────────────────────────────────────────────────────────

    def _get_process(self, process_id: int, for_update: bool = False) -> Process:
        stmt = select(Process).where(Process.id == process_id, Process.deleted_at.is_(None))
        if for_update:
            stmt = stmt.with_for_update()
        try:
            process = self.session.execute(stmt).scalar_one_or_none()
        except OperationalError as exc:
            self.session.rollback()
            raise ConcurrencyConflictError(
                f"Process {process_id} is locked by another transaction"
            ) from exc
        if process is None:
            raise NotFoundError("Process", process_id)
        return process

    def _get_user(self, user_id: int) -> User:
        user = self.session.get(User, user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    def resolve_project_id(self, process: Process) -> int | None:
        """Owning project of a process via its anchor, or None."""
        if process.requirement_id is not None:
            return self.session.execute(
                select(Requirement.project_id).where(Requirement.id == process.requirement_id)
            ).scalar_one_or_none()
        if process.incident_id is not None:
            return self.session.execute(
                select(Incident.project_id).where(Incident.id == process.incident_id)
            ).scalar_one_or_none()
        if process.activity_id is not None:
            return self.session.execute(
                select(Activity.project_id).where(Activity.id == process.activity_id)
            ).scalar_one_or_none()
        return None

    # ── Predicates ───────────────────────────────────────────────────────

    def is_user_assigned_to_process(self, process_id: int, user_id: int) -> bool:
        count = self.session.execute(
            select(func.count())
            .select_from(process_assignments)
            .where(
                process_assignments.c.process_id == process_id,
                process_assignments.c.user_id == user_id,
            )
        ).scalar_one()
        return count > 0

    def has_active_project_assignment(self, project_id: int, user_id: int) -> bool:
        count = self.session.execute(
            select(func.count(ProjectAssignment.id)).where(
                ProjectAssignment.project_id == project_id,
                ProjectAssignment.user_id == user_id,
                ProjectAssignment.is_active.is_(True),
            )
        ).scalar_one()
        return count > 0

    def access_path(self, process_id: int, user_id: int, role) -> str | None:
        """Name of the first path granting access ("superadmin", "direct",
        "project"), or None when every path fails."""
        process = self._get_process(process_id)
        if Role.parse(role) is Role.SUPERADMIN:
            return "superadmin"
        if self.is_user_assigned_to_process(process.id, user_id):
            return "direct"
        project_id = self.resolve_project_id(process)
        if project_id is not None and self.has_active_project_assignment(project_id, user_id):
            return "project"
        return None

    def can_user_access_process(self, process_id: int, user_id: int, role) -> bool:
        return self.access_path(process_id, user_id, role) is not None

    # ── Process assignment writes ────────────────────────────────────────

    def assign_user_to_process(self, process_id: int, user_id: int) -> None:
        """Insert one join row. Raises DuplicateAssignmentError if present."""
        process = self._get_process(process_id, for_update=True)
        self._get_user(user_id)

        if self.is_user_assigned_to_process(process.id, user_id):
            raise DuplicateAssignmentError(process.id, user_id)

        try:
            self.session.execute(
                insert(process_assignments).values(
                    process_id=process.id,
                    user_id=user_id,
                    assigned_at=datetime.now(timezone.utc),
                )
            )
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            logger.warning("Concurrent duplicate assignment process=%s user=%s: %s",
                           process_id, user_id, exc.orig)
            raise DuplicateAssignmentError(process_id, user_id) from exc
        except OperationalError as exc:
            self.session.rollback()
            raise ConcurrencyConflictError() from exc

        logger.info("Assigned user %s to process %s", user_id, process_id)

    def assign_multiple_users_to_process(self, process_id: int, user_ids: list[int]) -> BatchAssignmentResult:
        """Assign every valid, not-yet-assigned id; report each id's outcome."""
        process = self._get_process(process_id, for_update=True)
        result = BatchAssignmentResult(process_id=process.id)
        if not user_ids:
            return result

        existing = set(
            self.session.execute(
                select(process_assignments.c.user_id)
                .where(process_assignments.c.process_id == process.id)
            ).scalars()
        )
        known = set(
            self.session.execute(
                select(User.id).where(User.id.in_(set(user_ids)))
            ).scalars()
        )

        now = datetime.now(timezone.utc)
        rows = []
        for uid in user_ids:
            if uid not in known:
                result.outcomes.append(AssignmentOutcome(uid, USER_NOT_FOUND, "User does not exist"))
            elif uid in existing:
                result.outcomes.append(AssignmentOutcome(uid, ALREADY_ASSIGNED, "User already assigned"))
            else:
                existing.add(uid)
                rows.append({"process_id": process.id, "user_id": uid, "assigned_at": now})
                result.outcomes.append(AssignmentOutcome(uid, ASSIGNED))

        if rows:
            try:
                self.session.execute(insert(process_assignments), rows)
                self.session.commit()
            except (IntegrityError, OperationalError) as exc:
                self.session.rollback()
                logger.warning("Batch assignment to process %s lost a race: %s", process_id, exc.orig)
                raise ConcurrencyConflictError(
                    f"Assignments of process {process_id} changed concurrently, retry with fresh state"
                ) from exc
        else:
            # nothing to insert; still end the transaction so work staged by the caller is kept
            self.session.commit()

        logger.info(
            "Batch assignment process=%s assigned=%s skipped=%d",
            process_id, result.assigned, len(result.skipped),
        )
        return result

    def remove_user_from_process(self, process_id: int, user_id: int) -> None:
        """Hard-delete the join row. Raises NotFoundError if there was none."""
        self._get_process(process_id)
        res = self.session.execute(
            delete(process_assignments).where(
                process_assignments.c.process_id == process_id,
                process_assignments.c.user_id == user_id,
            )
        )
        if res.rowcount == 0:
            self.session.rollback()
            raise NotFoundError("ProcessAssignment", f"{process_id}/{user_id}")
        self.session.commit()
        logger.info("Removed user %s from process %s", user_id, process_id)

    # ── Process assignment reads ─────────────────────────────────────────

    def get_process_assignments(self, process_id: int) -> list[User]:
        self._get_process(process_id)
        return list(
            self.session.execute(
                select(User)
                .join(process_assignments, process_assignments.c.user_id == User.id)
                .where(process_assignments.c.process_id == process_id)
                .order_by(User.id)
            ).scalars()
        )

    def get_user_assigned_processes(self, user_id: int) -> list[Process]:
        return list(
            self.session.execute(
                select(Process)
                .join(process_assignments, process_assignments.c.process_id == Process.id)
                .where(
                    process_assignments.c.user_id == user_id,
                    Process.deleted_at.is_(None),
                )
                .order_by(Process.created_at.desc(), Process.id.desc())
            ).scalars()
        )

    # ── Projects ─────────────────────────────────────────────────────────

    def _visible_project_ids(self, user_id: int):
        direct = select(ProjectAssignment.project_id.label("project_id")).where(
            ProjectAssignment.user_id == user_id,
            ProjectAssignment.is_active.is_(True),
        )
        anchor_project = func.coalesce(
            Requirement.project_id, Incident.project_id, Activity.project_id,
        )
        via_process = (
            select(anchor_project.label("project_id"))
            .select_from(Process)
            .join(process_assignments, process_assignments.c.process_id == Process.id)
            .outerjoin(Requirement, Process.requirement_id == Requirement.id)
            .outerjoin(Incident, Process.incident_id == Incident.id)
            .outerjoin(Activity, Process.activity_id == Activity.id)
            .where(
                process_assignments.c.user_id == user_id,
                Process.deleted_at.is_(None),
                anchor_project.is_not(None),
            )
        )
        return union(direct, via_process).subquery()

    def get_projects_visible_to_user(self, user_id: int) -> list[Project]:
        """Projects assigned directly (active) or reached through an assigned process."""
        ids = self._visible_project_ids(user_id)
        return list(
            self.session.execute(
                select(Project)
                .where(Project.id.in_(select(ids.c.project_id)))
                .order_by(Project.name, Project.id)
            ).scalars()
        )

    def set_project_assignments(self, project_id: int, user_ids: list[int],
                                assigned_by: int | None = None,
                                can_modify: bool = True) -> list[ProjectAssignment]:
        """Replace the active assignment set of a project in one transaction.

        Rows no longer wanted are deactivated (history kept), rows already
        active are reused, missing ones are inserted.
        """
        try:
            project = self.session.execute(
                select(Project).where(Project.id == project_id).with_for_update()
            ).scalar_one_or_none()
        except OperationalError as exc:
            self.session.rollback()
            raise ConcurrencyConflictError() from exc
        if project is None:
            raise NotFoundError("Project", project_id)

        target = list(dict.fromkeys(user_ids))
        known = set(
            self.session.execute(select(User.id).where(User.id.in_(target))).scalars()
        )
        missing = [uid for uid in target if uid not in known]
        if missing:
            raise ValidationError("Unknown users", details={"user_ids": missing})

        active = {
            a.user_id: a
            for a in self.session.execute(
                select(ProjectAssignment).where(
                    ProjectAssignment.project_id == project.id,
                    ProjectAssignment.is_active.is_(True),
                )
            ).scalars()
        }

        removed = []
        for uid, assignment in active.items():
            if uid not in known:
                assignment.deactivate()
                removed.append(uid)

        result = []
        for uid in target:
            assignment = active.get(uid)
            if assignment is None:
                assignment = ProjectAssignment(
                    project_id=project.id,
                    user_id=uid,
                    assigned_by=assigned_by,
                    can_modify=can_modify,
                    is_active=True,
                )
                self.session.add(assignment)
            else:
                assignment.can_modify = can_modify
            result.append(assignment)

        try:
            self.session.commit()
        except (IntegrityError, OperationalError) as exc:
            self.session.rollback()
            logger.warning("Project %s assignment replace lost a race: %s", project_id, exc.orig)
            raise ConcurrencyConflictError(
                f"Assignments of project {project_id} changed concurrently, retry with fresh state"
            ) from exc

        logger.info(
            "Project %s assignments set: active=%s removed=%s by=%s",
            project_id, target, removed, assigned_by,
        )
        return result

    # ── Workload ─────────────────────────────────────────────────────────

    def get_user_workload(self, user_id: int) -> UserWorkload:
        self._get_user(user_id)

        active_processes = self.session.execute(
            select(func.count(func.distinct(Process.id)))
            .select_from(Process)
            .join(process_assignments, process_assignments.c.process_id == Process.id)
            .where(
                process_assignments.c.user_id == user_id,
                Process.status.in_(OPEN_STATUSES),
                Process.deleted_at.is_(None),
            )
        ).scalar_one()

        open_activity = (
            ProcessActivity.assigned_user_id == user_id,
            ProcessActivity.status.in_(OPEN_STATUSES),
            ProcessActivity.deleted_at.is_(None),
        )
        pending_activities = self.session.execute(
            select(func.count(ProcessActivity.id)).where(*open_activity)
        ).scalar_one()

        remaining = ProcessActivity.estimated_hours - ProcessActivity.used_hours
        if self.clamp_remaining_hours:
            remaining = case((remaining > 0, remaining), else_=0)
        hours = self.session.execute(
            select(func.coalesce(func.sum(remaining), 0)).where(*open_activity)
        ).scalar_one()

        ids = self._visible_project_ids(user_id)
        active_projects = self.session.execute(
            select(func.count(Project.id)).where(
                Project.id.in_(select(ids.c.project_id)),
                Project.is_active.is_(True),
            )
        ).scalar_one()

        return UserWorkload(
            user_id=user_id,
            active_processes=int(active_processes),
            pending_activities=int(pending_activities),
            estimated_hours_remaining=float(hours),
            active_projects=int(active_projects),
            timestamp=datetime.now(timezone.utc),
        )


# ── Request-scoped helpers ──────────────────────────────────────────────────

def get_engine() -> AssignmentEngine:
    return AssignmentEngine(
        db.session,
        clamp_remaining_hours=current_app.config.get("WORKLOAD_CLAMP_REMAINING_HOURS", True),
    )


def assign_user_to_process(process_id: int, user_id: int) -> None:
    get_engine().assign_user_to_process(process_id, user_id)


def assign_multiple_users_to_process(process_id: int, user_ids: list[int]) -> BatchAssignmentResult:
    return get_engine().assign_multiple_users_to_process(process_id, user_ids)


def remove_user_from_process(process_id: int, user_id: int) -> None:
    get_engine().remove_user_from_process(process_id, user_id)


def can_user_access_process(process_id: int, user_id: int, role) -> bool:
    return get_engine().can_user_access_process(process_id, user_id, role)


def get_projects_visible_to_user(user_id: int) -> list[Project]:
    return get_engine().get_projects_visible_to_user(user_id)


def get_user_workload(user_id: int) -> UserWorkload:
    return get_engine().get_user_workload(user_id)
