"""
Timeflow Process Tracking
Process Lifecycle Manager — processes and their activities.

Creation and update of Process / ProcessActivity rows go through here so the
single-anchor rule and the dependency invariants are checked before anything
is persisted. Dependency edges are written only under the per-process lock
held by the Dependency Engine; a rejected edge rolls back the whole write.
"""

from __future__ import annotations

import logging

from flask import current_app
from sqlalchemy import func, select

from timeflow.core.exceptions import DomainError, NotFoundError, ValidationError
from timeflow.models import db
from timeflow.models.activity import Activity
from timeflow.models.incident import Incident
from timeflow.models.process import (
    ACTIVITY_STATUSES,
    ANCHOR_FIELDS,
    PROCESS_STATUSES,
    Process,
    ProcessActivity,
)
from timeflow.models.requirement import Requirement
from timeflow.models.user import User
from timeflow.services import assignment_service, dependency_service
from timeflow.services.dependency_service import COMPLETED
from timeflow.utils.helpers import parse_datetime, parse_int_list

logger = logging.getLogger(__name__)

_ANCHOR_MODELS = {
    "requirement_id": Requirement,
    "incident_id": Incident,
    "activity_id": Activity,
}


# ── Input coercion ───────────────────────────────────────────────────────────

def _text(data: dict, key: str, required: bool = False) -> str:
    value = str(data.get(key, "") or "").strip()
    if required and not value:
        raise ValidationError(f"{key} is required", details={key: "required"})
    return value


def _hours(value, key: str) -> float:
    try:
        hours = float(value or 0)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{key} must be a number", details={key: "not a number"}) from exc
    if hours < 0:
        raise ValidationError(f"{key} cannot be negative", details={key: "negative"})
    return hours


def _optional_id(value, key: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer", details={key: "not an integer"})
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{key} must be an integer", details={key: "not an integer"}) from exc


def _status(value, allowed: set[str], default: str = "pending") -> str:
    status = str(value or default).strip()
    if status not in allowed:
        raise ValidationError(
            f"Invalid status: {status}",
            details={"status": f"must be one of {sorted(allowed)}"},
        )
    return status


def _datetime(data: dict, key: str):
    value = data.get(key)
    if value in (None, ""):
        return None
    parsed = parse_datetime(value)
    if parsed is None:
        raise ValidationError(f"{key} is not a valid date", details={key: "invalid date"})
    return parsed


def _user_ids(data: dict) -> list[int]:
    try:
        return parse_int_list(data.get("user_ids"))
    except ValueError as exc:
        raise ValidationError(str(exc), details={"user_ids": "invalid"}) from exc


def _require_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    return user


# ── Anchors ──────────────────────────────────────────────────────────────────

def get_requirement(requirement_id: int) -> Requirement:
    obj = db.session.get(Requirement, requirement_id)
    if obj is None:
        raise NotFoundError("Requirement", requirement_id)
    return obj


def get_incident(incident_id: int) -> Incident:
    obj = db.session.get(Incident, incident_id)
    if obj is None:
        raise NotFoundError("Incident", incident_id)
    return obj


def get_activity(activity_id: int) -> Activity:
    obj = db.session.get(Activity, activity_id)
    if obj is None:
        raise NotFoundError("Activity", activity_id)
    return obj


def _resolve_anchors(data: dict) -> dict[str, int | None]:
    anchors = {f: _optional_id(data.get(f), f) for f in ANCHOR_FIELDS}
    present = [f for f, v in anchors.items() if v is not None]
    if len(present) > 1 and current_app.config.get("STRICT_SINGLE_ANCHOR", True):
        raise ValidationError(
            "A process can be linked to only one of requirement, incident or activity",
            details={f: "conflicting anchor" for f in present},
        )
    for f in present:
        model = _ANCHOR_MODELS[f]
        if db.session.get(model, anchors[f]) is None:
            raise NotFoundError(model.__name__, anchors[f])
    return anchors


# ── Processes ────────────────────────────────────────────────────────────────

def list_processes(filters: dict | None = None) -> list[Process]:
    """Non-deleted processes, newest first, optionally filtered by anchor/status."""
    filters = filters or {}
    stmt = select(Process).where(Process.deleted_at.is_(None))
    for f in ANCHOR_FIELDS:
        if filters.get(f) is not None:
            stmt = stmt.where(getattr(Process, f) == filters[f])
    if filters.get("status"):
        stmt = stmt.where(Process.status == filters["status"])
    stmt = stmt.order_by(Process.created_at.desc(), Process.id.desc())
    return list(db.session.execute(stmt).scalars())


def get_process(process_id: int) -> Process:
    process = db.session.execute(
        select(Process).where(Process.id == process_id, Process.deleted_at.is_(None))
    ).scalar_one_or_none()
    if process is None:
        raise NotFoundError("Process", process_id)
    return process


def create_process(data: dict, created_by: int | None = None):
    """Create a process with at most one anchor and assign ``user_ids``.

    Returns ``(process, batch_result)``; ``batch_result`` is None when no
    users were requested.
    """
    name = _text(data, "name", required=True)
    anchors = _resolve_anchors(data)
    user_ids = _user_ids(data)

    process = Process(
        name=name,
        description=_text(data, "description"),
        status=_status(data.get("status"), PROCESS_STATUSES),
        estimated_hours=_hours(data.get("estimated_hours"), "estimated_hours"),
        used_hours=_hours(data.get("used_hours"), "used_hours"),
        created_by=created_by,
        **anchors,
    )
    try:
        db.session.add(process)
        db.session.flush()
        batch = None
        if user_ids:
            # commits the process together with its assignments, even when every id is skipped
            batch = assignment_service.assign_multiple_users_to_process(process.id, user_ids)
        else:
            db.session.commit()
    except DomainError:
        db.session.rollback()
        raise

    logger.info(
        "Process %s created by %s anchor=%s",
        process.id, created_by, process.anchor,
    )
    return process, batch


def create_process_for_requirement(requirement_id: int, data: dict, created_by: int | None = None):
    get_requirement(requirement_id)
    return create_process({**data, "requirement_id": requirement_id}, created_by)


def create_process_for_incident(incident_id: int, data: dict, created_by: int | None = None):
    get_incident(incident_id)
    return create_process({**data, "incident_id": incident_id}, created_by)


def create_process_for_activity(activity_id: int, data: dict, created_by: int | None = None):
    get_activity(activity_id)
    return create_process({**data, "activity_id": activity_id}, created_by)


def update_process(process: Process, data: dict) -> Process:
    """Partial update; anchors are fixed at creation."""
    if "name" in data:
        process.name = _text(data, "name", required=True)
    if "description" in data:
        process.description = _text(data, "description")
    if "status" in data:
        process.status = _status(data.get("status"), PROCESS_STATUSES)
    if "estimated_hours" in data:
        process.estimated_hours = _hours(data.get("estimated_hours"), "estimated_hours")
    if "used_hours" in data:
        process.used_hours = _hours(data.get("used_hours"), "used_hours")
    db.session.commit()
    logger.info("Process %s updated fields=%s", process.id, sorted(data))
    return process


def delete_process(process: Process) -> None:
    """Soft-delete the process and every live activity under it."""
    activities = db.session.execute(
        select(ProcessActivity).where(
            ProcessActivity.process_id == process.id,
            ProcessActivity.deleted_at.is_(None),
        )
    ).scalars().all()
    for activity in activities:
        activity.soft_delete()
    process.soft_delete()
    db.session.commit()
    logger.info("Process %s soft-deleted with %d activities", process.id, len(activities))


# ── Process activities ───────────────────────────────────────────────────────

def list_process_activities(process_id: int) -> list[ProcessActivity]:
    get_process(process_id)
    return list(
        db.session.execute(
            select(ProcessActivity)
            .where(
                ProcessActivity.process_id == process_id,
                ProcessActivity.deleted_at.is_(None),
            )
            .order_by(ProcessActivity.order_number, ProcessActivity.id)
        ).scalars()
    )


def get_process_activity(activity_id: int) -> ProcessActivity:
    return dependency_service.get_engine().get_activity(activity_id)


def _next_order_number(process_id: int) -> int:
    current = db.session.execute(
        select(func.max(ProcessActivity.order_number)).where(
            ProcessActivity.process_id == process_id,
            ProcessActivity.deleted_at.is_(None),
        )
    ).scalar_one()
    return (current or 0) + 1


def create_process_activity(process: Process, data: dict) -> ProcessActivity:
    """Create a step; a requested predecessor is validated before commit."""
    name = _text(data, "name", required=True)
    assigned_user_id = _optional_id(data.get("assigned_user_id"), "assigned_user_id")
    if assigned_user_id is None:
        raise ValidationError("assigned_user_id is required", details={"assigned_user_id": "required"})
    _require_user(assigned_user_id)
    depends_on_id = _optional_id(data.get("depends_on_id"), "depends_on_id")
    order_number = _optional_id(data.get("order_number"), "order_number")

    engine = dependency_service.get_engine()
    try:
        with engine.lock(process.id):
            activity = ProcessActivity(
                process_id=process.id,
                name=name,
                description=_text(data, "description"),
                status=_status(data.get("status"), ACTIVITY_STATUSES),
                order_number=order_number if order_number is not None else _next_order_number(process.id),
                assigned_user_id=assigned_user_id,
                estimated_hours=_hours(data.get("estimated_hours"), "estimated_hours"),
                used_hours=_hours(data.get("used_hours"), "used_hours"),
                start_date=_datetime(data, "start_date"),
                end_date=_datetime(data, "end_date"),
            )
            db.session.add(activity)
            db.session.flush()
            if depends_on_id is not None:
                engine.set_dependency(activity, depends_on_id)
            engine.commit()
    except DomainError:
        db.session.rollback()
        raise

    logger.info(
        "Activity %s created in process %s depends_on=%s",
        activity.id, process.id, depends_on_id,
    )
    return activity


def update_process_activity(activity: ProcessActivity, data: dict) -> ProcessActivity:
    """Partial update. A ``depends_on_id`` change is re-validated under the
    process lock; a ``status`` change goes through the status path so
    completion listeners fire."""
    engine = dependency_service.get_engine()
    successors = []
    previous_status = activity.status
    try:
        with engine.lock(activity.process_id):
            db.session.refresh(activity)
            previous_status = activity.status

            if "name" in data:
                activity.name = _text(data, "name", required=True)
            if "description" in data:
                activity.description = _text(data, "description")
            if "order_number" in data:
                activity.order_number = _optional_id(data.get("order_number"), "order_number") or 0
            if "estimated_hours" in data:
                activity.estimated_hours = _hours(data.get("estimated_hours"), "estimated_hours")
            if "used_hours" in data:
                activity.used_hours = _hours(data.get("used_hours"), "used_hours")
            if "assigned_user_id" in data:
                user_id = _optional_id(data.get("assigned_user_id"), "assigned_user_id")
                if user_id is None:
                    raise ValidationError(
                        "assigned_user_id cannot be empty", details={"assigned_user_id": "required"},
                    )
                activity.assigned_user_id = _require_user(user_id).id
            if "start_date" in data:
                activity.start_date = _datetime(data, "start_date")
            if "end_date" in data:
                activity.end_date = _datetime(data, "end_date")
            if "depends_on_id" in data:
                engine.set_dependency(activity, _optional_id(data.get("depends_on_id"), "depends_on_id"))
            if "status" in data:
                successors = engine.apply_status(activity, _status(data.get("status"), ACTIVITY_STATUSES))
            engine.commit()
    except DomainError:
        db.session.rollback()
        raise

    if activity.status == COMPLETED and previous_status != COMPLETED:
        engine.notify_completed(activity, successors)
    logger.info("Activity %s updated fields=%s", activity.id, sorted(data))
    return activity
