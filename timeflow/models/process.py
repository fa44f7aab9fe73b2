"""
Timeflow Process Tracking
Process domain models.

Models:
    - Process:              unit of resolution work, anchored to at most one
                            Requirement, Incident or Activity
    - ProcessActivity:      step within a process; may depend on exactly one
                            other step of the same process
    - process_assignments:  user ↔ process join table (hard-deleted rows)

Architecture:
    Project ──1:N──▶ {Requirement | Incident | Activity} ──1:N──▶ Process
    Process ──1:N──▶ ProcessActivity
    ProcessActivity ──N:1──▶ ProcessActivity  (depends_on_id, single predecessor)
    Process ──N:M──▶ User  (via process_assignments)

Statuses:
    Process:          pending | in_progress | completed | on_hold | cancelled
    ProcessActivity:  pending | in_progress | completed | on_hold

There is no enforced transition table for either status; callers move
statuses freely within the allowed set.
"""

from datetime import datetime, timezone

from timeflow.models import db
from timeflow.models.soft_delete import SoftDeleteMixin


# ── Constants ────────────────────────────────────────────────────────────────

PROCESS_STATUSES = {"pending", "in_progress", "completed", "on_hold", "cancelled"}

ACTIVITY_STATUSES = {"pending", "in_progress", "completed", "on_hold"}

# Statuses counted as outstanding work in workload snapshots
OPEN_STATUSES = ("pending", "in_progress")

ANCHOR_FIELDS = ("requirement_id", "incident_id", "activity_id")


process_assignments = db.Table(
    "process_assignments",
    db.Column(
        "process_id", db.Integer,
        db.ForeignKey("processes.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    db.Column(
        "user_id", db.Integer,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    ),
    db.Column(
        "assigned_at", db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    ),
)


class Process(SoftDeleteMixin, db.Model):
    __tablename__ = "processes"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, default="")
    status = db.Column(db.String(20), nullable=False, default="pending", index=True)

    requirement_id = db.Column(
        db.Integer, db.ForeignKey("requirements.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    incident_id = db.Column(
        db.Integer, db.ForeignKey("incidents.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    activity_id = db.Column(
        db.Integer, db.ForeignKey("activities.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )

    estimated_hours = db.Column(db.Float, nullable=False, default=0)
    used_hours = db.Column(db.Float, nullable=False, default=0)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    requirement = db.relationship("Requirement")
    incident = db.relationship("Incident")
    activity = db.relationship("Activity")
    creator = db.relationship("User", foreign_keys=[created_by])

    # Writes go through AssignmentEngine, never through this collection.
    assigned_users = db.relationship(
        "User", secondary=process_assignments, viewonly=True,
        order_by="User.id", lazy="selectin",
    )
    activities = db.relationship(
        "ProcessActivity", back_populates="process", lazy="dynamic",
    )

    @property
    def anchor(self) -> tuple[str, int] | None:
        """Return (field, id) of the owning context, or None if standalone."""
        for field in ANCHOR_FIELDS:
            value = getattr(self, field)
            if value is not None:
                return field, value
        return None

    def to_dict(self, include_activities=False):
        d = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "requirement_id": self.requirement_id,
            "incident_id": self.incident_id,
            "activity_id": self.activity_id,
            "estimated_hours": self.estimated_hours,
            "used_hours": self.used_hours,
            "created_by": self.created_by,
            "assigned_user_ids": [u.id for u in self.assigned_users],
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_activities:
            rows = (
                self.activities
                .filter(ProcessActivity.deleted_at.is_(None))
                .order_by(ProcessActivity.order_number, ProcessActivity.id)
                .all()
            )
            d["activities"] = [a.to_dict() for a in rows]
        return d

    def __repr__(self):
        return f"<Process {self.id}: {self.name}>"


class ProcessActivity(SoftDeleteMixin, db.Model):
    """
    Node of the per-process dependency graph.

    ``depends_on_id`` points at the single predecessor. Edges always stay
    inside one process and never close a cycle; DependencyEngine is the only
    writer of this column.
    """

    __tablename__ = "process_activities"

    id = db.Column(db.Integer, primary_key=True)
    process_id = db.Column(
        db.Integer, db.ForeignKey("processes.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, default="")
    status = db.Column(db.String(20), nullable=False, default="pending", index=True)
    order_number = db.Column(db.Integer, nullable=False, default=0, index=True)

    depends_on_id = db.Column(
        db.Integer, db.ForeignKey("process_activities.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    assigned_user_id = db.Column(
        db.Integer, db.ForeignKey("users.id"),
        nullable=False, index=True,
    )

    estimated_hours = db.Column(db.Float, nullable=False, default=0)
    used_hours = db.Column(db.Float, nullable=False, default=0)
    start_date = db.Column(db.DateTime(timezone=True), nullable=True)
    end_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.CheckConstraint(
            "depends_on_id IS NULL OR depends_on_id != id",
            name="ck_process_activity_no_self_dependency",
        ),
    )

    process = db.relationship("Process", back_populates="activities")
    depends_on = db.relationship("ProcessActivity", remote_side=[id])
    assigned_user = db.relationship("User")

    def to_dict(self, include_dependency=True):
        d = {
            "id": self.id,
            "process_id": self.process_id,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "order_number": self.order_number,
            "depends_on_id": self.depends_on_id,
            "assigned_user_id": self.assigned_user_id,
            "estimated_hours": self.estimated_hours,
            "used_hours": self.used_hours,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_dependency and self.depends_on is not None:
            d["depends_on"] = {
                "id": self.depends_on.id,
                "name": self.depends_on.name,
                "status": self.depends_on.status,
            }
        return d

    def __repr__(self):
        return f"<ProcessActivity {self.id}: {self.name} → {self.depends_on_id}>"
