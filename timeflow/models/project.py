"""
Timeflow Process Tracking
Project domain models — projects and user ↔ project assignments.

ProjectAssignment rows are never deleted: un-assigning flips ``is_active``
and stamps ``unassigned_at`` so the assignment history survives. Only one
active row per (project, user) may exist; the partial unique index enforces
that in storage.
"""

from datetime import datetime, timezone

from timeflow.models import db


class Project(db.Model):
    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    area_id = db.Column(db.Integer, db.ForeignKey("areas.id", ondelete="SET NULL"), nullable=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    assignments = db.relationship(
        "ProjectAssignment", back_populates="project", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "created_by": self.created_by,
            "area_id": self.area_id,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Project {self.id}: {self.name}>"


class ProjectAssignment(db.Model):
    """User ↔ Project assignment with audit history."""

    __tablename__ = "project_assignments"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    assigned_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    assigned_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    can_modify = db.Column(db.Boolean, nullable=False, default=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    unassigned_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.Index(
            "uq_project_assignments_active",
            "project_id", "user_id",
            unique=True,
            postgresql_where=db.text("is_active IS TRUE"),
            sqlite_where=db.text("is_active = 1"),
        ),
    )

    project = db.relationship("Project", back_populates="assignments")
    user = db.relationship("User", foreign_keys=[user_id])

    def deactivate(self):
        self.is_active = False
        self.unassigned_at = datetime.now(timezone.utc)

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "user_id": self.user_id,
            "assigned_by": self.assigned_by,
            "assigned_at": self.assigned_at.isoformat() if self.assigned_at else None,
            "can_modify": self.can_modify,
            "is_active": self.is_active,
            "unassigned_at": self.unassigned_at.isoformat() if self.unassigned_at else None,
        }

    def __repr__(self):
        state = "active" if self.is_active else "inactive"
        return f"<ProjectAssignment project={self.project_id} user={self.user_id} {state}>"
