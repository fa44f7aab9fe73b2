"""
Timeflow Process Tracking
Incident model — a process anchor owned by a project.

Users who reported an incident may open resolution processes for it even
without a project assignment.
"""

from datetime import datetime, timezone

from timeflow.models import db

INCIDENT_SEVERITIES = {"low", "medium", "high", "critical"}

INCIDENT_STATUSES = {"open", "in_progress", "resolved", "closed", "reopened"}


class Incident(db.Model):
    __tablename__ = "incidents"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, default="")
    severity = db.Column(db.String(20), nullable=False, default="medium", index=True)
    status = db.Column(db.String(30), nullable=False, default="open", index=True)
    reported_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    project = db.relationship("Project")

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "description": self.description,
            "severity": self.severity,
            "status": self.status,
            "reported_by": self.reported_by,
        }

    def __repr__(self):
        return f"<Incident {self.id}: {self.name}>"
