"""
Timeflow Process Tracking
Activity model — a time entry registered by a user.

An activity may or may not belong to a project. A process anchored to a
project-less activity has no project-based access path.
"""

from datetime import date, datetime, timezone

from timeflow.models import db


class Activity(db.Model):
    __tablename__ = "activities"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    area_id = db.Column(db.Integer, db.ForeignKey("areas.id", ondelete="SET NULL"), nullable=True, index=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id", ondelete="SET NULL"), nullable=True, index=True)
    activity_name = db.Column(db.String(255), nullable=False)
    activity_type = db.Column(db.String(50), nullable=True, index=True)
    execution_time = db.Column(db.Float, nullable=False, default=0)
    date = db.Column(db.Date, nullable=False, default=date.today, index=True)
    observations = db.Column(db.Text, default="")
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    project = db.relationship("Project")

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "area_id": self.area_id,
            "project_id": self.project_id,
            "activity_name": self.activity_name,
            "activity_type": self.activity_type,
            "execution_time": self.execution_time,
            "date": self.date.isoformat() if self.date else None,
        }

    def __repr__(self):
        return f"<Activity {self.id}: {self.activity_name}>"
