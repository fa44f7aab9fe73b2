"""
Timeflow Process Tracking
Identity models — areas, users and the closed role set.

Role hierarchy:
    superadmin  → sees and manages everything
    admin       → manages processes; scoped to the projects of their area
    user        → works on what they are assigned to
"""

from datetime import datetime, timezone
from enum import Enum

from timeflow.models import db


class Role(str, Enum):
    SUPERADMIN = "superadmin"
    ADMIN = "admin"
    USER = "user"

    @classmethod
    def parse(cls, value) -> "Role":
        """Coerce a claim/column value into a Role, raising ValueError if unknown."""
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower())

    @property
    def is_manager(self) -> bool:
        return self in (Role.SUPERADMIN, Role.ADMIN)


class Area(db.Model):
    """Department or team; admins are scoped to one area."""

    __tablename__ = "areas"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), unique=True, nullable=False)
    description = db.Column(db.Text, default="")
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    users = db.relationship("User", back_populates="area", lazy="dynamic")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<Area {self.id}: {self.name}>"


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(200), unique=True, nullable=False)
    full_name = db.Column(db.String(200), nullable=False)
    role = db.Column(db.String(20), nullable=False, default=Role.USER.value)
    area_id = db.Column(db.Integer, db.ForeignKey("areas.id", ondelete="SET NULL"), nullable=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    area = db.relationship("Area", back_populates="users")

    @property
    def role_enum(self) -> Role:
        return Role.parse(self.role)

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role,
            "area_id": self.area_id,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<User {self.id}: {self.email}>"
