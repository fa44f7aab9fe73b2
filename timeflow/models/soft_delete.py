"""
Soft Delete Mixin.

Adds a ``deleted_at`` timestamp column. Processes and process activities are
never hard-deleted; reads and dependency resolution only ever see rows where
``deleted_at IS NULL``.

Usage:
    class Process(SoftDeleteMixin, db.Model):
        ...

    process.soft_delete()
    db.session.commit()
"""

from datetime import datetime, timezone

from timeflow.models import db


class SoftDeleteMixin:
    """Mixin that adds soft delete support to any SQLAlchemy model."""

    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, default=None, index=True)

    def soft_delete(self):
        """Mark this record as deleted."""
        self.deleted_at = datetime.now(timezone.utc)
