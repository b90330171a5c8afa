"""
Soft delete mixin.

Adds a ``deleted_at`` timestamp and query helpers. Ideas use it so that a
withdrawn submission keeps its review history; drafts are removed outright
by the service layer instead.

Usage:
    class Idea(SoftDeleteMixin, db.Model):
        ...

    idea.soft_delete()
    Idea.query_active().filter_by(user_id=uid).all()
"""

from datetime import datetime, timezone

from ideaportal.models import db


class SoftDeleteMixin:
    """Mixin that adds soft delete support to any SQLAlchemy model."""

    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, default=None, index=True)

    def soft_delete(self):
        """Mark this record as deleted."""
        self.deleted_at = datetime.now(timezone.utc)

    @property
    def is_deleted(self):
        return self.deleted_at is not None

    @classmethod
    def query_active(cls):
        """Return a query that excludes soft-deleted records."""
        return cls.query.filter(cls.deleted_at.is_(None))
