from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .enums import SessionStatus


class InventorySession(db.Model):
    """
    A user-initiated batch of inventory movements at one location.

    LIFECYCLE:
    1. in_progress: movements are being recorded
    2. completed: terminal, movements stand
    3. cancelled: terminal, every movement has a compensating ledger entry

    Transactions point back at their session (inventory_transactions.session_id);
    the session holds no list of its own.
    """
    __tablename__ = "sessions"
    __table_args__ = (
        db.Index("ix_sessions_type_status_started", "session_type", "status", "started_at"),
    )

    id = db.Column(db.String(64), primary_key=True)
    session_type = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=SessionStatus.IN_PROGRESS.value, index=True)

    location_id = db.Column(db.String(64), db.ForeignKey("locations.id"), nullable=False, index=True)
    created_by = db.Column(db.String(64), db.ForeignKey("users.id"), nullable=True)

    started_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    location = db.relationship("Location")
    creator = db.relationship("User", foreign_keys=[created_by])
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_terminal(self) -> bool:
        return self.status != SessionStatus.IN_PROGRESS.value

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_type": self.session_type,
            "status": self.status,
            "location_id": self.location_id,
            "location_name": self.location.name if self.location else None,
            "created_by": self.created_by,
            "created_by_username": self.creator.username if self.creator else None,
            "started_at": to_utc_z(self.started_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "notes": self.notes,
        }
