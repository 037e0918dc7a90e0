from __future__ import annotations

import json

from ..extensions import db
from ..time_utils import to_utc_z


class Report(db.Model):
    """
    Saved report definition. Results are computed on demand and never stored.

    The schedule string is kept for the client; nothing in the backend runs it.
    """
    __tablename__ = "reports"

    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    report_type = db.Column(db.String(32), nullable=False, index=True)

    # JSON-encoded parameter bag
    parameters = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.String(64), db.ForeignKey("users.id"), nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_run = db.Column(db.DateTime(timezone=True), nullable=True)
    schedule = db.Column(db.String(128), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    creator = db.relationship("User", foreign_keys=[created_by])

    @property
    def parameter_dict(self) -> dict:
        if not self.parameters:
            return {}
        return json.loads(self.parameters)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "report_type": self.report_type,
            "parameters": self.parameter_dict,
            "created_by": self.created_by,
            "created_by_username": self.creator.username if self.creator else None,
            "created_at": to_utc_z(self.created_at),
            "last_run": to_utc_z(self.last_run) if self.last_run else None,
            "schedule": self.schedule,
            "is_active": self.is_active,
        }
