# backend/invtrack/services/location_service.py
"""
Location Service: places that hold stock (main storage, outlets, warehouses).

Locations are deactivated, never deleted; ledger rows reference them.
"""
from __future__ import annotations

from typing import Optional

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import Location, LocationType
from . import audit_service
from .id_service import generate_id, LOCATION_PREFIX

LOCATION_MUTABLE_FIELDS = {"name", "type", "description", "address", "is_active"}


def list_locations(include_inactive: bool = False) -> list[Location]:
    q = db.session.query(Location)
    if not include_inactive:
        q = q.filter(Location.is_active.is_(True))
    return q.order_by(Location.name.asc()).all()


def get_location(location_id: str) -> Location:
    loc = db.session.query(Location).filter_by(id=location_id).first()
    if loc is None:
        raise NotFoundError(f"Location {location_id} not found")
    return loc


def _normalize(patch: dict) -> dict:
    patch = dict(patch)
    if "type" in patch and patch["type"] is not None:
        patch["type"] = LocationType.parse(patch["type"], "type").value
    if "name" in patch and not (patch["name"] or "").strip():
        raise ValidationError("name cannot be blank")
    return patch


def create_location(
    *,
    patch: dict,
    actor_id: Optional[str] = None,
    ip_address: Optional[str] = None,
    commit: bool = True,
) -> Location:
    if not (patch.get("name") or "").strip():
        raise ValidationError("name is required")
    patch = _normalize(patch)

    loc = Location(id=generate_id(LOCATION_PREFIX), created_by=actor_id)
    for k, v in patch.items():
        if k in LOCATION_MUTABLE_FIELDS:
            setattr(loc, k, v)
    db.session.add(loc)
    db.session.flush()

    audit_service.record(
        actor_id=actor_id,
        action="create",
        entity_type="location",
        entity_id=loc.id,
        details={"name": loc.name, "type": loc.type},
        ip_address=ip_address,
    )

    if commit:
        db.session.commit()
    return loc


def update_location(
    *,
    location_id: str,
    patch: dict,
    actor_id: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> Location:
    loc = get_location(location_id)
    patch = _normalize(patch)

    changes = {k: v for k, v in patch.items() if k in LOCATION_MUTABLE_FIELDS and getattr(loc, k) != v}
    for k, v in changes.items():
        setattr(loc, k, v)
    db.session.flush()

    audit_service.record(
        actor_id=actor_id,
        action="update",
        entity_type="location",
        entity_id=loc.id,
        details=changes,
        ip_address=ip_address,
    )

    db.session.commit()
    return loc
