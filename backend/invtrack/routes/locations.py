# Overview: Flask API routes for stock locations; parses input and returns JSON responses.

from flask import Blueprint, request, g

from ..extensions import db
from ..errors import InventoryAppError
from ..models import Location
from ..services import location_service
from ..validation import ModelValidationPolicy, validate_payload
from ..decorators import require_auth, require_role, client_ip

LOCATION_POLICY = ModelValidationPolicy(
    writable_fields={"name", "type", "description", "address", "is_active"},
    required_on_create={"name"},
)

locations_bp = Blueprint("locations", __name__, url_prefix="/api/locations")


@locations_bp.get("")
@require_auth
def list_locations_route():
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    locations = location_service.list_locations(include_inactive=include_inactive)
    return {"items": [loc.to_dict() for loc in locations], "count": len(locations)}


@locations_bp.post("")
@require_auth
@require_role("manager")
def create_location_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Location, payload=payload, policy=LOCATION_POLICY, partial=False)
        location = location_service.create_location(
            patch=patch, actor_id=g.current_user.id, ip_address=client_ip()
        )
    except InventoryAppError as e:
        db.session.rollback()
        return {"error": str(e)}, e.status_code

    return {"location": location.to_dict()}, 201


@locations_bp.get("/<location_id>")
@require_auth
def get_location_route(location_id: str):
    try:
        location = location_service.get_location(location_id)
    except InventoryAppError as e:
        return {"error": str(e)}, e.status_code
    return {"location": location.to_dict()}


@locations_bp.put("/<location_id>")
@require_auth
@require_role("manager")
def update_location_route(location_id: str):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Location, payload=payload, policy=LOCATION_POLICY, partial=True)
        location = location_service.update_location(
            location_id=location_id, patch=patch, actor_id=g.current_user.id, ip_address=client_ip()
        )
    except InventoryAppError as e:
        db.session.rollback()
        return {"error": str(e)}, e.status_code

    return {"location": location.to_dict()}
