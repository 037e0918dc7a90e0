# Overview: Flask API route for reading the audit log (admin only).

from flask import Blueprint, request

from ..services import audit_service
from ..decorators import require_auth, require_role

audit_bp = Blueprint("audit", __name__, url_prefix="/api/audit-logs")


@audit_bp.get("")
@require_auth
@require_role("admin")
def list_audit_logs_route():
    """
    Query params: entity_type, entity_id, user_id, limit (default 100, max 500).
    Newest first.
    """
    entries = audit_service.list_audit_logs(
        entity_type=request.args.get("entity_type"),
        entity_id=request.args.get("entity_id"),
        user_id=request.args.get("user_id"),
        limit=request.args.get("limit", 100, type=int),
    )
    return {"items": [e.to_dict() for e in entries], "count": len(entries)}
