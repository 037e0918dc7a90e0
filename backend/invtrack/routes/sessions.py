# Overview: Flask API routes for check-in / check-out / count sessions; parses input and returns JSON responses.

# backend/invtrack/routes/sessions.py
"""
Session API routes.

State changes on a finished session answer 409.
"""
from flask import Blueprint, current_app, request, g

from ..extensions import db
from ..errors import InventoryAppError
from ..services import session_service
from ..decorators import require_auth, client_ip
from ..validation import parse_date_field


sessions_bp = Blueprint("sessions", __name__, url_prefix="/api/sessions")


@sessions_bp.get("")
@require_auth
def list_sessions_route():
    """
    Query params:
    - type: check_in | check_out | inventory_count
    - status: in_progress | completed | cancelled
    - location_id
    - limit (default 10)
    """
    try:
        sessions = session_service.list_sessions(
            session_type=request.args.get("type"),
            status=request.args.get("status"),
            location_id=request.args.get("location_id"),
            limit=request.args.get("limit", 10, type=int),
        )
    except InventoryAppError as e:
        return {"error": str(e)}, e.status_code
    return {"items": [s.to_dict() for s in sessions], "count": len(sessions)}


@sessions_bp.post("")
@require_auth
def create_session_route():
    """
    Request body:
    {
        "session_type": "check_in" | "check_out" | "inventory_count",
        "location_id": str,
        "notes": str (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    session_type = data.get("session_type") or data.get("type")
    if not session_type or not data.get("location_id"):
        return {"error": "session_type and location_id are required"}, 400

    try:
        session = session_service.create_session(
            session_type,
            data["location_id"],
            notes=data.get("notes"),
            actor_id=g.current_user.id,
            ip_address=client_ip(),
        )
    except InventoryAppError as e:
        db.session.rollback()
        return {"error": str(e)}, e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create session")
        return {"error": "Internal server error"}, 500

    return {"session": session.to_dict()}, 201


@sessions_bp.get("/<session_id>")
@require_auth
def get_session_route(session_id: str):
    try:
        session = session_service.get_session(session_id)
        txns = session_service.get_session_transactions(session_id)
    except InventoryAppError as e:
        return {"error": str(e)}, e.status_code
    return {"session": session.to_dict(), "transactions": [t.to_dict() for t in txns]}


@sessions_bp.get("/<session_id>/transactions")
@require_auth
def list_session_transactions_route(session_id: str):
    try:
        txns = session_service.get_session_transactions(session_id)
    except InventoryAppError as e:
        return {"error": str(e)}, e.status_code
    return {"items": [t.to_dict() for t in txns], "count": len(txns)}


@sessions_bp.post("/<session_id>/transactions")
@require_auth
def add_session_transaction_route(session_id: str):
    """
    Add one movement to an in-progress session.

    Request body:
    {
        "product_id": str,
        "quantity": int (> 0),
        "batch_number": str (optional),
        "expiration_date": "YYYY-MM-DD" (optional),
        "notes": str (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    if not data.get("product_id") or data.get("quantity") is None:
        return {"error": "product_id and quantity are required"}, 400

    try:
        txn = session_service.add_movement(
            session_id,
            data["product_id"],
            data["quantity"],
            batch_number=data.get("batch_number"),
            expiration_date=parse_date_field(data.get("expiration_date"), "expiration_date"),
            notes=data.get("notes"),
            actor_id=g.current_user.id,
            ip_address=client_ip(),
        )
    except InventoryAppError as e:
        db.session.rollback()
        return {"error": str(e)}, e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to add session transaction")
        return {"error": "Internal server error"}, 500

    return {"transaction": txn.to_dict()}, 201


@sessions_bp.post("/<session_id>/count")
@require_auth
def record_count_route(session_id: str):
    """
    Record a physical count in an inventory_count session.

    Request body: {"product_id": str, "quantity": int (>= 0)}
    """
    data = request.get_json(silent=True) or {}
    if not data.get("product_id") or data.get("quantity") is None:
        return {"error": "product_id and quantity are required"}, 400

    try:
        record = session_service.record_count(
            session_id,
            data["product_id"],
            data["quantity"],
            actor_id=g.current_user.id,
            ip_address=client_ip(),
        )
    except InventoryAppError as e:
        db.session.rollback()
        return {"error": str(e)}, e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to record count")
        return {"error": "Internal server error"}, 500

    return {"inventory": record.to_dict()}


@sessions_bp.post("/<session_id>/complete")
@require_auth
def complete_session_route(session_id: str):
    try:
        session = session_service.complete_session(
            session_id, actor_id=g.current_user.id, ip_address=client_ip()
        )
    except InventoryAppError as e:
        db.session.rollback()
        return {"error": str(e)}, e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to complete session")
        return {"error": "Internal server error"}, 500

    return {"session": session.to_dict()}


@sessions_bp.post("/<session_id>/cancel")
@require_auth
def cancel_session_route(session_id: str):
    """Cancel and reverse every movement in the session (409 if stock has moved on)."""
    try:
        session = session_service.cancel_session(
            session_id, actor_id=g.current_user.id, ip_address=client_ip()
        )
    except InventoryAppError as e:
        db.session.rollback()
        return {"error": str(e)}, e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to cancel session")
        return {"error": "Internal server error"}, 500

    return {"session": session.to_dict()}
