# Overview: Flask API routes for inventory operations; parses input and returns JSON responses.

# backend/invtrack/routes/inventory.py
"""
Stock levels and the transaction ledger.

Every quantity change goes through inventory_service, which writes the
ledger row and the counter update in one DB transaction.
"""
from flask import Blueprint, current_app, request, g

from ..extensions import db
from ..errors import InventoryAppError
from ..services import inventory_service
from ..validation import parse_date_field
from ..decorators import require_auth, client_ip


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("")
@require_auth
def list_levels_route():
    """
    Stock levels joined with product, category and location names.

    Query params:
    - location_id, category_id, search: optional filters
    - low_stock: "true" to keep only rows at or below minimum_stock
    - limit (default 100, max 500), offset
    """
    rows = inventory_service.get_levels(
        location_id=request.args.get("location_id"),
        category_id=request.args.get("category_id"),
        search=request.args.get("search"),
        low_stock_only=request.args.get("low_stock", "false").lower() == "true",
        limit=request.args.get("limit", 100, type=int),
        offset=request.args.get("offset", 0, type=int),
    )
    return {"items": rows, "count": len(rows)}


@inventory_bp.get("/summary")
@require_auth
def summary_route():
    return inventory_service.get_summary()


@inventory_bp.post("")
@require_auth
def set_quantity_route():
    """
    Set the on-hand quantity of a product at a location.

    Request body:
    {
        "product_id": str,
        "location_id": str,
        "quantity": int (>= 0),
        "notes": str (optional)
    }

    The difference is recorded as an adjustment transaction.
    """
    data = request.get_json(silent=True) or {}
    missing = [k for k in ("product_id", "location_id", "quantity") if data.get(k) is None]
    if missing:
        return {"error": f"Missing required fields: {', '.join(missing)}"}, 400

    try:
        record = inventory_service.set_quantity(
            data["product_id"],
            data["location_id"],
            data["quantity"],
            actor_id=g.current_user.id,
            notes=data.get("notes"),
            ip_address=client_ip(),
        )
    except InventoryAppError as e:
        db.session.rollback()
        return {"error": str(e)}, e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to set quantity")
        return {"error": "Internal server error"}, 500

    return {"inventory": record.to_dict()}


@inventory_bp.get("/transactions")
@require_auth
def list_transactions_route():
    try:
        txns = inventory_service.list_transactions(
            product_id=request.args.get("product_id"),
            location_id=request.args.get("location_id"),
            type_=request.args.get("type"),
            session_id=request.args.get("session_id"),
            limit=request.args.get("limit", 100, type=int),
            offset=request.args.get("offset", 0, type=int),
        )
    except InventoryAppError as e:
        return {"error": str(e)}, e.status_code
    return {"items": [t.to_dict() for t in txns], "count": len(txns)}


@inventory_bp.post("/transactions")
@require_auth
def create_transaction_route():
    """
    Record a stock movement outside any session.

    Request body:
    {
        "type": "check_in" | "check_out" | "transfer" | "adjustment",
        "product_id": str,
        "quantity": int (> 0; for adjustment the target on-hand, >= 0),
        "source_location_id": str (check_out, transfer),
        "destination_location_id": str (check_in, transfer, adjustment),
        "batch_number": str (optional),
        "expiration_date": "YYYY-MM-DD" (optional),
        "notes": str (optional)
    }

    Returns:
        201: Transaction recorded
        400: Invalid request
        404: Product, location or source stock not found
        409: Insufficient stock
    """
    data = request.get_json(silent=True) or {}
    missing = [k for k in ("type", "product_id", "quantity") if data.get(k) is None]
    if missing:
        return {"error": f"Missing required fields: {', '.join(missing)}"}, 400

    try:
        txn = inventory_service.record_transaction(
            data["type"],
            data["product_id"],
            data["quantity"],
            source_location_id=data.get("source_location_id"),
            destination_location_id=data.get("destination_location_id"),
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
        current_app.logger.exception("Failed to record transaction")
        return {"error": "Internal server error"}, 500

    if txn is None:
        return {"transaction": None, "unchanged": True}
    return {"transaction": txn.to_dict()}, 201


@inventory_bp.get("/transactions/<transaction_id>")
@require_auth
def get_transaction_route(transaction_id: str):
    try:
        txn = inventory_service.get_transaction(transaction_id)
    except InventoryAppError as e:
        return {"error": str(e)}, e.status_code
    return {"transaction": txn.to_dict()}
