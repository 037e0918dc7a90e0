# Overview: Flask API routes for reports; parses input and returns JSON responses.

from flask import Blueprint, request, g

from ..extensions import db
from ..errors import InventoryAppError
from ..services import reporting_service
from ..decorators import require_auth, require_role, client_ip


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/valuation")
@require_auth
def valuation_report():
    return reporting_service.inventory_valuation(
        location_id=request.args.get("location_id"),
        category_id=request.args.get("category_id"),
    )


@reports_bp.get("/transactions")
@require_auth
def transaction_history_report():
    """
    Query params: start, end (ISO-8601), type, product_id, location_id,
    limit (default 100), offset.
    """
    try:
        return reporting_service.transaction_history(
            start=request.args.get("start"),
            end=request.args.get("end"),
            type_=request.args.get("type"),
            product_id=request.args.get("product_id"),
            location_id=request.args.get("location_id"),
            limit=request.args.get("limit", 100, type=int),
            offset=request.args.get("offset", 0, type=int),
        )
    except InventoryAppError as e:
        return {"error": str(e)}, e.status_code


@reports_bp.get("/low-stock")
@require_auth
def low_stock_report():
    return reporting_service.low_stock(
        location_id=request.args.get("location_id"),
        category_id=request.args.get("category_id"),
    )


@reports_bp.get("/saved")
@require_auth
def list_saved_reports():
    try:
        reports = reporting_service.list_reports(
            report_type=request.args.get("type"),
            created_by=request.args.get("created_by"),
        )
    except InventoryAppError as e:
        return {"error": str(e)}, e.status_code
    return {"items": [r.to_dict() for r in reports], "count": len(reports)}


@reports_bp.post("/saved")
@require_auth
@require_role("manager")
def save_report_route():
    """
    Request body:
    {
        "name": str,
        "report_type": "inventory" | "valuation" | "transaction" | "low_stock",
        "parameters": {...} (optional),
        "schedule": str (optional)
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        report = reporting_service.save_report(
            name=data.get("name"),
            report_type=data.get("report_type") or data.get("type"),
            parameters=data.get("parameters"),
            schedule=data.get("schedule"),
            actor_id=g.current_user.id,
            ip_address=client_ip(),
        )
    except InventoryAppError as e:
        db.session.rollback()
        return {"error": str(e)}, e.status_code

    return {"report": report.to_dict()}, 201


@reports_bp.get("/saved/<report_id>")
@require_auth
def get_saved_report(report_id: str):
    try:
        report = reporting_service.get_report(report_id)
    except InventoryAppError as e:
        return {"error": str(e)}, e.status_code
    return {"report": report.to_dict()}


@reports_bp.delete("/saved/<report_id>")
@require_auth
@require_role("manager")
def delete_saved_report(report_id: str):
    try:
        report = reporting_service.deactivate_report(
            report_id, actor_id=g.current_user.id, ip_address=client_ip()
        )
    except InventoryAppError as e:
        db.session.rollback()
        return {"error": str(e)}, e.status_code
    return {"report": report.to_dict(), "deleted": True}


@reports_bp.post("/saved/<report_id>/run")
@require_auth
def run_saved_report(report_id: str):
    try:
        return reporting_service.run_report(
            report_id, actor_id=g.current_user.id, ip_address=client_ip()
        )
    except InventoryAppError as e:
        db.session.rollback()
        return {"error": str(e)}, e.status_code
