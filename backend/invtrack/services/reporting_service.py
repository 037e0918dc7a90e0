# Overview: Service-layer operations for reporting; valuation, movement history, low stock and saved reports.

from __future__ import annotations

import json
from datetime import datetime, timedelta
from typing import Any, Optional

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import Report, ReportType, TransactionType
from ..time_utils import format_cents, parse_iso_datetime, to_iso, to_sql_timestamp, to_utc_z, utcnow
from . import audit_service, inventory_service, query_executor
from ..validation import coerce_bool, coerce_int
from .id_service import generate_id, REPORT_PREFIX

MAX_PAGE_SIZE = 500


def _parse_range(start: str | None, end: str | None) -> tuple[datetime | None, datetime | None]:
    """
    Parse report range bounds. A date-only end ("2024-03-31") covers that
    whole day.
    """
    try:
        start_dt = parse_iso_datetime(start) if start else None
        end_dt = parse_iso_datetime(end) if end else None
    except ValueError:
        raise ValidationError("start and end must be ISO-8601 dates or datetimes")
    if end_dt is not None and len(end.strip()) == 10:
        end_dt = end_dt + timedelta(days=1) - timedelta(microseconds=1)
    if start_dt and end_dt and start_dt > end_dt:
        raise ValidationError("start must be before end")
    return start_dt, end_dt


def _envelope(filters: dict, **payload: Any) -> dict:
    return {
        "generated_at": to_utc_z(utcnow()),
        "filters": {k: v for k, v in filters.items() if v is not None},
        **payload,
    }


def _scope_clauses(location_id: str | None, category_id: str | None, params: dict) -> list[str]:
    where = ["p.is_active = :active"]
    params["active"] = True
    if location_id:
        where.append("i.location_id = :location_id")
        params["location_id"] = location_id
    if category_id:
        where.append("(p.category_id = :category_id OR c.parent_id = :category_id)")
        params["category_id"] = category_id
    return where


def inventory_valuation(
    *,
    location_id: Optional[str] = None,
    category_id: Optional[str] = None,
) -> dict:
    """
    Stock value per category at retail price and at cost.

    Only active products count. category_id also covers its subcategories.
    All money figures are integer cents (quantity * unit price), each with a
    formatted companion.
    """
    params: dict = {}
    where = _scope_clauses(location_id, category_id, params)

    rows = query_executor.query_many(
        f"""
        SELECT c.id AS category_id,
               COALESCE(c.name, 'Uncategorized') AS category_name,
               COUNT(DISTINCT p.id) AS product_count,
               COALESCE(SUM(i.quantity), 0) AS total_quantity,
               COALESCE(SUM(i.quantity * p.unit_price_cents), 0) AS total_value_cents,
               COALESCE(SUM(i.quantity * p.unit_cost_cents), 0) AS total_cost_cents
        FROM inventory i
        JOIN products p ON p.id = i.product_id
        LEFT JOIN categories c ON c.id = p.category_id
        WHERE {" AND ".join(where)}
        GROUP BY c.id, c.name
        ORDER BY total_value_cents DESC, category_name
        """,
        params,
    )

    summary = {
        "total_quantity": 0,
        "total_value_cents": 0,
        "total_cost_cents": 0,
        "product_count": 0,
    }
    for row in rows:
        for key in ("product_count", "total_quantity", "total_value_cents", "total_cost_cents"):
            row[key] = int(row[key])
            summary[key] += row[key]
        row["total_profit_cents"] = row["total_value_cents"] - row["total_cost_cents"]
        row["total_value"] = format_cents(row["total_value_cents"])
        row["total_cost"] = format_cents(row["total_cost_cents"])
        row["total_profit"] = format_cents(row["total_profit_cents"])

    summary["total_profit_cents"] = summary["total_value_cents"] - summary["total_cost_cents"]
    summary["total_value"] = format_cents(summary["total_value_cents"])
    summary["total_cost"] = format_cents(summary["total_cost_cents"])
    summary["total_profit"] = format_cents(summary["total_profit_cents"])

    return _envelope(
        {"location_id": location_id, "category_id": category_id},
        categories=rows,
        summary=summary,
    )


def transaction_history(
    *,
    start: Optional[str] = None,
    end: Optional[str] = None,
    type_: Optional[str] = None,
    product_id: Optional[str] = None,
    location_id: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
) -> dict:
    """
    Ledger rows matching the filters, newest first, with the total match count.

    location_id matches either side of a movement.
    """
    start_dt, end_dt = _parse_range(start, end)
    type_value = TransactionType.parse(type_, "type").value if type_ else None

    where = ["1 = 1"]
    params: dict = {}
    if start_dt:
        where.append("t.created_at >= :start")
        params["start"] = to_sql_timestamp(start_dt)
    if end_dt:
        where.append("t.created_at <= :end")
        params["end"] = to_sql_timestamp(end_dt)
    if type_value:
        where.append("t.type = :type")
        params["type"] = type_value
    if product_id:
        where.append("t.product_id = :product_id")
        params["product_id"] = product_id
    if location_id:
        where.append("(t.source_location_id = :location_id OR t.destination_location_id = :location_id)")
        params["location_id"] = location_id

    where_sql = " AND ".join(where)
    limit = max(1, min(coerce_int(limit, "limit"), MAX_PAGE_SIZE))
    offset = max(0, coerce_int(offset, "offset"))

    total = query_executor.query_one(
        f"SELECT COUNT(*) AS n FROM inventory_transactions t WHERE {where_sql}",
        params,
    )
    rows = query_executor.query_many(
        f"""
        SELECT t.id, t.type, t.product_id, p.name AS product_name, p.barcode,
               t.source_location_id, sl.name AS source_location_name,
               t.destination_location_id, dl.name AS destination_location_name,
               t.quantity, t.batch_number, t.expiration_date, t.notes,
               t.session_id, t.reverses_transaction_id,
               t.created_by, u.username AS created_by_username, t.created_at
        FROM inventory_transactions t
        JOIN products p ON p.id = t.product_id
        LEFT JOIN locations sl ON sl.id = t.source_location_id
        LEFT JOIN locations dl ON dl.id = t.destination_location_id
        LEFT JOIN users u ON u.id = t.created_by
        WHERE {where_sql}
        ORDER BY t.created_at DESC, t.id DESC
        LIMIT :limit OFFSET :offset
        """,
        {**params, "limit": limit, "offset": offset},
    )
    for row in rows:
        row["created_at"] = to_iso(row["created_at"])
        row["expiration_date"] = to_iso(row["expiration_date"])

    return _envelope(
        {
            "start": start,
            "end": end,
            "type": type_value,
            "product_id": product_id,
            "location_id": location_id,
        },
        transactions=rows,
        total=int(total["n"]),
        limit=limit,
        offset=offset,
    )


def low_stock(
    *,
    location_id: Optional[str] = None,
    category_id: Optional[str] = None,
) -> dict:
    """
    Active (product, location) pairs at or below the product's minimum_stock.

    Ordered by how far below the minimum they are (worst first), then
    product name.
    """
    params: dict = {}
    where = _scope_clauses(location_id, category_id, params)
    where.append("i.quantity <= p.minimum_stock")

    rows = query_executor.query_many(
        f"""
        SELECT i.product_id, p.name AS product_name, p.barcode,
               p.category_id, c.name AS category_name,
               i.location_id, l.name AS location_name,
               i.quantity, p.minimum_stock,
               p.minimum_stock - i.quantity AS shortfall
        FROM inventory i
        JOIN products p ON p.id = i.product_id
        JOIN locations l ON l.id = i.location_id
        LEFT JOIN categories c ON c.id = p.category_id
        WHERE {" AND ".join(where)}
        ORDER BY i.quantity - p.minimum_stock ASC, p.name ASC
        """,
        params,
    )

    return _envelope(
        {"location_id": location_id, "category_id": category_id},
        items=rows,
        count=len(rows),
    )


def inventory_snapshot(
    *,
    location_id: Optional[str] = None,
    category_id: Optional[str] = None,
    search: Optional[str] = None,
    low_stock_only: bool = False,
) -> dict:
    """Current levels plus the overall summary (saved 'inventory' reports)."""
    levels = inventory_service.get_levels(
        location_id=location_id,
        category_id=category_id,
        search=search,
        low_stock_only=low_stock_only,
        limit=MAX_PAGE_SIZE,
    )
    return _envelope(
        {
            "location_id": location_id,
            "category_id": category_id,
            "search": search,
            "low_stock_only": low_stock_only or None,
        },
        items=levels,
        summary=inventory_service.get_summary(),
    )


# =============================================================================
# SAVED REPORTS
# =============================================================================

def _pick(params: dict, *keys: str) -> dict:
    return {k: params[k] for k in keys if params.get(k) is not None}


_RUNNERS = {
    ReportType.INVENTORY: lambda p: inventory_snapshot(
        **_pick(p, "location_id", "category_id", "search", "low_stock_only")
    ),
    ReportType.VALUATION: lambda p: inventory_valuation(**_pick(p, "location_id", "category_id")),
    ReportType.TRANSACTION: lambda p: transaction_history(
        **{
            **_pick(p, "start", "end", "product_id", "location_id", "limit", "offset"),
            **({"type_": p["type"]} if p.get("type") else {}),
        }
    ),
    ReportType.LOW_STOCK: lambda p: low_stock(**_pick(p, "location_id", "category_id")),
}


def _clean_text(value: Any, key: str) -> str | None:
    if isinstance(value, (dict, list, bool)):
        raise ValidationError(f"parameters.{key} must be a string")
    text = str(value).strip()
    return text or None


def _clean_limit(value: Any, key: str) -> int:
    n = coerce_int(value, f"parameters.{key}")
    if not 1 <= n <= MAX_PAGE_SIZE:
        raise ValidationError(f"parameters.{key} must be between 1 and {MAX_PAGE_SIZE}")
    return n


def _clean_offset(value: Any, key: str) -> int:
    n = coerce_int(value, f"parameters.{key}")
    if n < 0:
        raise ValidationError(f"parameters.{key} must be >= 0")
    return n


def _clean_type(value: Any, key: str) -> str:
    return TransactionType.parse(value, f"parameters.{key}").value


# Accepted keys per report type and the coercion applied to each value
_PARAMETER_RULES = {
    ReportType.INVENTORY: {
        "location_id": _clean_text,
        "category_id": _clean_text,
        "search": _clean_text,
        "low_stock_only": lambda v, k: coerce_bool(v, f"parameters.{k}"),
    },
    ReportType.VALUATION: {"location_id": _clean_text, "category_id": _clean_text},
    ReportType.TRANSACTION: {
        "start": _clean_text,
        "end": _clean_text,
        "type": _clean_type,
        "product_id": _clean_text,
        "location_id": _clean_text,
        "limit": _clean_limit,
        "offset": _clean_offset,
    },
    ReportType.LOW_STOCK: {"location_id": _clean_text, "category_id": _clean_text},
}


def clean_parameters(rtype: ReportType, parameters: dict | None) -> dict:
    """
    Normalize saved-report parameters for rtype.

    Unknown keys are rejected, values are coerced to what the runner takes
    (ints, bools, canonical type names) and nulls are dropped. Transaction
    ranges are checked here but stored as given.
    """
    if parameters is None:
        return {}
    if not isinstance(parameters, dict):
        raise ValidationError("parameters must be an object")

    rules = _PARAMETER_RULES[rtype]
    unknown = sorted(k for k in parameters if k not in rules)
    if unknown:
        raise ValidationError(f"Unknown parameter for {rtype.value} report: {unknown[0]}")

    cleaned = {}
    for key, raw in parameters.items():
        if raw is None:
            continue
        value = rules[key](raw, key)
        if value is not None:
            cleaned[key] = value

    if rtype == ReportType.TRANSACTION:
        _parse_range(cleaned.get("start"), cleaned.get("end"))
    return cleaned


def save_report(
    *,
    name: str,
    report_type: str,
    parameters: dict | None = None,
    schedule: str | None = None,
    actor_id: str | None = None,
    ip_address: str | None = None,
) -> Report:
    """
    Store a report definition. The type and parameters are checked here so
    that run_report never meets an unknown type or an unusable value.
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    rtype = ReportType.parse(report_type, "report_type")
    cleaned = clean_parameters(rtype, parameters)

    report = Report(
        id=generate_id(REPORT_PREFIX),
        name=name,
        report_type=rtype.value,
        parameters=json.dumps(cleaned, sort_keys=True),
        schedule=schedule,
        created_by=actor_id,
        is_active=True,
    )
    db.session.add(report)
    db.session.flush()

    audit_service.record(
        actor_id=actor_id,
        action="create",
        entity_type="report",
        entity_id=report.id,
        details={"name": name, "report_type": rtype.value},
        ip_address=ip_address,
    )

    db.session.commit()
    return report


def get_report(report_id: str) -> Report:
    report = db.session.query(Report).filter_by(id=report_id).first()
    if report is None:
        raise NotFoundError(f"Report {report_id} not found")
    return report


def list_reports(
    *,
    report_type: str | None = None,
    created_by: str | None = None,
    include_inactive: bool = False,
) -> list[Report]:
    q = db.session.query(Report)
    if not include_inactive:
        q = q.filter(Report.is_active.is_(True))
    if report_type:
        q = q.filter(Report.report_type == ReportType.parse(report_type, "report_type").value)
    if created_by:
        q = q.filter(Report.created_by == created_by)
    return q.order_by(Report.created_at.desc(), Report.name.asc()).all()


def deactivate_report(
    report_id: str,
    *,
    actor_id: str | None = None,
    ip_address: str | None = None,
) -> Report:
    report = get_report(report_id)
    if report.is_active:
        report.is_active = False
        audit_service.record(
            actor_id=actor_id,
            action="delete",
            entity_type="report",
            entity_id=report.id,
            ip_address=ip_address,
        )
    db.session.commit()
    return report


def run_report(
    report_id: str,
    *,
    actor_id: str | None = None,
    ip_address: str | None = None,
) -> dict:
    """Compute a saved report from its stored parameters and stamp last_run."""
    report = get_report(report_id)
    if not report.is_active:
        raise NotFoundError(f"Report {report_id} not found")

    rtype = ReportType(report.report_type)
    result = _RUNNERS[rtype](clean_parameters(rtype, report.parameter_dict))

    report.last_run = utcnow()
    audit_service.record(
        actor_id=actor_id,
        action="run",
        entity_type="report",
        entity_id=report.id,
        ip_address=ip_address,
    )
    db.session.commit()

    return {"report": report.to_dict(), "result": result}
