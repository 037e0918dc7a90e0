# Overview: Inventory & transaction engine; ledger rows and cached per-location quantities.

"""
Inventory & Transaction Engine

WHY: The transaction ledger is the system of record; the inventory table is
a cache of it. Every movement writes one ledger row and mutates the affected
counters in the same DB transaction, so the two never disagree.

SIGN CONVENTION (all types, including adjustments and reversals):
- destination_location_id: +quantity
- source_location_id:      -quantity

Public functions commit (via run_in_transaction). The *_inner functions only
flush, so the session engine can compose several of them into one atomic unit.
"""
from __future__ import annotations

from datetime import date
from typing import Optional

from sqlalchemy import or_

from ..extensions import db
from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..models import (
    InventoryRecord,
    InventoryTransaction,
    Location,
    Product,
    TransactionType,
)
from ..time_utils import format_cents, to_iso, utcnow
from ..validation import require_non_negative_int, require_positive_int
from . import audit_service, query_executor
from .concurrency import lock_for_update, run_in_transaction
from .id_service import generate_id, INVENTORY_PREFIX, TRANSACTION_PREFIX


# Quantity movements. An adjustment passed to record_transaction instead
# sets an absolute target through set_quantity.
MOVEMENT_TYPES = (
    TransactionType.CHECK_IN,
    TransactionType.CHECK_OUT,
    TransactionType.TRANSFER,
)

MAX_PAGE_SIZE = 500


# =============================================================================
# LOCKED COUNTER ACCESS
# =============================================================================

def _get_product(product_id: str) -> Product:
    product = db.session.query(Product).filter_by(id=product_id).first()
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    if not product.is_active:
        raise ValidationError(f"Product {product_id} is inactive")
    return product


def _get_location(location_id: str) -> Location:
    location = db.session.query(Location).filter_by(id=location_id).first()
    if location is None:
        raise NotFoundError(f"Location {location_id} not found")
    return location


def _get_record_for_update(product_id: str, location_id: str) -> Optional[InventoryRecord]:
    """SELECT ... FOR UPDATE on one (product, location) counter."""
    return lock_for_update(
        db.session.query(InventoryRecord).filter_by(product_id=product_id, location_id=location_id)
    ).first()


def _apply_delta(
    product_id: str,
    location_id: str,
    delta: int,
    *,
    record: Optional[InventoryRecord] = None,
    counted: bool = False,
) -> InventoryRecord:
    """
    Mutate one counter by delta, creating the row on first movement in.

    Raises InsufficientStockError if the result would be negative; the
    caller has normally checked already, this is the last guard before
    the CHECK constraint.
    """
    if record is None:
        record = _get_record_for_update(product_id, location_id)

    current = record.quantity if record is not None else 0
    if current + delta < 0:
        raise InsufficientStockError(product_id, location_id, current, -delta)

    if record is None:
        record = InventoryRecord(
            id=generate_id(INVENTORY_PREFIX),
            product_id=product_id,
            location_id=location_id,
            quantity=0,
        )
        db.session.add(record)

    record.quantity = current + delta
    if counted:
        record.last_counted = utcnow()
    return record


def _append_ledger(
    *,
    type_: TransactionType,
    product_id: str,
    quantity: int,
    source_location_id: Optional[str] = None,
    destination_location_id: Optional[str] = None,
    batch_number: Optional[str] = None,
    expiration_date: Optional[date] = None,
    notes: Optional[str] = None,
    actor_id: Optional[str] = None,
    session_id: Optional[str] = None,
    reverses_transaction_id: Optional[str] = None,
) -> InventoryTransaction:
    txn = InventoryTransaction(
        id=generate_id(TRANSACTION_PREFIX),
        type=type_.value,
        product_id=product_id,
        source_location_id=source_location_id,
        destination_location_id=destination_location_id,
        quantity=quantity,
        batch_number=batch_number,
        expiration_date=expiration_date,
        notes=notes,
        created_by=actor_id,
        session_id=session_id,
        reverses_transaction_id=reverses_transaction_id,
        created_at=utcnow(),
    )
    db.session.add(txn)
    return txn


# =============================================================================
# MOVEMENTS
# =============================================================================

def _record_transaction_inner(
    *,
    type_: str,
    product_id: str,
    quantity,
    source_location_id: Optional[str] = None,
    destination_location_id: Optional[str] = None,
    batch_number: Optional[str] = None,
    expiration_date: Optional[date] = None,
    notes: Optional[str] = None,
    actor_id: Optional[str] = None,
    session_id: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> Optional[InventoryTransaction]:
    """
    Validate and apply one movement. Flushes, never commits.

    All validation happens before the first write, so a rejected movement
    leaves nothing behind even if the caller forgets to roll back.

    For type adjustment, quantity is the target on-hand at the one given
    location; returns None when the target equals the current quantity.
    """
    txn_type = TransactionType.parse(type_, "type")
    if txn_type == TransactionType.ADJUSTMENT:
        if source_location_id and destination_location_id and source_location_id != destination_location_id:
            raise ValidationError("adjustment applies to a single location")
        location_id = destination_location_id or source_location_id
        if not location_id:
            raise ValidationError("adjustment requires destination_location_id")
        _, txn = _set_quantity_core(
            product_id=product_id,
            location_id=location_id,
            target_quantity=quantity,
            actor_id=actor_id,
            session_id=session_id,
            notes=notes,
            ip_address=ip_address,
        )
        return txn

    qty = require_positive_int(quantity, "quantity")

    _get_product(product_id)

    if txn_type in (TransactionType.CHECK_OUT, TransactionType.TRANSFER) and not source_location_id:
        raise ValidationError(f"{txn_type.value} requires source_location_id")
    if txn_type in (TransactionType.CHECK_IN, TransactionType.TRANSFER) and not destination_location_id:
        raise ValidationError(f"{txn_type.value} requires destination_location_id")
    if txn_type == TransactionType.CHECK_IN:
        source_location_id = None
    if txn_type == TransactionType.CHECK_OUT:
        destination_location_id = None
    if txn_type == TransactionType.TRANSFER and source_location_id == destination_location_id:
        raise ValidationError("Cannot transfer to the same location")

    source_record = None
    if source_location_id:
        _get_location(source_location_id)
        source_record = _get_record_for_update(product_id, source_location_id)
        if source_record is None:
            raise NotFoundError(
                f"No inventory for product {product_id} at location {source_location_id}"
            )
        if source_record.quantity < qty:
            raise InsufficientStockError(product_id, source_location_id, source_record.quantity, qty)

    destination_record = None
    if destination_location_id:
        _get_location(destination_location_id)
        destination_record = _get_record_for_update(product_id, destination_location_id)

    # Validation done; writes start here
    txn = _append_ledger(
        type_=txn_type,
        product_id=product_id,
        quantity=qty,
        source_location_id=source_location_id,
        destination_location_id=destination_location_id,
        batch_number=batch_number or None,
        expiration_date=expiration_date,
        notes=notes,
        actor_id=actor_id,
        session_id=session_id,
    )

    if source_location_id:
        _apply_delta(product_id, source_location_id, -qty, record=source_record)
    if destination_location_id:
        _apply_delta(product_id, destination_location_id, qty, record=destination_record)

    db.session.flush()

    audit_service.record(
        actor_id=actor_id,
        action="create",
        entity_type="inventory_transaction",
        entity_id=txn.id,
        details={
            "type": txn_type.value,
            "product_id": product_id,
            "quantity": qty,
            "source_location_id": source_location_id,
            "destination_location_id": destination_location_id,
            "session_id": session_id,
        },
        ip_address=ip_address,
    )
    return txn


def record_transaction(
    type_: str,
    product_id: str,
    quantity,
    *,
    source_location_id: Optional[str] = None,
    destination_location_id: Optional[str] = None,
    batch_number: Optional[str] = None,
    expiration_date: Optional[date] = None,
    notes: Optional[str] = None,
    actor_id: Optional[str] = None,
    session_id: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> Optional[InventoryTransaction]:
    """
    Record one stock movement and update the affected counters atomically.

    Args:
        type_: check_in | check_out | transfer | adjustment
        product_id: Active product to move
        quantity: Positive integer; for adjustment, the non-negative target on-hand
        source_location_id: Required for check_out and transfer
        destination_location_id: Required for check_in, transfer and adjustment
            (adjustment also accepts the location as source_location_id)

    Returns:
        InventoryTransaction: The committed ledger row, or None for an
        adjustment whose target equals the current quantity

    Raises:
        ValidationError: bad type/quantity, missing or identical locations
        NotFoundError: product, location, or source inventory record missing
        InsufficientStockError: source holds less than quantity
    """
    def _op():
        return _record_transaction_inner(
            type_=type_,
            product_id=product_id,
            quantity=quantity,
            source_location_id=source_location_id,
            destination_location_id=destination_location_id,
            batch_number=batch_number,
            expiration_date=expiration_date,
            notes=notes,
            actor_id=actor_id,
            session_id=session_id,
            ip_address=ip_address,
        )

    return run_in_transaction(_op)


def _set_quantity_core(
    *,
    product_id: str,
    location_id: str,
    target_quantity,
    actor_id: Optional[str] = None,
    session_id: Optional[str] = None,
    notes: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> tuple[InventoryRecord, Optional[InventoryTransaction]]:
    """Flush-only body of set_quantity; also returns the adjustment row (None for no change)."""
    target = require_non_negative_int(target_quantity, "quantity")
    _get_product(product_id)
    _get_location(location_id)

    record = _get_record_for_update(product_id, location_id)
    is_new = record is None
    current = 0 if is_new else record.quantity
    delta = target - current

    record = _apply_delta(product_id, location_id, delta, record=record, counted=True)

    txn = None
    if delta != 0:
        if notes is None:
            notes = (
                "Initial inventory setup"
                if is_new
                else f"Manual quantity adjustment from {current} to {target}"
            )
        txn = _append_ledger(
            type_=TransactionType.ADJUSTMENT,
            product_id=product_id,
            quantity=abs(delta),
            destination_location_id=location_id if delta > 0 else None,
            source_location_id=location_id if delta < 0 else None,
            notes=notes,
            actor_id=actor_id,
            session_id=session_id,
        )

    db.session.flush()

    audit_service.record(
        actor_id=actor_id,
        action="set_quantity",
        entity_type="inventory",
        entity_id=record.id,
        details={
            "product_id": product_id,
            "location_id": location_id,
            "previous_quantity": current,
            "new_quantity": target,
            "transaction_id": txn.id if txn else None,
            "session_id": session_id,
        },
        ip_address=ip_address,
    )
    return record, txn


def _set_quantity_inner(**kwargs) -> InventoryRecord:
    record, _ = _set_quantity_core(**kwargs)
    return record


def set_quantity(
    product_id: str,
    location_id: str,
    target_quantity,
    *,
    actor_id: Optional[str] = None,
    session_id: Optional[str] = None,
    notes: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> InventoryRecord:
    """
    Set the on-hand quantity of a (product, location) pair to an absolute value.

    The difference against the current quantity (0 when no record exists) is
    written to the ledger as one adjustment: destination set for increases,
    source set for decreases. A zero difference writes no ledger row but
    still stamps last_counted.

    Raises:
        ValidationError: target is not a non-negative integer, product inactive
        NotFoundError: product or location missing
    """
    def _op():
        return _set_quantity_inner(
            product_id=product_id,
            location_id=location_id,
            target_quantity=target_quantity,
            actor_id=actor_id,
            session_id=session_id,
            notes=notes,
            ip_address=ip_address,
        )

    return run_in_transaction(_op)


def _reverse_transaction_inner(
    original: InventoryTransaction,
    *,
    actor_id: Optional[str] = None,
    session_id: Optional[str] = None,
) -> InventoryTransaction:
    """
    Append a compensating adjustment for original (source and destination
    swapped, same quantity). Flushes, never commits.

    Raises InsufficientStockError if the location that received the stock
    no longer holds enough of it.
    """
    # Compensation removes from the original destination first
    new_source = original.destination_location_id
    new_destination = original.source_location_id

    source_record = None
    if new_source:
        source_record = _get_record_for_update(original.product_id, new_source)
        available = source_record.quantity if source_record is not None else 0
        if available < original.quantity:
            raise InsufficientStockError(original.product_id, new_source, available, original.quantity)

    txn = _append_ledger(
        type_=TransactionType.ADJUSTMENT,
        product_id=original.product_id,
        quantity=original.quantity,
        source_location_id=new_source,
        destination_location_id=new_destination,
        notes=f"Reversal of {original.id}",
        actor_id=actor_id,
        session_id=session_id,
        reverses_transaction_id=original.id,
    )

    if new_source:
        _apply_delta(original.product_id, new_source, -original.quantity, record=source_record)
    if new_destination:
        _apply_delta(original.product_id, new_destination, original.quantity)

    db.session.flush()
    return txn


# =============================================================================
# READS
# =============================================================================

def get_record(product_id: str, location_id: str) -> InventoryRecord:
    record = (
        db.session.query(InventoryRecord)
        .filter_by(product_id=product_id, location_id=location_id)
        .first()
    )
    if record is None:
        raise NotFoundError(f"No inventory for product {product_id} at location {location_id}")
    return record


def get_quantity(product_id: str, location_id: str) -> int:
    """On-hand quantity for one pair; 0 when the pair has never moved."""
    record = (
        db.session.query(InventoryRecord)
        .filter_by(product_id=product_id, location_id=location_id)
        .first()
    )
    return record.quantity if record is not None else 0


def get_product_levels(product_id: str) -> list[dict]:
    """Per-location quantities for one product."""
    if db.session.query(Product.id).filter_by(id=product_id).first() is None:
        raise NotFoundError(f"Product {product_id} not found")
    rows = query_executor.query_many(
        """
        SELECT i.id, i.product_id, i.location_id, l.name AS location_name,
               l.type AS location_type, i.quantity, i.last_counted, i.updated_at
        FROM inventory i
        JOIN locations l ON l.id = i.location_id
        WHERE i.product_id = :product_id
        ORDER BY l.name
        """,
        {"product_id": product_id},
    )
    for row in rows:
        row["last_counted"] = to_iso(row["last_counted"])
        row["updated_at"] = to_iso(row["updated_at"])
    return rows


def _category_clause(alias: str = "p") -> str:
    return f"({alias}.category_id = :category_id OR c.parent_id = :category_id)"


def get_levels(
    *,
    location_id: Optional[str] = None,
    category_id: Optional[str] = None,
    search: Optional[str] = None,
    low_stock_only: bool = False,
    limit: int = 100,
    offset: int = 0,
) -> list[dict]:
    """
    Stock levels joined with product, category and location names.

    Only active products. search matches name, barcode or description.
    category_id also matches products in its direct subcategories.
    """
    where = ["p.is_active = :active"]
    params: dict = {"active": True}

    if location_id:
        where.append("i.location_id = :location_id")
        params["location_id"] = location_id
    if category_id:
        where.append(_category_clause())
        params["category_id"] = category_id
    if search:
        where.append("(p.name LIKE :search OR p.barcode LIKE :search OR p.description LIKE :search)")
        params["search"] = f"%{search.strip()}%"
    if low_stock_only:
        where.append("i.quantity <= p.minimum_stock")

    params["limit"] = max(1, min(int(limit), MAX_PAGE_SIZE))
    params["offset"] = max(0, int(offset))

    rows = query_executor.query_many(
        f"""
        SELECT i.id, i.product_id, p.name AS product_name, p.barcode,
               p.unit_price_cents, p.unit_cost_cents, p.minimum_stock,
               p.category_id, c.name AS category_name,
               i.location_id, l.name AS location_name,
               i.quantity, i.last_counted, i.updated_at
        FROM inventory i
        JOIN products p ON p.id = i.product_id
        JOIN locations l ON l.id = i.location_id
        LEFT JOIN categories c ON c.id = p.category_id
        WHERE {" AND ".join(where)}
        ORDER BY p.name, l.name
        LIMIT :limit OFFSET :offset
        """,
        params,
    )
    for row in rows:
        row["unit_price"] = format_cents(row["unit_price_cents"])
        row["last_counted"] = to_iso(row["last_counted"])
        row["updated_at"] = to_iso(row["updated_at"])
        row["is_low_stock"] = row["quantity"] <= row["minimum_stock"]
    return rows


def get_summary() -> dict:
    """Totals across all active products: quantity, retail value, per-category split, low-stock count."""
    totals = query_executor.query_one(
        """
        SELECT COALESCE(SUM(i.quantity), 0) AS total_quantity,
               COALESCE(SUM(i.quantity * p.unit_price_cents), 0) AS total_value_cents
        FROM inventory i
        JOIN products p ON p.id = i.product_id
        WHERE p.is_active = :active
        """,
        {"active": True},
    )
    categories = query_executor.query_many(
        """
        SELECT c.id AS category_id, c.name AS category_name,
               COALESCE(SUM(i.quantity), 0) AS quantity,
               COALESCE(SUM(i.quantity * p.unit_price_cents), 0) AS value_cents
        FROM inventory i
        JOIN products p ON p.id = i.product_id
        LEFT JOIN categories c ON c.id = p.category_id
        WHERE p.is_active = :active
        GROUP BY c.id, c.name
        ORDER BY value_cents DESC
        """,
        {"active": True},
    )
    low = query_executor.query_one(
        """
        SELECT COUNT(*) AS n
        FROM inventory i
        JOIN products p ON p.id = i.product_id
        WHERE p.is_active = :active AND i.quantity <= p.minimum_stock
        """,
        {"active": True},
    )

    for row in categories:
        row["quantity"] = int(row["quantity"])
        row["value_cents"] = int(row["value_cents"])
        row["value"] = format_cents(row["value_cents"])

    total_value_cents = int(totals["total_value_cents"])
    return {
        "total_quantity": int(totals["total_quantity"]),
        "total_value_cents": total_value_cents,
        "total_value": format_cents(total_value_cents),
        "categories": categories,
        "low_stock_count": int(low["n"]),
    }


def get_transaction(transaction_id: str) -> InventoryTransaction:
    txn = db.session.query(InventoryTransaction).filter_by(id=transaction_id).first()
    if txn is None:
        raise NotFoundError(f"Transaction {transaction_id} not found")
    return txn


def list_transactions(
    *,
    product_id: Optional[str] = None,
    location_id: Optional[str] = None,
    type_: Optional[str] = None,
    session_id: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
) -> list[InventoryTransaction]:
    """Newest first. location_id matches either side of the movement."""
    q = db.session.query(InventoryTransaction)
    if product_id:
        q = q.filter(InventoryTransaction.product_id == product_id)
    if location_id:
        q = q.filter(
            or_(
                InventoryTransaction.source_location_id == location_id,
                InventoryTransaction.destination_location_id == location_id,
            )
        )
    if type_:
        q = q.filter(InventoryTransaction.type == TransactionType.parse(type_, "type").value)
    if session_id:
        q = q.filter(InventoryTransaction.session_id == session_id)
    return (
        q.order_by(InventoryTransaction.created_at.desc(), InventoryTransaction.id.desc())
        .limit(max(1, min(int(limit), MAX_PAGE_SIZE)))
        .offset(max(0, int(offset)))
        .all()
    )


def reconcile_ledger() -> list[dict]:
    """
    Compare every cached counter with its signed ledger sum.

    Returns one row per (product, location) pair where they disagree,
    including pairs with ledger entries but no counter. Empty list = healthy.
    """
    ledger_rows = query_executor.query_many(
        """
        SELECT product_id, location_id, SUM(delta) AS ledger_quantity
        FROM (
            SELECT product_id, destination_location_id AS location_id, quantity AS delta
            FROM inventory_transactions
            WHERE destination_location_id IS NOT NULL
            UNION ALL
            SELECT product_id, source_location_id AS location_id, -quantity AS delta
            FROM inventory_transactions
            WHERE source_location_id IS NOT NULL
        ) movements
        GROUP BY product_id, location_id
        """
    )
    ledger = {(r["product_id"], r["location_id"]): int(r["ledger_quantity"]) for r in ledger_rows}

    cached = {
        (r.product_id, r.location_id): r.quantity
        for r in db.session.query(InventoryRecord).all()
    }

    mismatches = []
    for key in sorted(set(ledger) | set(cached)):
        expected = ledger.get(key, 0)
        actual = cached.get(key, 0)
        if expected != actual:
            mismatches.append({
                "product_id": key[0],
                "location_id": key[1],
                "cached_quantity": actual,
                "ledger_quantity": expected,
            })
    return mismatches
