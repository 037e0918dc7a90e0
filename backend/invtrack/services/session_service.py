# backend/invtrack/services/session_service.py
"""
Session engine: batches of inventory movements at one location.

WHY: Check-ins from a delivery, check-outs to an outlet and physical counts
are entered as a batch that is either kept (completed) or undone
(cancelled) as a whole.

LIFECYCLE:
1. IN_PROGRESS: movements are being recorded
2. COMPLETED: terminal, movements stand
3. CANCELLED: terminal, every movement has a compensating adjustment

Any other transition raises InvalidStateError and changes nothing.
Cancellation never deletes ledger rows; it appends reversals owned by the
session, so the ledger keeps the full story.
"""
from __future__ import annotations

from datetime import date
from typing import Optional

from ..extensions import db
from ..errors import InvalidStateError, NotFoundError, ValidationError
from ..models import (
    InventoryRecord,
    InventorySession,
    InventoryTransaction,
    SessionStatus,
    SessionType,
    TransactionType,
)
from ..time_utils import utcnow
from . import audit_service
from .concurrency import lock_for_update, run_in_transaction
from .id_service import generate_id, SESSION_PREFIX
from .inventory_service import (
    _get_location,
    _record_transaction_inner,
    _reverse_transaction_inner,
    _set_quantity_inner,
)


def _get_session_for_update(session_id: str) -> InventorySession:
    session = lock_for_update(db.session.query(InventorySession).filter_by(id=session_id)).first()
    if session is None:
        raise NotFoundError(f"Session {session_id} not found")
    return session


def _require_in_progress(session: InventorySession, action: str) -> None:
    if session.is_terminal:
        raise InvalidStateError(f"Cannot {action} session in {session.status} status")


def create_session(
    session_type: str,
    location_id: str,
    *,
    notes: Optional[str] = None,
    actor_id: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> InventorySession:
    """
    Open a new session (status: IN_PROGRESS).

    Raises:
        ValidationError: unknown session type
        NotFoundError: location missing
    """
    def _op():
        stype = SessionType.parse(session_type, "session_type")
        _get_location(location_id)

        session = InventorySession(
            id=generate_id(SESSION_PREFIX),
            session_type=stype.value,
            status=SessionStatus.IN_PROGRESS.value,
            location_id=location_id,
            created_by=actor_id,
            started_at=utcnow(),
            notes=notes,
        )
        db.session.add(session)
        db.session.flush()

        audit_service.record(
            actor_id=actor_id,
            action="create",
            entity_type="session",
            entity_id=session.id,
            details={"session_type": stype.value, "location_id": location_id},
            ip_address=ip_address,
        )
        return session

    return run_in_transaction(_op)


def add_movement(
    session_id: str,
    product_id: str,
    quantity,
    *,
    batch_number: Optional[str] = None,
    expiration_date: Optional[date] = None,
    notes: Optional[str] = None,
    actor_id: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> InventoryTransaction:
    """
    Record one movement inside a session.

    check_in sessions receive into the session location; every other
    session type issues from it.

    Raises:
        NotFoundError: session/product missing, or nothing on hand to issue
        InvalidStateError: session is not IN_PROGRESS
        InsufficientStockError: check-out exceeds on-hand
    """
    def _op():
        session = _get_session_for_update(session_id)
        _require_in_progress(session, "add transactions to")

        if session.session_type == SessionType.CHECK_IN.value:
            kwargs = {"type_": TransactionType.CHECK_IN.value, "destination_location_id": session.location_id}
        else:
            kwargs = {"type_": TransactionType.CHECK_OUT.value, "source_location_id": session.location_id}

        return _record_transaction_inner(
            product_id=product_id,
            quantity=quantity,
            batch_number=batch_number,
            expiration_date=expiration_date,
            notes=notes,
            actor_id=actor_id,
            session_id=session.id,
            ip_address=ip_address,
            **kwargs,
        )

    return run_in_transaction(_op)


def record_count(
    session_id: str,
    product_id: str,
    counted_quantity,
    *,
    actor_id: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> InventoryRecord:
    """
    Record a physical count for one product at the session's location.

    The difference from the cached quantity becomes an adjustment owned by
    the session, so cancelling the count session undoes it.
    """
    def _op():
        session = _get_session_for_update(session_id)
        _require_in_progress(session, "record counts in")
        if session.session_type != SessionType.INVENTORY_COUNT.value:
            raise ValidationError("Counts can only be recorded in inventory_count sessions")

        return _set_quantity_inner(
            product_id=product_id,
            location_id=session.location_id,
            target_quantity=counted_quantity,
            actor_id=actor_id,
            session_id=session.id,
            notes="Inventory count",
            ip_address=ip_address,
        )

    return run_in_transaction(_op)


def complete_session(
    session_id: str,
    *,
    actor_id: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> InventorySession:
    """IN_PROGRESS -> COMPLETED. Inventory is left as the movements made it."""
    def _op():
        session = _get_session_for_update(session_id)
        _require_in_progress(session, "complete")

        session.status = SessionStatus.COMPLETED.value
        session.completed_at = utcnow()
        db.session.flush()

        audit_service.record(
            actor_id=actor_id,
            action="complete",
            entity_type="session",
            entity_id=session.id,
            ip_address=ip_address,
        )
        return session

    return run_in_transaction(_op)


def cancel_session(
    session_id: str,
    *,
    actor_id: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> InventorySession:
    """
    IN_PROGRESS -> CANCELLED, reversing every movement in the session.

    Reversals run newest first inside one DB transaction. If any of
    them would take a counter below zero (stock already moved on), the whole
    cancellation is rolled back and InsufficientStockError propagates.
    """
    def _op():
        session = _get_session_for_update(session_id)
        _require_in_progress(session, "cancel")

        originals = (
            db.session.query(InventoryTransaction)
            .filter(
                InventoryTransaction.session_id == session.id,
                InventoryTransaction.reverses_transaction_id.is_(None),
            )
            .order_by(InventoryTransaction.created_at.desc(), InventoryTransaction.id.desc())
            .all()
        )

        reversal_ids = []
        for original in originals:
            reversal = _reverse_transaction_inner(original, actor_id=actor_id, session_id=session.id)
            reversal_ids.append(reversal.id)

        session.status = SessionStatus.CANCELLED.value
        session.completed_at = utcnow()
        db.session.flush()

        audit_service.record(
            actor_id=actor_id,
            action="cancel",
            entity_type="session",
            entity_id=session.id,
            details={"reversed": len(reversal_ids), "reversal_ids": reversal_ids},
            ip_address=ip_address,
        )
        return session

    return run_in_transaction(_op)


def get_session(session_id: str) -> InventorySession:
    session = db.session.query(InventorySession).filter_by(id=session_id).first()
    if session is None:
        raise NotFoundError(f"Session {session_id} not found")
    return session


def list_sessions(
    *,
    session_type: Optional[str] = None,
    status: Optional[str] = None,
    location_id: Optional[str] = None,
    limit: int = 10,
) -> list[InventorySession]:
    """Most recently started first."""
    q = db.session.query(InventorySession)
    if session_type:
        q = q.filter(InventorySession.session_type == SessionType.parse(session_type, "type").value)
    if status:
        q = q.filter(InventorySession.status == SessionStatus.parse(status, "status").value)
    if location_id:
        q = q.filter(InventorySession.location_id == location_id)
    return (
        q.order_by(InventorySession.started_at.desc(), InventorySession.id.desc())
        .limit(max(1, min(int(limit), 500)))
        .all()
    )


def get_session_transactions(session_id: str) -> list[InventoryTransaction]:
    """Every ledger row owned by the session (reversals included), oldest first."""
    get_session(session_id)
    return (
        db.session.query(InventoryTransaction)
        .filter(InventoryTransaction.session_id == session_id)
        .order_by(InventoryTransaction.created_at.asc(), InventoryTransaction.id.asc())
        .all()
    )
