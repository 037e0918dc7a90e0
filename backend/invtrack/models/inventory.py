from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .enums import LocationType


class Location(db.Model):
    __tablename__ = "locations"

    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    type = db.Column(db.String(32), nullable=False, default=LocationType.OTHER.value)
    description = db.Column(db.Text, nullable=True)
    address = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_by = db.Column(db.String(64), db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Location id={self.id} name={self.name!r} type={self.type}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "description": self.description,
            "address": self.address,
            "is_active": self.is_active,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryRecord(db.Model):
    """
    Cached on-hand quantity for one (product, location) pair.

    INVARIANT: quantity == signed sum of InventoryTransaction rows touching
    the pair (+quantity where the pair is the destination, -quantity where
    it is the source). Only inventory_service writes this table, always in
    the same DB transaction as the ledger row that explains the change.

    Rows are created on first movement into a pair and never deleted.
    version_id gives optimistic locking on top of SELECT ... FOR UPDATE.
    """
    __tablename__ = "inventory"
    __table_args__ = (
        db.UniqueConstraint("product_id", "location_id", name="uq_inventory_product_location"),
        db.CheckConstraint("quantity >= 0", name="ck_inventory_quantity_non_negative"),
    )

    id = db.Column(db.String(64), primary_key=True)
    product_id = db.Column(db.String(64), db.ForeignKey("products.id"), nullable=False, index=True)
    location_id = db.Column(db.String(64), db.ForeignKey("locations.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    last_counted = db.Column(db.DateTime(timezone=True), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product", backref=db.backref("inventory_records", lazy=True))
    location = db.relationship("Location", backref=db.backref("inventory_records", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<InventoryRecord product_id={self.product_id} location_id={self.location_id} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "location_id": self.location_id,
            "location_name": self.location.name if self.location else None,
            "quantity": self.quantity,
            "last_counted": to_utc_z(self.last_counted) if self.last_counted else None,
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryTransaction(db.Model):
    """
    Immutable ledger entry for one quantity movement.

    Sign convention per (product, location): destination_location_id gets
    +quantity, source_location_id gets -quantity. quantity is always > 0.

    Compensating entries written on session cancellation are type
    'adjustment' with reverses_transaction_id pointing at the original.
    """
    __tablename__ = "inventory_transactions"
    __table_args__ = (
        db.Index("ix_invtx_product_created", "product_id", "created_at"),
        db.Index("ix_invtx_session_created", "session_id", "created_at"),
        db.CheckConstraint("quantity > 0", name="ck_invtx_quantity_positive"),
    )

    id = db.Column(db.String(64), primary_key=True)

    type = db.Column(db.String(32), nullable=False, index=True)
    product_id = db.Column(db.String(64), db.ForeignKey("products.id"), nullable=False, index=True)
    source_location_id = db.Column(db.String(64), db.ForeignKey("locations.id"), nullable=True, index=True)
    destination_location_id = db.Column(db.String(64), db.ForeignKey("locations.id"), nullable=True, index=True)

    quantity = db.Column(db.Integer, nullable=False)

    batch_number = db.Column(db.String(64), nullable=True)
    expiration_date = db.Column(db.Date, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.String(64), db.ForeignKey("users.id"), nullable=True)
    session_id = db.Column(db.String(64), db.ForeignKey("sessions.id"), nullable=True, index=True)
    reverses_transaction_id = db.Column(
        db.String(64), db.ForeignKey("inventory_transactions.id"), nullable=True, index=True
    )

    # Python-side default keeps sub-second ordering within a session
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    product = db.relationship("Product")
    source_location = db.relationship("Location", foreign_keys=[source_location_id])
    destination_location = db.relationship("Location", foreign_keys=[destination_location_id])
    creator = db.relationship("User", foreign_keys=[created_by])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "source_location_id": self.source_location_id,
            "source_location_name": self.source_location.name if self.source_location else None,
            "destination_location_id": self.destination_location_id,
            "destination_location_name": self.destination_location.name if self.destination_location else None,
            "quantity": self.quantity,
            "batch_number": self.batch_number,
            "expiration_date": self.expiration_date.isoformat() if self.expiration_date else None,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_by_username": self.creator.username if self.creator else None,
            "session_id": self.session_id,
            "reverses_transaction_id": self.reverses_transaction_id,
            "created_at": to_utc_z(self.created_at),
        }
