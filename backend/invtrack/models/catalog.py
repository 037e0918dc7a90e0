from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, format_cents


class Category(db.Model):
    """
    Product category.

    Hierarchy is one level deep: a category either has no parent or its
    parent is top-level. Filters on a category id also match its direct
    children, so "Wine" covers "Red Wine" and "White Wine".
    """
    __tablename__ = "categories"

    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    parent_id = db.Column(db.String(64), db.ForeignKey("categories.id"), nullable=True, index=True)
    description = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    parent = db.relationship("Category", remote_side=[id], backref=db.backref("children", lazy=True))

    def __repr__(self) -> str:
        return f"<Category id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "parent_id": self.parent_id,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
        }


class Supplier(db.Model):
    __tablename__ = "suppliers"

    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    contact_person = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    address = db.Column(db.Text, nullable=True)
    website = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_by = db.Column(db.String(64), db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "contact_person": self.contact_person,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "website": self.website,
            "notes": self.notes,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Product master data.

    BARCODE: unique among non-null values. Products without a barcode are
    stored with NULL (never ""), which the unique index ignores.

    Soft delete: is_active=False hides the product from stock listings and
    valuation without touching its ledger history.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_name", "name"),
        db.Index("ix_products_category_active", "category_id", "is_active"),
    )

    id = db.Column(db.String(64), primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    barcode = db.Column(db.String(64), nullable=True, unique=True)
    description = db.Column(db.Text, nullable=True)

    category_id = db.Column(db.String(64), db.ForeignKey("categories.id"), nullable=True, index=True)
    supplier_id = db.Column(db.String(64), db.ForeignKey("suppliers.id"), nullable=True, index=True)

    # Authoritative storage in cents (frontend may only format for display)
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)

    case_size = db.Column(db.Integer, nullable=True)
    minimum_stock = db.Column(db.Integer, nullable=False, default=0)

    image_url = db.Column(db.String(512), nullable=True)
    varietal = db.Column(db.String(120), nullable=True)
    vintage = db.Column(db.String(16), nullable=True)
    region = db.Column(db.String(120), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_by = db.Column(db.String(64), db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    supplier = db.relationship("Supplier", backref=db.backref("products", lazy=True))

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} barcode={self.barcode!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "barcode": self.barcode,
            "description": self.description,
            "category_id": self.category_id,
            "category_name": self.category.name if self.category else None,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier.name if self.supplier else None,
            "unit_price_cents": self.unit_price_cents,
            "unit_cost_cents": self.unit_cost_cents,
            "unit_price": format_cents(self.unit_price_cents),
            "unit_cost": format_cents(self.unit_cost_cents),
            "case_size": self.case_size,
            "minimum_stock": self.minimum_stock,
            "image_url": self.image_url,
            "varietal": self.varietal,
            "vintage": self.vintage,
            "region": self.region,
            "is_active": self.is_active,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
