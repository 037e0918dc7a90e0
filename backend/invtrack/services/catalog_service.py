# backend/invtrack/services/catalog_service.py
"""
Catalog Service: products, categories and suppliers.

BARCODES: unique among non-null values. A blank barcode is stored as NULL,
so any number of products may have none.

CATEGORIES: one level deep. A category filter matches the category itself
and its direct children ("Wine" includes "Red Wine").

Products are never hard-deleted; ledger rows keep pointing at them.
"""
from __future__ import annotations

from typing import Optional

from sqlalchemy import or_

from ..extensions import db
from ..errors import DuplicateKeyError, NotFoundError, ValidationError
from ..models import Category, Product, Supplier
from . import audit_service
from .id_service import generate_id, CATEGORY_PREFIX, PRODUCT_PREFIX, SUPPLIER_PREFIX

PRODUCT_MUTABLE_FIELDS = {
    "name", "barcode", "description", "category_id", "supplier_id",
    "unit_price_cents", "unit_cost_cents", "case_size", "minimum_stock",
    "image_url", "varietal", "vintage", "region", "is_active",
}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _normalize_barcode(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _ensure_barcode_free(barcode: Optional[str], *, exclude_id: Optional[str] = None) -> None:
    if barcode is None:
        return
    q = db.session.query(Product.id).filter(Product.barcode == barcode)
    if exclude_id is not None:
        q = q.filter(Product.id != exclude_id)
    if q.first() is not None:
        raise DuplicateKeyError(f"Barcode {barcode} already exists")


def _ensure_references(patch: dict) -> None:
    category_id = patch.get("category_id")
    if category_id and db.session.query(Category.id).filter_by(id=category_id).first() is None:
        raise NotFoundError(f"Category {category_id} not found")
    supplier_id = patch.get("supplier_id")
    if supplier_id and db.session.query(Supplier.id).filter_by(id=supplier_id).first() is None:
        raise NotFoundError(f"Supplier {supplier_id} not found")


# =============================================================================
# PRODUCTS
# =============================================================================

def list_products(
    *,
    category_id: Optional[str] = None,
    search: Optional[str] = None,
    active: Optional[bool] = True,
    limit: int = 100,
    offset: int = 0,
) -> list[Product]:
    """
    Products ordered by name.

    active=None returns both active and soft-deleted products.
    """
    q = db.session.query(Product)
    if active is not None:
        q = q.filter(Product.is_active.is_(bool(active)))
    if category_id:
        child_ids = db.session.query(Category.id).filter(Category.parent_id == category_id)
        q = q.filter(or_(Product.category_id == category_id, Product.category_id.in_(child_ids)))
    if search:
        term = f"%{search.strip()}%"
        q = q.filter(or_(
            Product.name.like(term),
            Product.barcode.like(term),
            Product.description.like(term),
        ))
    return (
        q.order_by(Product.name.asc(), Product.id.asc())
        .limit(max(1, min(int(limit), 500)))
        .offset(max(0, int(offset)))
        .all()
    )


def get_product(product_id: str) -> Product:
    p = db.session.query(Product).filter_by(id=product_id).first()
    if p is None:
        raise NotFoundError(f"Product {product_id} not found")
    return p


def get_product_by_barcode(barcode: str) -> Product:
    code = _normalize_barcode(barcode)
    p = db.session.query(Product).filter_by(barcode=code).first() if code else None
    if p is None:
        raise NotFoundError(f"Product with barcode {barcode} not found")
    return p


def create_product(
    *,
    patch: dict,
    actor_id: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> Product:
    """
    Create product using a validated patch dict.

    Raises:
        ValidationError: name missing
        NotFoundError: category_id / supplier_id do not exist
        DuplicateKeyError: barcode already used by another product
    """
    name = (patch.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required")

    patch = dict(patch)
    patch["barcode"] = _normalize_barcode(patch.get("barcode"))
    _ensure_barcode_free(patch["barcode"])
    _ensure_references(patch)

    p = Product(id=generate_id(PRODUCT_PREFIX), created_by=actor_id)
    apply_product_patch(p, patch)
    db.session.add(p)
    db.session.flush()

    audit_service.record(
        actor_id=actor_id,
        action="create",
        entity_type="product",
        entity_id=p.id,
        details={"name": p.name, "barcode": p.barcode},
        ip_address=ip_address,
    )

    db.session.commit()
    return p


def update_product(
    *,
    product_id: str,
    patch: dict,
    actor_id: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> Product:
    p = get_product(product_id)

    patch = dict(patch)
    if "barcode" in patch:
        patch["barcode"] = _normalize_barcode(patch["barcode"])
        _ensure_barcode_free(patch["barcode"], exclude_id=p.id)
    if "name" in patch and not (patch["name"] or "").strip():
        raise ValidationError("name cannot be blank")
    _ensure_references(patch)

    changes = {k: v for k, v in patch.items() if k in PRODUCT_MUTABLE_FIELDS and getattr(p, k) != v}
    apply_product_patch(p, patch)
    db.session.flush()

    audit_service.record(
        actor_id=actor_id,
        action="update",
        entity_type="product",
        entity_id=p.id,
        details=changes,
        ip_address=ip_address,
    )

    db.session.commit()
    return p


def delete_product(
    *,
    product_id: str,
    actor_id: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> Product:
    """Soft-delete: sets is_active=False; stock and ledger rows are untouched."""
    p = get_product(product_id)

    # Soft-delete only: preserve IDs and historical references.
    if p.is_active:
        p.is_active = False
        audit_service.record(
            actor_id=actor_id,
            action="delete",
            entity_type="product",
            entity_id=p.id,
            details={"name": p.name},
            ip_address=ip_address,
        )

    db.session.commit()
    return p


# =============================================================================
# CATEGORIES
# =============================================================================

def list_categories(parent_id: Optional[str] = None) -> list[Category]:
    """Top-level categories, or the children of parent_id."""
    q = db.session.query(Category)
    if parent_id:
        q = q.filter(Category.parent_id == parent_id)
    else:
        q = q.filter(Category.parent_id.is_(None))
    return q.order_by(Category.name.asc()).all()


def get_category(category_id: str) -> Category:
    c = db.session.query(Category).filter_by(id=category_id).first()
    if c is None:
        raise NotFoundError(f"Category {category_id} not found")
    return c


def create_category(
    *,
    name: str,
    parent_id: Optional[str] = None,
    description: Optional[str] = None,
    category_id: Optional[str] = None,
    actor_id: Optional[str] = None,
    ip_address: Optional[str] = None,
    commit: bool = True,
) -> Category:
    """
    Create a category. The parent, if any, must be top-level.

    category_id is only passed by seeding, which uses fixed ids.
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")

    if parent_id:
        parent = get_category(parent_id)
        if parent.parent_id is not None:
            raise ValidationError("Categories can only be nested one level deep")

    c = Category(
        id=category_id or generate_id(CATEGORY_PREFIX),
        name=name,
        parent_id=parent_id or None,
        description=description,
    )
    db.session.add(c)
    db.session.flush()

    audit_service.record(
        actor_id=actor_id,
        action="create",
        entity_type="category",
        entity_id=c.id,
        details={"name": name, "parent_id": parent_id},
        ip_address=ip_address,
    )

    if commit:
        db.session.commit()
    return c


# =============================================================================
# SUPPLIERS
# =============================================================================

SUPPLIER_FIELDS = ("contact_person", "email", "phone", "address", "website", "notes")


def list_suppliers(include_inactive: bool = False) -> list[Supplier]:
    q = db.session.query(Supplier)
    if not include_inactive:
        q = q.filter(Supplier.is_active.is_(True))
    return q.order_by(Supplier.name.asc()).all()


def create_supplier(
    *,
    patch: dict,
    actor_id: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> Supplier:
    name = (patch.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required")

    s = Supplier(id=generate_id(SUPPLIER_PREFIX), name=name, created_by=actor_id)
    for field in SUPPLIER_FIELDS:
        if field in patch:
            setattr(s, field, patch[field])
    db.session.add(s)
    db.session.flush()

    audit_service.record(
        actor_id=actor_id,
        action="create",
        entity_type="supplier",
        entity_id=s.id,
        details={"name": name},
        ip_address=ip_address,
    )

    db.session.commit()
    return s
