# Overview: Flask API routes for catalog operations (products, categories, suppliers); parses input and returns JSON responses.

# backend/invtrack/routes/products.py
"""
Catalog routes.

SECURITY: All routes require authentication.
- Read operations are open to every role
- Write operations require manager (or admin)
"""
from flask import Blueprint, request, g

from ..extensions import db
from ..errors import InventoryAppError
from ..models import Product, Supplier
from ..services import catalog_service, inventory_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
)
from ..decorators import require_auth, require_role, client_ip

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "barcode", "description", "category_id", "supplier_id",
        "unit_price_cents", "unit_cost_cents", "case_size", "minimum_stock",
        "image_url", "varietal", "vintage", "region", "is_active",
    },
    required_on_create={"name"},
)

SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "contact_person", "email", "phone", "address", "website", "notes"},
    required_on_create={"name"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api")


def _active_filter(raw: str | None) -> bool | None:
    # "all" lists soft-deleted products too
    if raw is None:
        return True
    raw = raw.strip().lower()
    if raw == "all":
        return None
    return raw not in ("false", "0", "no")


@products_bp.get("/products")
@require_auth
def list_products_route():
    """
    List products ordered by name.

    Query params:
    - category_id: str (optional) - also matches direct subcategories
    - search: str (optional) - name, barcode or description
    - active: "true" (default) | "false" | "all"
    - limit: int (default 100, max 500), offset: int
    """
    products = catalog_service.list_products(
        category_id=request.args.get("category_id"),
        search=request.args.get("search"),
        active=_active_filter(request.args.get("active")),
        limit=request.args.get("limit", 100, type=int),
        offset=request.args.get("offset", 0, type=int),
    )
    return {"items": [p.to_dict() for p in products], "count": len(products)}


@products_bp.post("/products")
@require_auth
@require_role("manager")
def create_product_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        product = catalog_service.create_product(
            patch=patch, actor_id=g.current_user.id, ip_address=client_ip()
        )
    except InventoryAppError as e:
        db.session.rollback()
        return {"error": str(e)}, e.status_code

    return {"product": product.to_dict()}, 201


@products_bp.get("/products/barcode/<code>")
@require_auth
def get_product_by_barcode_route(code: str):
    try:
        product = catalog_service.get_product_by_barcode(code)
    except InventoryAppError as e:
        return {"error": str(e)}, e.status_code
    return {"product": product.to_dict()}


@products_bp.get("/products/<product_id>")
@require_auth
def get_product_route(product_id: str):
    try:
        product = catalog_service.get_product(product_id)
    except InventoryAppError as e:
        return {"error": str(e)}, e.status_code
    return {"product": product.to_dict()}


@products_bp.put("/products/<product_id>")
@require_auth
@require_role("manager")
def update_product_route(product_id: str):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
        product = catalog_service.update_product(
            product_id=product_id, patch=patch, actor_id=g.current_user.id, ip_address=client_ip()
        )
    except InventoryAppError as e:
        db.session.rollback()
        return {"error": str(e)}, e.status_code

    return {"product": product.to_dict()}


@products_bp.delete("/products/<product_id>")
@require_auth
@require_role("manager")
def delete_product_route(product_id: str):
    """Soft delete: the product disappears from listings; its history stays."""
    try:
        product = catalog_service.delete_product(
            product_id=product_id, actor_id=g.current_user.id, ip_address=client_ip()
        )
    except InventoryAppError as e:
        db.session.rollback()
        return {"error": str(e)}, e.status_code

    return {"product": product.to_dict(), "deleted": True}


@products_bp.get("/products/<product_id>/inventory")
@require_auth
def product_inventory_route(product_id: str):
    try:
        levels = inventory_service.get_product_levels(product_id)
    except InventoryAppError as e:
        return {"error": str(e)}, e.status_code
    return {
        "product_id": product_id,
        "items": levels,
        "total_quantity": sum(row["quantity"] for row in levels),
    }


# =============================================================================
# CATEGORIES
# =============================================================================

@products_bp.get("/categories")
@require_auth
def list_categories_route():
    """Top-level categories, or the children of ?parent_id=."""
    categories = catalog_service.list_categories(parent_id=request.args.get("parent_id"))
    return {"items": [c.to_dict() for c in categories], "count": len(categories)}


@products_bp.post("/categories")
@require_auth
@require_role("manager")
def create_category_route():
    data = request.get_json(silent=True) or {}

    try:
        category = catalog_service.create_category(
            name=data.get("name"),
            parent_id=data.get("parent_id"),
            description=data.get("description"),
            actor_id=g.current_user.id,
            ip_address=client_ip(),
        )
    except InventoryAppError as e:
        db.session.rollback()
        return {"error": str(e)}, e.status_code

    return {"category": category.to_dict()}, 201


# =============================================================================
# SUPPLIERS
# =============================================================================

@products_bp.get("/suppliers")
@require_auth
def list_suppliers_route():
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    suppliers = catalog_service.list_suppliers(include_inactive=include_inactive)
    return {"items": [s.to_dict() for s in suppliers], "count": len(suppliers)}


@products_bp.post("/suppliers")
@require_auth
@require_role("manager")
def create_supplier_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=False)
        supplier = catalog_service.create_supplier(
            patch=patch, actor_id=g.current_user.id, ip_address=client_ip()
        )
    except InventoryAppError as e:
        db.session.rollback()
        return {"error": str(e)}, e.status_code

    return {"supplier": supplier.to_dict()}, 201
