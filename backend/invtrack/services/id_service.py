# Overview: Prefixed opaque identifiers for every persisted entity.

from __future__ import annotations

from uuid import uuid4

USER_PREFIX = "user-"
CATEGORY_PREFIX = "cat-"
SUPPLIER_PREFIX = "sup-"
PRODUCT_PREFIX = "prod-"
LOCATION_PREFIX = "loc-"
INVENTORY_PREFIX = "inv-"
TRANSACTION_PREFIX = "trx-"
SESSION_PREFIX = "sess-"
REPORT_PREFIX = "rep-"
AUDIT_LOG_PREFIX = "log-"


def generate_id(prefix: str = "") -> str:
    """Return a unique id such as 'prod-6f1c...'; the prefix names the entity kind."""
    return f"{prefix}{uuid4()}"
