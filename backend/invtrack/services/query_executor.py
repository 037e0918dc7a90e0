# Overview: Thin parameterized-SQL layer for read-heavy queries.

"""
Query executor.

Reporting and stock listings are joins and aggregates that read more
clearly as SQL than as ORM chains. They go through these three helpers,
which run inside the current SQLAlchemy session (and so inside the
caller's DB transaction).

Only named bind parameters (":name") are accepted; values are never
interpolated into SQL text.
"""
from __future__ import annotations

from typing import Any, Mapping

from sqlalchemy import text

from ..extensions import db


def execute(sql: str, params: Mapping[str, Any] | None = None) -> int:
    """Run a write statement; returns the affected row count."""
    result = db.session.execute(text(sql), dict(params or {}))
    return result.rowcount


def query_many(sql: str, params: Mapping[str, Any] | None = None) -> list[dict]:
    """Run a query; returns every row as a dict, in result order."""
    result = db.session.execute(text(sql), dict(params or {}))
    return [dict(row) for row in result.mappings().all()]


def query_one(sql: str, params: Mapping[str, Any] | None = None) -> dict | None:
    """Run a query; returns the first row as a dict, or None."""
    result = db.session.execute(text(sql), dict(params or {}))
    row = result.mappings().first()
    return dict(row) if row is not None else None
