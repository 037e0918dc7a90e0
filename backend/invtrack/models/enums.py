# Overview: Closed value sets persisted as strings.

from __future__ import annotations

from enum import Enum


class _StrEnum(str, Enum):
    """String-valued enum that parses with a domain ValidationError."""

    @classmethod
    def parse(cls, value, field: str = "value"):
        from ..errors import ValidationError

        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            allowed = ", ".join(m.value for m in cls)
            raise ValidationError(f"{field} must be one of: {allowed}")

    @classmethod
    def values(cls) -> tuple[str, ...]:
        return tuple(m.value for m in cls)

    def __str__(self) -> str:
        return self.value


class UserRole(_StrEnum):
    ADMIN = "admin"
    MANAGER = "manager"
    STAFF = "staff"


class LocationType(_StrEnum):
    MAIN_STORAGE = "main_storage"
    OUTLET = "outlet"
    WAREHOUSE = "warehouse"
    OTHER = "other"


class TransactionType(_StrEnum):
    CHECK_IN = "check_in"
    CHECK_OUT = "check_out"
    ADJUSTMENT = "adjustment"
    TRANSFER = "transfer"


class SessionType(_StrEnum):
    CHECK_IN = "check_in"
    CHECK_OUT = "check_out"
    INVENTORY_COUNT = "inventory_count"


class SessionStatus(_StrEnum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ReportType(_StrEnum):
    INVENTORY = "inventory"
    VALUATION = "valuation"
    TRANSACTION = "transaction"
    LOW_STOCK = "low_stock"


# Role rank for hierarchical checks: admin > manager > staff
ROLE_RANK = {
    UserRole.STAFF: 1,
    UserRole.MANAGER: 2,
    UserRole.ADMIN: 3,
}
