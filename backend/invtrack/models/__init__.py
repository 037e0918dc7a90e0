from .enums import UserRole, LocationType, TransactionType, SessionType, SessionStatus, ReportType
from .auth import User
from .audit import AuditLog
from .catalog import Category, Supplier, Product
from .inventory import Location, InventoryRecord, InventoryTransaction
from .sessions import InventorySession
from .reports import Report

__all__ = [
    'UserRole', 'LocationType', 'TransactionType', 'SessionType', 'SessionStatus', 'ReportType',
    'User', 'AuditLog',
    'Category', 'Supplier', 'Product',
    'Location', 'InventoryRecord', 'InventoryTransaction',
    'InventorySession',
    'Report',
]
