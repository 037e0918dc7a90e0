# Overview: Domain error types raised by the service layer.

"""
Every service failure is one of these. Each carries the HTTP status the
routes answer with, so handlers can map any of them with one except clause.

None of them are retried: they describe the request, not a transient state.
"""


class InventoryAppError(ValueError):
    """Base class for domain errors surfaced to API callers."""
    status_code = 400


class ValidationError(InventoryAppError):
    """400-level input problem."""
    status_code = 400


class InvalidCredentialsError(InventoryAppError):
    status_code = 401


class InactiveAccountError(InventoryAppError):
    status_code = 403


class NotFoundError(InventoryAppError):
    """Referenced product/location/session/report/user is absent."""
    status_code = 404


class InvalidStateError(InventoryAppError):
    """Session is not in_progress for a state-changing operation."""
    status_code = 409


class InsufficientStockError(InventoryAppError):
    """A movement would take a (product, location) quantity below zero."""
    status_code = 409

    def __init__(self, product_id: str, location_id: str, available: int, requested: int):
        self.product_id = product_id
        self.location_id = location_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock for product {product_id} at location {location_id}. "
            f"On-hand: {available}, requested: {requested}"
        )


class DuplicateKeyError(InventoryAppError):
    """409-level uniqueness conflict (barcode, username, email)."""
    status_code = 409
