from __future__ import annotations


class InventoryError(Exception):
    """Base for every error the inventory services raise on purpose.

    ``code`` is stable and safe to return to API clients; ``status_code`` is the
    HTTP status the route layer maps the error to.
    """

    code = "inventory_error"
    status_code = 400

    def __init__(self, message: str, **details) -> None:
        super().__init__(message)
        self.details = details


class NotFound(InventoryError):
    code = "not_found"
    status_code = 404


class InvalidQuantity(InventoryError):
    code = "invalid_quantity"
    status_code = 400


class InsufficientStock(InventoryError):
    code = "insufficient_stock"
    status_code = 409

    def __init__(self, equipment_id: int, available: int, requested_delta: int) -> None:
        super().__init__(
            f"Insufficient stock for equipment {equipment_id}: available={available} delta={requested_delta}",
            equipment_id=equipment_id,
            available=available,
            requested_delta=requested_delta,
        )
        self.equipment_id = equipment_id
        self.available = available
        self.requested_delta = requested_delta


class InvalidMovement(InventoryError):
    code = "invalid_movement"
    status_code = 400


class DuplicateSerialNumber(InventoryError):
    code = "duplicate_serial"
    status_code = 409


class ConflictingWrite(InventoryError):
    # Safe to retry; the reconciliation engine does so before giving up.
    code = "conflicting_write"
    status_code = 409


class BackendFailure(InventoryError):
    code = "backend_failure"
    status_code = 503
