"""
Ledger error taxonomy.

Every ledger failure leaves inventory and shipment state unchanged: the
transaction that raised it never commits.
"""

from typing import Optional


class LedgerError(Exception):
    """Base class for errors raised by the shipment ledger."""

    status_code = 400

    def to_detail(self) -> dict:
        return {"error": type(self).__name__, "message": str(self)}


class ValidationError(LedgerError):
    """Malformed input, caught before any store interaction."""

    status_code = 422


class UnknownItem(LedgerError):
    status_code = 409

    def __init__(self, sku: str):
        self.sku = sku
        super().__init__(f"Item {sku} is not in the inventory")

    def to_detail(self) -> dict:
        return {**super().to_detail(), "sku": self.sku}


class InsufficientStock(LedgerError):
    status_code = 409

    def __init__(self, sku: str, available: int, requested: int):
        self.sku = sku
        self.available = int(available)
        self.requested = int(requested)
        super().__init__(
            f"Not enough stock for {sku}. Available={self.available} requested={self.requested}"
        )

    def to_detail(self) -> dict:
        return {
            **super().to_detail(),
            "sku": self.sku,
            "available": self.available,
            "requested": self.requested,
        }


class ShipmentNotFound(LedgerError):
    status_code = 404

    def __init__(self, shipment_id):
        self.shipment_id = shipment_id
        super().__init__(f"Shipment {shipment_id} not found")


class RequestNotFound(LedgerError):
    status_code = 404

    def __init__(self, request_id):
        self.request_id = request_id
        super().__init__(f"Shipment request {request_id} not found")


class PermissionDenied(LedgerError):
    status_code = 403

    def __init__(self, role: str, capability: str):
        self.role = role
        self.capability = capability
        super().__init__(f"Role '{role}' is not allowed to {capability.replace('_', ' ')}")


class OperationFailed(LedgerError):
    """The store could not complete the operation; nothing was committed."""

    status_code = 500

    def __init__(self, cause: Optional[BaseException] = None, message: Optional[str] = None):
        self.cause = cause
        super().__init__(message or f"Operation failed: {cause!r}")


class TransactionFailed(OperationFailed):
    """Conflicting writers exhausted the transaction retries. Safe to retry from scratch."""

    status_code = 503

    def __init__(self, cause: Optional[BaseException] = None, attempts: int = 0):
        self.attempts = attempts
        super().__init__(cause, f"Transaction failed after {attempts} attempt(s): {cause!r}")
