# Overview: Domain error taxonomy shared by services and routes.

"""
Back office error taxonomy.

Services raise these; routes render them as
{"success": false, "error": <message>, "code": <class name>, "details": {...}}
with the class's HTTP status.
"""

from __future__ import annotations


class BackofficeError(Exception):
    """Base class for errors that are part of the API contract."""
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def code(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        payload = {"success": False, "error": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(BackofficeError):
    """400-level input problem."""


class ConflictError(BackofficeError):
    """409-level business rule conflict (e.g., duplicate variant)."""
    status_code = 409


class InvalidAdjustment(BackofficeError):
    """Ledger or points change that the rules disallow (bad kind, sign, or a negative result)."""


class ProductNotFound(BackofficeError):
    status_code = 404

    def __init__(self, product_id):
        super().__init__(f"Product not found: {product_id}", {"product_id": product_id})


class VariantNotFound(BackofficeError):
    status_code = 404

    def __init__(self, product_id=None, variant_type=None, variant_value=None, *, variant_id=None):
        if variant_id is not None:
            message = f"Variant not found: {variant_id}"
        else:
            message = (
                f"Variant not found for product {product_id}, "
                f"type: {variant_type}, value: {variant_value}"
            )
        details = {
            "product_id": product_id,
            "variant_type": variant_type,
            "variant_value": variant_value,
            "variant_id": variant_id,
        }
        super().__init__(message, {k: v for k, v in details.items() if v is not None})


class InsufficientStock(BackofficeError):
    status_code = 409

    def __init__(self, variant_id: int, available: int, requested: int, product_name: str | None = None):
        label = product_name or f"variant {variant_id}"
        super().__init__(
            f"Insufficient stock for {label}. Available: {available}, Requested: {requested}",
            {
                "variant_id": variant_id,
                "product_name": product_name,
                "available": available,
                "requested": requested,
            },
        )
        self.variant_id = variant_id
        self.available = available
        self.requested = requested


class DuplicateOrder(BackofficeError):
    status_code = 409

    def __init__(self, order_id: str):
        super().__init__(f"Order {order_id} already exists", {"order_id": order_id})


class OrderNotFound(BackofficeError):
    status_code = 404

    def __init__(self, order_id: str):
        super().__init__("Order not found", {"order_id": order_id})


class InvalidStatusTransition(BackofficeError):
    status_code = 409

    def __init__(self, order_id: str, current: str, requested: str, message: str | None = None):
        super().__init__(
            message or f"Cannot change order {order_id} from {current} to {requested}",
            {"order_id": order_id, "current_status": current, "requested_status": requested},
        )


class CustomerNotFound(BackofficeError):
    status_code = 404

    def __init__(self, customer_id):
        super().__init__("Customer not found", {"customer_id": customer_id})


class AuthError(BackofficeError):
    status_code = 401


class StorageFailure(BackofficeError):
    """Database or transaction-layer failure that escaped the retry loop."""
    status_code = 500
