"""
Custom exceptions for the fulfillment and returns pipeline.
"""

from typing import Dict, Any


class BusinessException(Exception):
    """Base exception for business logic errors."""

    http_status = 400

    def __init__(self, message: str, code: str = "BUSINESS_ERROR", details: Dict[str, Any] = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class NotFound(BusinessException):
    """Raised when a referenced order, package, transport, return or item does not exist."""

    http_status = 404

    def __init__(self, entity_type: str, entity_id):
        super().__init__(f"{entity_type} not found", "NOT_FOUND", {
            "entity_type": entity_type,
            "entity_id": str(entity_id)
        })


class InvalidStateTransition(BusinessException):
    """Raised when attempting a transition that is not reachable from the current status."""

    default_code = "INVALID_TRANSITION"

    def __init__(self, current_status: str, attempted_status: str, entity_type: str = "Package",
                 message: str = None):
        message = message or (
            f"Invalid transition for {entity_type}: cannot move from {current_status} to {attempted_status}"
        )
        super().__init__(message, self.default_code, {
            "current_status": current_status,
            "attempted_status": attempted_status,
            "entity_type": entity_type
        })
        self.current_status = current_status
        self.attempted_status = attempted_status


class AlreadyPacked(InvalidStateTransition):
    """Raised when packing a package that is already ready for dispatch."""

    default_code = "ALREADY_PACKED"

    def __init__(self, package_number: str):
        super().__init__(
            "ready_for_dispatch", "ready_for_dispatch", "Package",
            message=f"Package {package_number} is already packed"
        )


class TerminalPackageState(InvalidStateTransition):
    """Raised when assigning a transporter to a delivered or returned package."""

    default_code = "TERMINAL_PACKAGE_STATE"

    def __init__(self, package_number: str, current_status: str):
        super().__init__(
            current_status, "dispatched", "Package",
            message=f"Cannot assign transporter to package {package_number} in status {current_status}"
        )


class InsufficientStock(BusinessException):
    """Raised when an order line cannot be satisfied from in-stock items."""

    def __init__(self, product_sku: str, requested_qty: int, available_qty: int = 0):
        message = (
            f"Insufficient stock for product {product_sku}: requested {requested_qty}, "
            f"available {available_qty}, short by {requested_qty - available_qty}"
        )
        super().__init__(message, "INSUFFICIENT_STOCK", {
            "product_sku": product_sku,
            "requested_quantity": requested_qty,
            "available_quantity": available_qty,
            "shortfall": requested_qty - available_qty
        })


class InvalidReturnItems(BusinessException):
    """Raised when returned items are not a subset of what the package shipped."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(message, "INVALID_RETURN_ITEMS", details)


class ValidationException(BusinessException):
    """Raised when data validation fails."""

    def __init__(self, message: str, field_errors: Dict[str, Any] = None):
        super().__init__(message, "VALIDATION_ERROR", field_errors or {})
