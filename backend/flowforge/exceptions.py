"""
FlowForge exception hierarchy

Every business-rule failure raised by the services is a FlowForgeException
subclass carrying a machine-readable error code, an HTTP status, and
structured details. The FastAPI handler in flowforge.main turns them into:

    {"error": "INSUFFICIENT_STOCK", "message": "...", "details": {...}}
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional


class FlowForgeException(Exception):
    """Base class for all FlowForge business errors."""

    error_code = "FLOWFORGE_ERROR"
    status_code = 400

    def __init__(
        self,
        message: str,
        *,
        error_code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if error_code is not None:
            self.error_code = error_code
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.error_code,
            "message": self.message,
            "details": _jsonable(self.details),
        }


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def _plain_number(value: Any) -> str:
    """Decimal without trailing zeros or exponent: 2.00000000 -> 2"""
    if isinstance(value, Decimal):
        return f"{value.normalize():f}"
    return str(value)


class NotFoundError(FlowForgeException):
    """A referenced entity does not exist."""

    error_code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        super().__init__(message, details={"resource": resource, "id": resource_id})
        self.resource = resource
        self.resource_id = resource_id


class InvalidQuantityError(FlowForgeException):
    """Quantity is missing, zero, negative or otherwise malformed."""

    error_code = "INVALID_QUANTITY"
    status_code = 400

    def __init__(self, message: str = "Quantity must be greater than 0", quantity: Any = None):
        super().__init__(message, details={"quantity": quantity})
        self.quantity = quantity


class InsufficientStockError(FlowForgeException):
    """An OUT movement asks for more than is on hand."""

    error_code = "INSUFFICIENT_STOCK"
    status_code = 409

    def __init__(self, available: Decimal, requested: Decimal, stock_item_id: Any = None, sku: Optional[str] = None):
        amounts = f"Available: {_plain_number(available)}, Requested: {_plain_number(requested)}"
        message = f"Insufficient stock for {sku}. {amounts}" if sku else f"Insufficient stock. {amounts}"
        super().__init__(
            message,
            details={
                "stock_item_id": stock_item_id,
                "available": available,
                "requested": requested,
            },
        )
        self.available = available
        self.requested = requested
        self.stock_item_id = stock_item_id


class NoActiveBOMError(FlowForgeException):
    """The product has no ACTIVE bill of materials to cost or build from."""

    error_code = "NO_ACTIVE_BOM"
    status_code = 404

    def __init__(self, product_id: Any):
        super().__init__(
            "No active BOM found for this product",
            details={"product_id": product_id},
        )
        self.product_id = product_id


class MultipleActiveBOMError(FlowForgeException):
    """More than one ACTIVE BOM exists for a product. Data integrity failure."""

    error_code = "MULTIPLE_ACTIVE_BOMS"
    status_code = 500

    def __init__(self, product_id: Any, bom_ids: List[Any]):
        super().__init__(
            "Data integrity violation: more than one active BOM for product",
            details={"product_id": product_id, "bom_ids": list(bom_ids)},
        )
        self.product_id = product_id
        self.bom_ids = list(bom_ids)


class InvalidTransitionError(FlowForgeException):
    """A status change the state machine does not allow."""

    error_code = "INVALID_TRANSITION"
    status_code = 409

    def __init__(self, from_status: str, to_status: str, message: Optional[str] = None):
        super().__init__(
            message or f"Cannot change status from {from_status} to {to_status}",
            details={"from_status": from_status, "to_status": to_status},
        )
        self.from_status = from_status
        self.to_status = to_status


class ActiveWorkBlocksCancellationError(FlowForgeException):
    """A manufacturing order still has STARTED/PAUSED work orders."""

    error_code = "ACTIVE_WORK_ORDERS"
    status_code = 409

    def __init__(self, order_number: str, work_order_numbers: List[str]):
        super().__init__(
            "Cannot cancel order with active work orders. Please complete or cancel all work orders first",
            details={"order_number": order_number, "active_work_orders": list(work_order_numbers)},
        )
        self.work_order_numbers = list(work_order_numbers)


class DuplicateError(FlowForgeException):
    """A unique business key (SKU, work center name, email) is taken."""

    error_code = "DUPLICATE"
    status_code = 400

    def __init__(self, field: str, value: Any):
        super().__init__(
            f"{field} already exists",
            details={"field": field, "value": value},
        )


class BusinessRuleError(FlowForgeException):
    """Request is well formed but violates a business rule."""

    error_code = "BUSINESS_RULE_VIOLATION"
    status_code = 400


class StorageConflictError(FlowForgeException):
    """A unit of work kept colliding with concurrent writers and gave up."""

    error_code = "STORAGE_CONFLICT"
    status_code = 503

    def __init__(self, attempts: int):
        super().__init__(
            "The record was changed by another request. Please try again.",
            details={"attempts": attempts},
        )
        self.attempts = attempts
