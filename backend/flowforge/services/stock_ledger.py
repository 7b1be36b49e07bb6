"""
Stock Ledger

The only code path that changes StockItem.quantity. Every change is paired
with an immutable StockMovement written in the same transaction.

Serialization on one item:
    - the row is read with SELECT ... FOR UPDATE (row lock on PostgreSQL)
    - StockItem.version is checked on UPDATE (optimistic, works on SQLite)

The ledger flushes but never commits; callers wrap it in
``run_in_transaction`` so the quantity update, the movement row and any other
work in the same request succeed or fail together.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from flowforge.exceptions import (
    BusinessRuleError,
    InsufficientStockError,
    InvalidQuantityError,
    NotFoundError,
)
from flowforge.models.stock import StockItem, StockMovement

logger = logging.getLogger(__name__)

MOVEMENT_IN = "IN"
MOVEMENT_OUT = "OUT"
MOVEMENT_ADJUSTMENT = "ADJUSTMENT"
MOVEMENT_TYPES = (MOVEMENT_IN, MOVEMENT_OUT, MOVEMENT_ADJUSTMENT)


@dataclass
class LedgerPosting:
    movement: StockMovement
    stock_item: StockItem


def to_quantity(value: Any) -> Decimal:
    """Coerce a user-supplied quantity to a finite Decimal."""
    if isinstance(value, bool) or value is None:
        raise InvalidQuantityError("Quantity is required", quantity=value)
    try:
        quantity = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidQuantityError("Quantity must be a number", quantity=value)
    if not quantity.is_finite():
        raise InvalidQuantityError("Quantity must be a finite number", quantity=value)
    return quantity


class StockLedger:
    """Posts movements against stock items inside the caller's transaction."""

    def __init__(self, db: Session):
        self._db = db

    def find_stock_item(self, stock_item_id: int) -> StockItem:
        item = self._db.get(StockItem, stock_item_id)
        if item is None:
            raise NotFoundError("Stock item", stock_item_id)
        return item

    def lock_stock_item(self, stock_item_id: int) -> StockItem:
        """Read the item's current row, locked for the rest of the transaction."""
        item = self._db.execute(
            select(StockItem)
            .where(StockItem.id == stock_item_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if item is None:
            raise NotFoundError("Stock item", stock_item_id)
        return item

    def post_movement(
        self,
        stock_item_id: int,
        movement_type: str,
        quantity: Any,
        *,
        user_id: int,
        reference: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> LedgerPosting:
        """
        Apply one movement to a stock item.

        IN and OUT take a positive magnitude. ADJUSTMENT takes the new absolute
        quantity and records the signed difference as the movement quantity.

        Raises:
            NotFoundError: unknown stock item
            InvalidQuantityError: non-positive IN/OUT, negative ADJUSTMENT
            InsufficientStockError: OUT larger than the on-hand quantity
            BusinessRuleError: unknown movement type or archived item
        """
        movement_type = getattr(movement_type, "value", movement_type)
        if movement_type not in MOVEMENT_TYPES:
            raise BusinessRuleError(
                f"Unknown movement type: {movement_type}",
                error_code="INVALID_MOVEMENT_TYPE",
                details={"movement_type": movement_type},
            )

        amount = to_quantity(quantity)
        if movement_type == MOVEMENT_ADJUSTMENT:
            if amount < 0:
                raise InvalidQuantityError("Adjusted quantity cannot be negative", quantity=amount)
        elif amount <= 0:
            raise InvalidQuantityError(quantity=amount)

        item = self.lock_stock_item(stock_item_id)
        if item.is_archived:
            raise BusinessRuleError(
                "Stock item is archived and cannot receive movements",
                error_code="STOCK_ITEM_ARCHIVED",
                details={"stock_item_id": item.id},
            )

        previous = Decimal(item.quantity or 0)

        if movement_type == MOVEMENT_IN:
            new_quantity = previous + amount
            recorded = amount
        elif movement_type == MOVEMENT_OUT:
            if amount > previous:
                raise InsufficientStockError(
                    available=previous,
                    requested=amount,
                    stock_item_id=item.id,
                    sku=item.sku,
                )
            new_quantity = previous - amount
            recorded = amount
        else:
            new_quantity = amount
            recorded = new_quantity - previous

        movement = StockMovement(
            stock_item_id=item.id,
            movement_type=movement_type,
            quantity=recorded,
            previous_quantity=previous,
            new_quantity=new_quantity,
            reference=reference,
            notes=notes,
            user_id=user_id,
        )
        item.quantity = new_quantity
        self._db.add(movement)
        self._db.flush()

        logger.info(
            "Stock movement posted",
            extra={
                "stock_item_id": item.id,
                "sku": item.sku,
                "movement_type": movement_type,
                "quantity": str(recorded),
                "previous_quantity": str(previous),
                "new_quantity": str(new_quantity),
                "reference": reference,
                "user_id": user_id,
            },
        )
        return LedgerPosting(movement=movement, stock_item=item)
