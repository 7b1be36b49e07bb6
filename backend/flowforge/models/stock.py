"""
Stock models - on-hand quantities and the append-only movement ledger

StockItem.quantity is only ever written by the stock ledger service, in the
same transaction that inserts the StockMovement explaining the change.
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, Text, Boolean, Index, event, func
from sqlalchemy.orm import relationship
from datetime import datetime

from flowforge.db.base import Base
from flowforge.exceptions import BusinessRuleError


class StockItem(Base):
    """A component or raw material held in stock."""
    __tablename__ = "stock_items"

    id = Column(Integer, primary_key=True, index=True)

    # Identification
    sku = Column(String(50), nullable=False)  # unique, case-insensitive (see index below)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(50), default="GENERAL", nullable=False, index=True)
    location = Column(String(100), nullable=True)
    supplier = Column(String(100), nullable=True)

    # Quantities
    quantity = Column(Numeric(18, 4), default=0, nullable=False)
    reorder_point = Column(Numeric(18, 4), default=0, nullable=False)
    max_stock = Column(Numeric(18, 4), nullable=True)

    # Costing
    unit_cost = Column(Numeric(18, 4), default=0, nullable=False)

    # Soft delete: items with movement history are archived, never removed
    is_archived = Column(Boolean, default=False, nullable=False)

    # Optimistic concurrency: bumped on every UPDATE, checked in its WHERE clause
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    movements = relationship(
        "StockMovement",
        back_populates="stock_item",
        order_by="desc(StockMovement.id)",
        lazy="dynamic",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<StockItem {self.sku}: {self.quantity}>"

    @property
    def is_low_stock(self) -> bool:
        return (self.quantity or 0) <= (self.reorder_point or 0)

    @property
    def stock_value(self):
        return (self.quantity or 0) * (self.unit_cost or 0)


Index("uq_stock_items_sku_lower", func.lower(StockItem.sku), unique=True)


class StockMovement(Base):
    """
    Immutable record of one change to a StockItem's quantity.

    ``quantity`` is the magnitude for IN/OUT and the signed delta
    (new - previous) for ADJUSTMENT. ``previous_quantity`` and
    ``new_quantity`` are snapshots taken under the item's row lock.
    """
    __tablename__ = "stock_movements"

    id = Column(Integer, primary_key=True, index=True)
    stock_item_id = Column(Integer, ForeignKey("stock_items.id"), nullable=False, index=True)

    # IN, OUT, ADJUSTMENT
    movement_type = Column(String(20), nullable=False, index=True)
    quantity = Column(Numeric(18, 4), nullable=False)
    previous_quantity = Column(Numeric(18, 4), nullable=False)
    new_quantity = Column(Numeric(18, 4), nullable=False)

    reference = Column(String(255), nullable=True)  # MO number, PO number, "Initial Stock"
    notes = Column(Text, nullable=True)

    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    stock_item = relationship("StockItem", back_populates="movements")
    user = relationship("User")

    def __repr__(self):
        return f"<StockMovement {self.movement_type} {self.quantity} item={self.stock_item_id}>"

    @property
    def signed_delta(self):
        """Quantity change this movement applied, negative for issues."""
        return self.new_quantity - self.previous_quantity


@event.listens_for(StockMovement, "before_update")
def _reject_movement_update(mapper, connection, target):
    raise BusinessRuleError(
        "Stock movements are immutable",
        error_code="MOVEMENT_IMMUTABLE",
        details={"movement_id": target.id},
    )


@event.listens_for(StockMovement, "before_delete")
def _reject_movement_delete(mapper, connection, target):
    raise BusinessRuleError(
        "Stock movements cannot be deleted",
        error_code="MOVEMENT_IMMUTABLE",
        details={"movement_id": target.id},
    )
