"""
Manufacturing Order model

Lifecycle: PENDING -> STARTED <-> PAUSED -> COMPLETED, with CANCELLED
reachable from any non-terminal status.
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from datetime import datetime

from flowforge.db.base import Base


class ManufacturingOrder(Base):
    __tablename__ = "manufacturing_orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(50), unique=True, nullable=False, index=True)

    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    # BOM the estimate was computed from (and consumed on completion)
    bom_id = Column(Integer, ForeignKey("bill_of_materials.id"), nullable=True, index=True)

    quantity = Column(Numeric(18, 4), nullable=False)

    # LOW, MEDIUM, HIGH, URGENT
    priority = Column(String(20), default="MEDIUM", nullable=False)
    # PENDING, STARTED, PAUSED, COMPLETED, CANCELLED
    status = Column(String(20), default="PENDING", nullable=False, index=True)

    deadline = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)

    # Costs
    estimated_cost = Column(Numeric(18, 4), nullable=True)
    actual_cost = Column(Numeric(18, 4), nullable=True)

    progress = Column(Integer, default=0, nullable=False)

    assigned_to_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    product = relationship("Product", back_populates="manufacturing_orders")
    bom = relationship("BillOfMaterials")
    assigned_to = relationship("User", foreign_keys=[assigned_to_id])
    created_by = relationship("User", foreign_keys=[created_by_id])
    work_orders = relationship(
        "WorkOrder",
        back_populates="manufacturing_order",
        order_by="WorkOrder.id",
    )

    def __repr__(self):
        return f"<ManufacturingOrder {self.order_number}: {self.quantity} ({self.status})>"
