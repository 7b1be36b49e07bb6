"""
Work Order model - one unit of shop-floor work for a manufacturing order
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from datetime import datetime

from flowforge.db.base import Base


class WorkOrder(Base):
    __tablename__ = "work_orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(50), unique=True, nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    manufacturing_order_id = Column(Integer, ForeignKey("manufacturing_orders.id"), nullable=False, index=True)
    work_center_id = Column(Integer, ForeignKey("work_centers.id"), nullable=False, index=True)

    # Same lifecycle as manufacturing orders
    status = Column(String(20), default="PENDING", nullable=False, index=True)
    priority = Column(String(20), default="MEDIUM", nullable=False)
    progress = Column(Integer, default=0, nullable=False)  # 0..100

    estimated_hours = Column(Numeric(10, 2), nullable=True)
    actual_hours = Column(Numeric(10, 2), nullable=True)
    due_date = Column(DateTime, nullable=True)
    comments = Column(Text, nullable=True)

    assigned_to_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    manufacturing_order = relationship("ManufacturingOrder", back_populates="work_orders")
    work_center = relationship("WorkCenter", back_populates="work_orders")
    assigned_to = relationship("User")

    def __repr__(self):
        return f"<WorkOrder {self.order_number} ({self.status})>"
