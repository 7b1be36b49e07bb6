"""
Work Center model - a station or cell where work orders are executed
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Text, Index, func
from sqlalchemy.orm import relationship
from datetime import datetime

from flowforge.db.base import Base


class WorkCenter(Base):
    __tablename__ = "work_centers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    # ASSEMBLY, MACHINING, QUALITY, PACKAGING, OTHER
    type = Column(String(20), default="OTHER", nullable=False)
    description = Column(Text, nullable=True)
    location = Column(String(100), nullable=True)
    # IDLE, RUNNING, MAINTENANCE, OFFLINE
    status = Column(String(20), default="IDLE", nullable=False, index=True)

    capacity = Column(Integer, default=1, nullable=False)  # concurrent work orders
    hourly_rate = Column(Numeric(18, 4), default=0, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    work_orders = relationship("WorkOrder", back_populates="work_center")

    def __repr__(self):
        return f"<WorkCenter {self.name} ({self.status})>"


Index("uq_work_centers_name_lower", func.lower(WorkCenter.name), unique=True)
