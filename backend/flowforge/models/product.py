"""
Product model - the finished goods that bills of materials describe
"""
from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text
from sqlalchemy.orm import relationship
from datetime import datetime

from flowforge.db.base import Base


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    sku = Column(String(50), unique=True, nullable=True, index=True)
    category = Column(String(50), default="GENERAL", nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    boms = relationship("BillOfMaterials", back_populates="product")
    manufacturing_orders = relationship("ManufacturingOrder", back_populates="product")

    def __repr__(self):
        return f"<Product {self.sku or self.id}: {self.name}>"
