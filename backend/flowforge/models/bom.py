"""
Bill of Materials models
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, Text, Index, text
from sqlalchemy.orm import relationship
from datetime import datetime

from flowforge.db.base import Base


class BillOfMaterials(Base):
    """
    A versioned recipe for a Product.

    Status: DRAFT, ACTIVE, INACTIVE, OBSOLETE. At most one ACTIVE per product,
    guarded by the partial unique index below and by the activation service.
    """
    __tablename__ = "bill_of_materials"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)

    name = Column(String(255), nullable=False)
    version = Column(String(20), default="1.0", nullable=False)
    status = Column(String(20), default="DRAFT", nullable=False, index=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    product = relationship("Product", back_populates="boms")
    items = relationship(
        "BOMItem",
        back_populates="bom",
        cascade="all, delete-orphan",
        order_by="BOMItem.sequence",
    )

    __table_args__ = (
        Index(
            "uq_bom_one_active_per_product",
            "product_id",
            unique=True,
            sqlite_where=text("status = 'ACTIVE'"),
            postgresql_where=text("status = 'ACTIVE'"),
        ),
    )

    def __repr__(self):
        return f"<BOM {self.name} v{self.version} ({self.status})>"


class BOMItem(Base):
    """One component requirement, per single unit of the product."""
    __tablename__ = "bom_items"

    id = Column(Integer, primary_key=True, index=True)
    bom_id = Column(Integer, ForeignKey("bill_of_materials.id"), nullable=False, index=True)
    component_id = Column(Integer, ForeignKey("stock_items.id"), nullable=False, index=True)

    quantity = Column(Numeric(18, 4), nullable=False)
    unit = Column(String(20), default="pcs", nullable=False)
    sequence = Column(Integer, default=0, nullable=False)
    notes = Column(Text, nullable=True)

    bom = relationship("BillOfMaterials", back_populates="items")
    component = relationship("StockItem")

    def __repr__(self):
        return f"<BOMItem bom={self.bom_id} component={self.component_id} x{self.quantity}>"
