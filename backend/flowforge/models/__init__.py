"""
Database models
"""
from flowforge.models.user import User, RefreshToken
from flowforge.models.product import Product
from flowforge.models.stock import StockItem, StockMovement
from flowforge.models.bom import BillOfMaterials, BOMItem
from flowforge.models.manufacturing_order import ManufacturingOrder
from flowforge.models.work_center import WorkCenter
from flowforge.models.work_order import WorkOrder

__all__ = [
    "User",
    "RefreshToken",
    "Product",
    "StockItem",
    "StockMovement",
    "BillOfMaterials",
    "BOMItem",
    "ManufacturingOrder",
    "WorkCenter",
    "WorkOrder",
]
