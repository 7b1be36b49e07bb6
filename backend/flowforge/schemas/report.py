"""
Report Pydantic Schemas
"""
from pydantic import BaseModel
from typing import Optional, List, Dict
from datetime import datetime
from decimal import Decimal


class DashboardResponse(BaseModel):
    period_days: int
    manufacturing_orders: int
    active_orders: int
    completed_orders: int
    work_orders: int
    pending_work_orders: int
    work_centers: int
    stock_items: int
    low_stock_items: int


class CategoryValue(BaseModel):
    category: str
    items: int
    quantity: Decimal
    value: Decimal


class MovementTypeSummary(BaseModel):
    movement_type: str
    count: int
    quantity: Decimal


class InventoryReportResponse(BaseModel):
    total_items: int
    total_value: Decimal
    low_stock_count: int
    out_of_stock_count: int
    categories: List[CategoryValue]
    movements_last_30_days: List[MovementTypeSummary]


class CostPeriod(BaseModel):
    period: str
    orders: int
    estimated_cost: Decimal
    actual_cost: Decimal
    variance: Decimal
    variance_percent: Optional[float] = None


class CostReportResponse(BaseModel):
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    group_by: str
    periods: List[CostPeriod]
    totals: Dict[str, Decimal]
