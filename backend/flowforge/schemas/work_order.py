"""
Work Order Pydantic Schemas
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Dict
from datetime import datetime
from decimal import Decimal

from flowforge.schemas.auth import UserSummary
from flowforge.schemas.common import OrderStatus, Priority, PageOptions, PaginationMeta


class WorkOrderCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    manufacturing_order_id: int
    work_center_id: int
    priority: Priority = Priority.MEDIUM
    estimated_hours: Optional[Decimal] = Field(None, ge=0)
    due_date: Optional[datetime] = None
    assigned_to_id: Optional[int] = None


class WorkOrderUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    status: Optional[OrderStatus] = None
    priority: Optional[Priority] = None
    progress: Optional[int] = Field(None, ge=0, le=100)
    estimated_hours: Optional[Decimal] = Field(None, ge=0)
    actual_hours: Optional[Decimal] = Field(None, ge=0)
    due_date: Optional[datetime] = None
    assigned_to_id: Optional[int] = None
    comments: Optional[str] = None


class WorkOrderResponse(BaseModel):
    id: int
    order_number: str
    title: str
    description: Optional[str] = None
    manufacturing_order_id: int
    manufacturing_order_number: Optional[str] = None
    work_center_id: int
    work_center_name: Optional[str] = None
    status: OrderStatus
    priority: Priority
    progress: int
    estimated_hours: Optional[Decimal] = None
    actual_hours: Optional[Decimal] = None
    due_date: Optional[datetime] = None
    comments: Optional[str] = None
    assigned_to: Optional[UserSummary] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class WorkOrderListResponse(BaseModel):
    items: List[WorkOrderResponse]
    pagination: PaginationMeta


class WorkOrderQuery(PageOptions):
    """Enumerated filters for GET /work-orders"""
    status: Optional[OrderStatus] = None
    priority: Optional[Priority] = None
    work_center_id: Optional[int] = None
    manufacturing_order_id: Optional[int] = None
    assigned_to_id: Optional[int] = None
    search: Optional[str] = None


class WorkOrderStatsResponse(BaseModel):
    total: int
    by_status: Dict[str, int]
    completed: int
    average_efficiency: int
