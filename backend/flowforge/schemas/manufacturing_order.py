"""
Manufacturing Order Pydantic Schemas
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Dict
from datetime import datetime
from decimal import Decimal

from flowforge.schemas.auth import UserSummary
from flowforge.schemas.common import OrderStatus, Priority, PageOptions, PaginationMeta


class ManufacturingOrderCreate(BaseModel):
    product_id: int
    quantity: Decimal = Field(..., gt=0)
    priority: Priority = Priority.MEDIUM
    deadline: Optional[datetime] = None
    assigned_to_id: Optional[int] = None
    notes: Optional[str] = None


class ManufacturingOrderUpdate(BaseModel):
    """Field updates; a changed status is routed through the state machine"""
    quantity: Optional[Decimal] = Field(None, gt=0)
    priority: Optional[Priority] = None
    deadline: Optional[datetime] = None
    assigned_to_id: Optional[int] = None
    notes: Optional[str] = None
    status: Optional[OrderStatus] = None
    actual_cost: Optional[Decimal] = Field(None, ge=0)


class OrderCompleteRequest(BaseModel):
    actual_cost: Optional[Decimal] = Field(None, ge=0)


class WorkOrderBrief(BaseModel):
    id: int
    order_number: str
    title: str
    status: OrderStatus
    progress: int
    work_center_id: int

    class Config:
        from_attributes = True


class ManufacturingOrderResponse(BaseModel):
    id: int
    order_number: str
    product_id: int
    product_name: Optional[str] = None
    bom_id: Optional[int] = None
    quantity: Decimal
    priority: Priority
    status: OrderStatus
    deadline: Optional[datetime] = None
    notes: Optional[str] = None
    estimated_cost: Optional[Decimal] = None
    actual_cost: Optional[Decimal] = None
    progress: int = 0
    assigned_to: Optional[UserSummary] = None
    created_by_id: Optional[int] = None
    work_order_count: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ManufacturingOrderDetailResponse(ManufacturingOrderResponse):
    work_orders: List[WorkOrderBrief] = []


class ManufacturingOrderListResponse(BaseModel):
    items: List[ManufacturingOrderResponse]
    pagination: PaginationMeta


class OrderQuery(PageOptions):
    """Enumerated filters for GET /manufacturing-orders"""
    status: Optional[OrderStatus] = None
    priority: Optional[Priority] = None
    assigned_to_id: Optional[int] = None
    search: Optional[str] = None


class MaterialLine(BaseModel):
    component_id: int
    component_sku: Optional[str] = None
    component_name: str
    required: Decimal
    available: Decimal
    shortfall: Decimal
    line_cost: Decimal
    can_fulfill: bool


class MaterialAvailabilityResponse(BaseModel):
    order_id: int
    order_number: str
    bom_id: int
    quantity: Decimal
    can_manufacture: bool
    estimated_cost: Decimal
    materials: List[MaterialLine]


class OrderStatsResponse(BaseModel):
    total: int
    by_status: Dict[str, int]
    by_priority: Dict[str, int]
