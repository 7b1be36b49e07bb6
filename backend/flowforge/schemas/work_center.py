"""
Work Center Pydantic Schemas
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Dict
from datetime import datetime
from decimal import Decimal
from enum import Enum

from flowforge.schemas.common import PageOptions, PaginationMeta


class WorkCenterType(str, Enum):
    ASSEMBLY = "ASSEMBLY"
    MACHINING = "MACHINING"
    QUALITY = "QUALITY"
    PACKAGING = "PACKAGING"
    OTHER = "OTHER"


class WorkCenterStatus(str, Enum):
    IDLE = "IDLE"
    RUNNING = "RUNNING"
    MAINTENANCE = "MAINTENANCE"
    OFFLINE = "OFFLINE"


class WorkCenterBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: WorkCenterType = WorkCenterType.OTHER
    description: Optional[str] = None
    location: Optional[str] = Field(None, max_length=100)
    capacity: int = Field(1, ge=1)
    hourly_rate: Decimal = Field(Decimal("0"), ge=0)


class WorkCenterCreate(WorkCenterBase):
    status: WorkCenterStatus = WorkCenterStatus.IDLE


class WorkCenterUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    type: Optional[WorkCenterType] = None
    description: Optional[str] = None
    location: Optional[str] = Field(None, max_length=100)
    status: Optional[WorkCenterStatus] = None
    capacity: Optional[int] = Field(None, ge=1)
    hourly_rate: Optional[Decimal] = Field(None, ge=0)


class WorkCenterResponse(WorkCenterBase):
    id: int
    status: WorkCenterStatus
    active_work_orders: int = 0
    utilization: float = 0.0
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class WorkCenterListResponse(BaseModel):
    items: List[WorkCenterResponse]
    pagination: PaginationMeta


class WorkCenterQuery(PageOptions):
    """Enumerated filters for GET /work-centers"""
    type: Optional[WorkCenterType] = None
    status: Optional[WorkCenterStatus] = None
    search: Optional[str] = None


class WorkCenterStatsResponse(BaseModel):
    total: int
    by_status: Dict[str, int]
    by_type: Dict[str, int]
    average_utilization: float
