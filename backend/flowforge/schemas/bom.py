"""
Bill of Materials Pydantic Schemas
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Dict
from datetime import datetime
from decimal import Decimal
from enum import Enum

from flowforge.schemas.common import PageOptions, PaginationMeta


class BOMStatus(str, Enum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    OBSOLETE = "OBSOLETE"


# ============================================================================
# BOM Item Schemas
# ============================================================================

class BOMItemCreate(BaseModel):
    component_id: int
    quantity: Decimal = Field(..., gt=0, description="Quantity per one unit of product")
    unit: str = Field("pcs", max_length=20)
    sequence: Optional[int] = Field(None, ge=0, description="Defaults to position in the list")
    notes: Optional[str] = None


class BOMItemResponse(BaseModel):
    id: int
    component_id: int
    component_sku: Optional[str] = None
    component_name: Optional[str] = None
    quantity: Decimal
    unit: str
    sequence: int
    notes: Optional[str] = None
    unit_cost: Decimal = Decimal("0")
    line_cost: Decimal = Decimal("0")
    available: Decimal = Decimal("0")
    can_fulfill: bool = True

    class Config:
        from_attributes = True


# ============================================================================
# BOM Schemas
# ============================================================================

class BOMCreate(BaseModel):
    product_id: int
    name: str = Field(..., min_length=1, max_length=255)
    version: str = Field("1.0", min_length=1, max_length=20)
    status: BOMStatus = BOMStatus.DRAFT
    notes: Optional[str] = None
    items: List[BOMItemCreate]


class BOMUpdate(BaseModel):
    """Header fields, plus an optional full replacement of the item list"""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    version: Optional[str] = Field(None, min_length=1, max_length=20)
    status: Optional[BOMStatus] = None
    notes: Optional[str] = None
    items: Optional[List[BOMItemCreate]] = None


class BOMResponse(BaseModel):
    id: int
    product_id: int
    product_name: Optional[str] = None
    product_sku: Optional[str] = None
    name: str
    version: str
    status: BOMStatus
    notes: Optional[str] = None
    unit_cost: Decimal = Decimal("0")
    component_count: int = 0
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class BOMDetailResponse(BOMResponse):
    can_build_one: bool = True
    items: List[BOMItemResponse] = []


class BOMListResponse(BaseModel):
    items: List[BOMResponse]
    pagination: PaginationMeta


class BOMQuery(PageOptions):
    """Enumerated filters for GET /bom"""
    product_id: Optional[int] = None
    status: Optional[BOMStatus] = None
    search: Optional[str] = None


# ============================================================================
# Requirements (cost engine output)
# ============================================================================

class RequirementsRequest(BaseModel):
    product_id: int
    quantity: Decimal = Field(..., gt=0)


class ComponentRequirement(BaseModel):
    component_id: int
    component_sku: Optional[str] = None
    component_name: str
    unit: str
    quantity_per_unit: Decimal
    required: Decimal
    available: Decimal
    shortfall: Decimal
    unit_cost: Decimal
    line_cost: Decimal
    can_fulfill: bool


class RequirementsSummary(BaseModel):
    total_cost: Decimal
    can_fulfill: bool
    shortfall_count: int


class RequirementsResponse(BaseModel):
    bom_id: int
    product_id: int
    quantity: Decimal
    requirements: List[ComponentRequirement]
    summary: RequirementsSummary


class BOMStatsResponse(BaseModel):
    total_boms: int
    active_boms: int
    products_without_bom: int
    by_status: Dict[str, int]
