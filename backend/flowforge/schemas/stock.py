"""
Stock Pydantic Schemas

Stock items, ledger movements, and the query options for listing them.
"""
from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict
from datetime import datetime
from decimal import Decimal
from enum import Enum

from flowforge.schemas.common import PageOptions, PaginationMeta


# ============================================================================
# Enums
# ============================================================================

class MovementType(str, Enum):
    """
    IN and OUT carry a positive magnitude. ADJUSTMENT carries the new
    absolute on-hand quantity.
    """
    IN = "IN"
    OUT = "OUT"
    ADJUSTMENT = "ADJUSTMENT"


# ============================================================================
# Stock Item Schemas
# ============================================================================

class StockItemBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    category: str = Field("GENERAL", max_length=50)
    location: Optional[str] = Field(None, max_length=100)
    supplier: Optional[str] = Field(None, max_length=100)
    unit_cost: Decimal = Field(Decimal("0"), ge=0)
    reorder_point: Decimal = Field(Decimal("0"), ge=0)
    max_stock: Optional[Decimal] = Field(None, ge=0)

    @field_validator("category")
    @classmethod
    def upper_category(cls, v: str) -> str:
        return v.strip().upper() or "GENERAL"


class StockItemCreate(StockItemBase):
    sku: str = Field(..., min_length=1, max_length=50)
    # Posted as an "Initial Stock" IN movement when positive
    quantity: Decimal = Field(Decimal("0"), ge=0)

    @field_validator("sku")
    @classmethod
    def strip_sku(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("SKU cannot be blank")
        return v


class StockItemUpdate(BaseModel):
    """Descriptive fields only. Quantity changes go through movements."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = Field(None, max_length=50)
    location: Optional[str] = Field(None, max_length=100)
    supplier: Optional[str] = Field(None, max_length=100)
    unit_cost: Optional[Decimal] = Field(None, ge=0)
    reorder_point: Optional[Decimal] = Field(None, ge=0)
    max_stock: Optional[Decimal] = Field(None, ge=0)

    @field_validator("category")
    @classmethod
    def upper_category(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().upper() if v else v


class MovementSummary(BaseModel):
    id: int
    movement_type: str
    quantity: Decimal
    reference: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class StockItemResponse(StockItemBase):
    id: int
    sku: str
    quantity: Decimal
    is_archived: bool
    is_low_stock: bool
    stock_value: Decimal
    last_movement: Optional[MovementSummary] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class StockItemDetailResponse(StockItemResponse):
    total_movements: int = 0
    total_in: Decimal = Decimal("0")
    total_out: Decimal = Decimal("0")


class StockItemListResponse(BaseModel):
    items: List[StockItemResponse]
    pagination: PaginationMeta


class StockItemQuery(PageOptions):
    """Enumerated filters for GET /stock"""
    category: Optional[str] = None
    location: Optional[str] = None
    low_stock: bool = False
    search: Optional[str] = None
    include_archived: bool = False


# ============================================================================
# Movement Schemas
# ============================================================================

class MovementCreate(BaseModel):
    stock_item_id: int
    movement_type: MovementType = Field(..., alias="type")
    quantity: Decimal
    reference: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None

    class Config:
        populate_by_name = True


class MovementResponse(BaseModel):
    id: int
    stock_item_id: int
    movement_type: MovementType
    quantity: Decimal
    previous_quantity: Decimal
    new_quantity: Decimal
    reference: Optional[str] = None
    notes: Optional[str] = None
    user_id: int
    created_at: datetime

    class Config:
        from_attributes = True


class MovementListItem(MovementResponse):
    stock_item_sku: Optional[str] = None
    stock_item_name: Optional[str] = None
    user_email: Optional[str] = None


class MovementListResponse(BaseModel):
    items: List[MovementListItem]
    pagination: PaginationMeta


class MovementPostingResponse(BaseModel):
    """Result of postMovement: the ledger entry and the item it changed"""
    movement: MovementResponse
    stock_item: StockItemResponse


class MovementQuery(PageOptions):
    """Enumerated filters for GET /stock/movements"""
    stock_item_id: Optional[int] = None
    movement_type: Optional[MovementType] = None
    user_id: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


# ============================================================================
# Stats
# ============================================================================

class StockStatsResponse(BaseModel):
    total_items: int
    low_stock_count: int
    out_of_stock_count: int
    total_value: Decimal
    categories: Dict[str, int]
