"""
Shared Pydantic Schemas

Pagination envelope, the enums several resources share, and the money
presentation helper.
"""
from pydantic import BaseModel, Field
from typing import Optional
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
import math


# ============================================================================
# Enums
# ============================================================================

class Priority(str, Enum):
    """Order and work order priority"""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class OrderStatus(str, Enum):
    """Lifecycle shared by manufacturing orders and work orders"""
    PENDING = "PENDING"
    STARTED = "STARTED"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


# ============================================================================
# Pagination
# ============================================================================

class PageOptions(BaseModel):
    """Page/limit pair every list query carries"""
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class PaginationMeta(BaseModel):
    page: int
    limit: int
    total: int
    pages: int

    @classmethod
    def build(cls, options: PageOptions, total: int) -> "PaginationMeta":
        return cls(
            page=options.page,
            limit=options.limit,
            total=total,
            pages=math.ceil(total / options.limit) if total else 0,
        )


class MessageResponse(BaseModel):
    message: str


# ============================================================================
# Presentation helpers
# ============================================================================

CENT = Decimal("0.01")


def money(value: Optional[Decimal]) -> Optional[Decimal]:
    """Round a monetary amount to cents for output. Never used mid-computation."""
    if value is None:
        return None
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
