"""
Product Pydantic Schemas
"""
from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime


class ProductBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    sku: Optional[str] = Field(None, max_length=50)
    category: str = Field("GENERAL", max_length=50)
    description: Optional[str] = None
    is_active: bool = True

    @field_validator("category")
    @classmethod
    def upper_category(cls, v: str) -> str:
        return v.strip().upper() or "GENERAL"


class ProductCreate(ProductBase):
    pass


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    sku: Optional[str] = Field(None, max_length=50)
    category: Optional[str] = Field(None, max_length=50)
    description: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("category")
    @classmethod
    def upper_category(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().upper() if v else v


class ProductResponse(ProductBase):
    id: int
    active_bom_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
