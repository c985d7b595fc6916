"""Pydantic schemas for warehouse endpoints"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

WAREHOUSE_TYPE_PATTERN = "^(MAIN|BRANCH|CONSIGNMENT|TRANSIT)$"


class WarehouseCreate(BaseModel):
    """Schema for creating a warehouse.

    tenant_id and company_id come from the company context, never the body.
    """
    code: str = Field(..., min_length=1, max_length=50, description="Unique per company", examples=["GDG-01"])
    name: str = Field(..., min_length=1, max_length=255, examples=["Gudang Utama"])
    type: str = Field("MAIN", pattern=WAREHOUSE_TYPE_PATTERN, examples=["MAIN"])
    address: Optional[str] = None
    city: Optional[str] = Field(None, max_length=255)


class WarehouseUpdate(BaseModel):
    code: Optional[str] = Field(None, min_length=1, max_length=50)
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    type: Optional[str] = Field(None, pattern=WAREHOUSE_TYPE_PATTERN)
    address: Optional[str] = None
    city: Optional[str] = Field(None, max_length=255)
    is_active: Optional[bool] = None


class WarehouseResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    company_id: UUID
    code: str
    name: str
    type: str
    address: Optional[str] = None
    city: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class WarehouseListResponse(BaseModel):
    """Schema for paginated warehouse list response"""
    items: list[WarehouseResponse]
    total: int
    page: int
    per_page: int
    total_pages: int
