"""Pydantic schemas for audit log endpoints"""

from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class AuditLogResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    company_id: Optional[UUID] = None
    user_id: Optional[UUID] = None
    action: str
    entity_type: Optional[str] = None
    entity_id: Optional[UUID] = None
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias="metadata_json")
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class Pagination(BaseModel):
    limit: int
    offset: int
    total: int


class AuditLogListResponse(BaseModel):
    """Newest first, limit/offset paginated"""
    success: bool = True
    data: list[AuditLogResponse]
    pagination: Pagination
