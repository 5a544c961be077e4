"""
ServiceMatch Backend - Service Request Schemas
===============================================

Request bodies and responses for /api/service-requests.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from servicematch.schemas.matching import Pagination


class ServiceRequestCreate(BaseModel):
    """
    What the customer needs, in their own words.

    category_id is optional: when omitted, matching runs across all categories.
    """
    title: Optional[str] = Field(default=None, max_length=255)
    description: str = Field(min_length=1, description="e.g. 'need a plumber urgently'")
    tags: List[str] = Field(default_factory=list, max_length=30)
    category_id: Optional[uuid.UUID] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)

    @field_validator("tags")
    @classmethod
    def strip_tags(cls, v: List[str]) -> List[str]:
        return [t.strip() for t in v if t and t.strip()]


class ServiceRequestUpdate(BaseModel):
    title: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = Field(default=None, min_length=1)
    tags: Optional[List[str]] = Field(default=None, max_length=30)
    category_id: Optional[uuid.UUID] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)

    @field_validator("description", "tags")
    @classmethod
    def reject_null(cls, v):
        if v is None:
            raise ValueError("may be omitted but not set to null")
        return v

    @field_validator("tags")
    @classmethod
    def strip_tags(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return None
        return [t.strip() for t in v if t and t.strip()]


class ServiceRequestResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    category_id: Optional[uuid.UUID] = None
    title: Optional[str] = None
    description: str
    tags: List[str] = Field(default_factory=list)
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    has_embedding: bool
    embedding_updated_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ServiceRequestListResponse(BaseModel):
    service_requests: List[ServiceRequestResponse]
    pagination: Pagination

    @classmethod
    def build(cls, items, total: int, page: int, limit: int) -> "ServiceRequestListResponse":
        return cls(
            service_requests=[ServiceRequestResponse.model_validate(i) for i in items],
            pagination=Pagination.build(total, page, limit),
        )
