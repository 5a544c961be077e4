"""
ServiceMatch Backend - Service Schemas
=======================================

Request bodies and responses for /api/services.

Vectors are never part of the API. Clients only see whether an entity has
been embedded (`has_embedding`) and when (`embedding_updated_at`).
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


def _clean_tags(tags: Optional[List[str]]) -> Optional[List[str]]:
    if tags is None:
        return None
    return [t.strip() for t in tags if t and t.strip()]


class ServiceCreate(BaseModel):
    provider_id: uuid.UUID = Field(description="Provider publishing the service")
    category_id: uuid.UUID = Field(description="Category of the service")
    title: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1, description="Free-text description used for matching")
    tags: List[str] = Field(default_factory=list, max_length=30)
    price: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    images: List[str] = Field(default_factory=list, description="Image URLs (uploaded elsewhere)")
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None

    @field_validator("tags")
    @classmethod
    def strip_tags(cls, v: List[str]) -> List[str]:
        return _clean_tags(v) or []


class ServiceUpdate(BaseModel):
    """
    Partial update. Only fields present in the body are applied; changing
    title, description or tags regenerates the service's embeddings.
    """
    category_id: Optional[uuid.UUID] = None
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, min_length=1)
    tags: Optional[List[str]] = Field(default=None, max_length=30)
    price: Optional[Decimal] = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    images: Optional[List[str]] = None
    is_active: Optional[bool] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None

    @field_validator(
        "category_id", "description", "tags", "price", "currency", "images", "is_active"
    )
    @classmethod
    def reject_null(cls, v):
        # Omit a field to leave it unchanged; the column itself is NOT NULL.
        if v is None:
            raise ValueError("may be omitted but not set to null")
        return v

    @field_validator("tags")
    @classmethod
    def strip_tags(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return _clean_tags(v)


class ServiceResponse(BaseModel):
    id: uuid.UUID
    provider_id: uuid.UUID
    category_id: uuid.UUID
    title: Optional[str] = None
    description: str
    tags: List[str] = Field(default_factory=list)
    price: Decimal
    currency: str
    images: List[str] = Field(default_factory=list)
    is_active: bool
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None
    has_embedding: bool = Field(description="Whether the service is searchable yet")
    embedding_updated_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
