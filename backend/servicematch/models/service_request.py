"""
ServiceMatch Backend - ServiceRequest SQLAlchemy Model
=======================================================

What:  ORM model for `service_requests`: free-text needs posted by customers
       ("need a plumber urgently").
Why:   A request's combined vector is the query key for "find matching
       services" and for the provider notification fan-out.

Note:
    categoryId is left NULL at creation (the customer describes the need in
    words; the category is inferred by matching). When it is set, matching is
    restricted to that category.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Float, ForeignKey, Index, String, text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from servicematch.database import Base
from servicematch.models.embeddable import EmbeddableMixin


class ServiceRequest(EmbeddableMixin, Base):
    __tablename__ = "service_requests"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    category_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("categories.id"),
        nullable=True,
    )

    address: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    country: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    postal_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    location_last_updated: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    # Listing a customer's own requests, newest first
    __table_args__ = (
        Index("idx_service_requests_user_created", "user_id", created_at.desc()),
    )

    @property
    def location_label(self) -> Optional[str]:
        parts = [p for p in (self.address, self.city, self.state, self.country) if p]
        return ", ".join(parts) if parts else None

    def __repr__(self) -> str:
        return f"<ServiceRequest(id={self.id}, user_id={self.user_id})>"
