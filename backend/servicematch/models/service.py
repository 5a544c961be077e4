"""
ServiceMatch Backend - Service SQLAlchemy Model
================================================

What:  ORM model for the `services` table: offerings published by providers.
Why:   Services are the targets of every similarity query.

Query Patterns:
    - Semantic search: WHERE is_active AND combined_vector IS NOT NULL [AND filters]
                       ORDER BY combined_vector <=> :query LIMIT :n OFFSET :m
      → Uses the HNSW cosine index created in migration 001
    - Backfill scan:   WHERE combined_vector IS NULL AND is_active
                       ORDER BY created_at DESC LIMIT :batch
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import Boolean, ForeignKey, Index, Numeric, String, text
from sqlalchemy.dialects.postgresql import ARRAY, TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from servicematch.database import Base
from servicematch.models.embeddable import EmbeddableMixin


class Service(EmbeddableMixin, Base):
    """
    A service offered by a provider.

    Lifecycle:
        1. Created by the provider; embeddings are generated best-effort
        2. Updated; vectors are regenerated only when title, description or
           tags change
        3. Deactivated (is_active = false) instead of deleted, which removes
           it from every similarity query
    """

    __tablename__ = "services"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    provider_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("service_providers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    category_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("categories.id"),
        nullable=False,
        index=True,
    )

    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    images: Mapped[List[str]] = mapped_column(
        ARRAY(String(500)),
        nullable=False,
        default=list,
        server_default=text("'{}'"),
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=text("true"),
    )

    address: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    country: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    postal_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

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

    __table_args__ = (
        Index("idx_services_active_category", "is_active", "category_id"),
        Index("idx_services_created_at", created_at.desc()),
        Index(
            "idx_services_combined_vector_hnsw",
            "combined_vector",
            postgresql_using="hnsw",
            postgresql_ops={"combined_vector": "vector_cosine_ops"},
        ),
    )

    def __repr__(self) -> str:
        return f"<Service(id={self.id}, title='{self.title}', active={self.is_active})>"
