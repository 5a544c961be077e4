"""Create marketplace tables with embedding columns

Revision ID: 001
Revises: None
Create Date: 2026-10-18 00:00:00.000000+00:00

What:  Enables pgvector and creates users, service_providers, categories,
       services and service_requests, each embeddable table with four
       vector(768) columns.
How:   HNSW index (vector_cosine_ops) on services.combined_vector serves
       ORDER BY combined_vector <=> :query LIMIT n.

Rollback: downgrade() drops every table (destructive). The vector extension
is left installed; other database objects may depend on it.
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from pgvector.sqlalchemy import Vector
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

EMBEDDING_DIMENSIONS = 768


def _uuid_pk() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        server_default=sa.text("gen_random_uuid()"),
        primary_key=True,
    )


def _timestamps() -> list:
    return [
        sa.Column(
            "created_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
    ]


def _address() -> list:
    return [
        sa.Column("address", sa.String(255), nullable=True),
        sa.Column("city", sa.String(100), nullable=True),
        sa.Column("state", sa.String(100), nullable=True),
        sa.Column("country", sa.String(100), nullable=True),
        sa.Column("postal_code", sa.String(20), nullable=True),
    ]


def _embeddable() -> list:
    return [
        sa.Column("title", sa.String(255), nullable=True),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column(
            "tags",
            postgresql.ARRAY(sa.String(100)),
            server_default=sa.text("'{}'"),
            nullable=False,
        ),
        sa.Column("title_vector", Vector(EMBEDDING_DIMENSIONS), nullable=True),
        sa.Column("description_vector", Vector(EMBEDDING_DIMENSIONS), nullable=True),
        sa.Column("tags_vector", Vector(EMBEDDING_DIMENSIONS), nullable=True),
        sa.Column(
            "combined_vector",
            Vector(EMBEDDING_DIMENSIONS),
            nullable=True,
            comment="Embedding of title. description. tags; the similarity key",
        ),
        sa.Column("embedding_updated_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS vector")
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    op.create_table(
        "users",
        _uuid_pk(),
        sa.Column("first_name", sa.String(100), nullable=True),
        sa.Column("last_name", sa.String(100), nullable=True),
        sa.Column("email", sa.String(255), nullable=True, unique=True),
        sa.Column(
            "created_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
    )

    op.create_table(
        "service_providers",
        _uuid_pk(),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
    )

    op.create_table(
        "categories",
        _uuid_pk(),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("slug", sa.String(100), nullable=False, unique=True),
    )

    op.create_table(
        "services",
        _uuid_pk(),
        sa.Column(
            "provider_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("service_providers.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "category_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("categories.id"),
            nullable=False,
        ),
        *_embeddable(),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), server_default="USD", nullable=False),
        sa.Column(
            "images",
            postgresql.ARRAY(sa.String(500)),
            server_default=sa.text("'{}'"),
            nullable=False,
        ),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        *_address(),
        *_timestamps(),
    )
    op.create_index("ix_services_provider_id", "services", ["provider_id"])
    op.create_index("ix_services_category_id", "services", ["category_id"])
    op.create_index("idx_services_active_category", "services", ["is_active", "category_id"])
    op.create_index(
        "idx_services_created_at",
        "services",
        [sa.text("created_at DESC")],
    )
    op.create_index(
        "idx_services_combined_vector_hnsw",
        "services",
        ["combined_vector"],
        postgresql_using="hnsw",
        postgresql_ops={"combined_vector": "vector_cosine_ops"},
    )

    op.create_table(
        "service_requests",
        _uuid_pk(),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "category_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("categories.id"),
            nullable=True,
        ),
        *_embeddable(),
        *_address(),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("location_last_updated", postgresql.TIMESTAMP(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "idx_service_requests_user_created",
        "service_requests",
        ["user_id", sa.text("created_at DESC")],
    )


def downgrade() -> None:
    op.drop_index("idx_service_requests_user_created", table_name="service_requests")
    op.drop_table("service_requests")
    op.drop_index("idx_services_combined_vector_hnsw", table_name="services")
    op.drop_index("idx_services_created_at", table_name="services")
    op.drop_index("idx_services_active_category", table_name="services")
    op.drop_index("ix_services_category_id", table_name="services")
    op.drop_index("ix_services_provider_id", table_name="services")
    op.drop_table("services")
    op.drop_table("categories")
    op.drop_table("service_providers")
    op.drop_table("users")
