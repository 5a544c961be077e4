"""
ServiceMatch Backend - Embeddable Entity Mixin
===============================================

What:  Columns shared by every entity that takes part in semantic matching
       (Service and ServiceRequest): the free-text fields and their vectors.
How:   A plain mixin; SQLAlchemy copies the mapped columns onto each model.

Vector columns:
    title_vector        embedding of the title (NULL when the title is blank)
    description_vector  embedding of the description
    tags_vector         embedding of the joined tags (NULL when there are no tags)
    combined_vector     embedding of title + description + tags in one string;
                        the only column used for similarity ranking
    embedding_updated_at  when the vectors were last written

    An entity with combined_vector IS NULL is never returned by a similarity
    query. Only EmbeddingStore writes these columns.
"""

from datetime import datetime
from typing import List, Optional

from pgvector.sqlalchemy import Vector
from sqlalchemy import String, Text, text
from sqlalchemy.dialects.postgresql import ARRAY, TIMESTAMP
from sqlalchemy.orm import Mapped, mapped_column

from servicematch.config import settings

EMBEDDING_DIMENSIONS = settings.embedding_dimensions

# Fields whose change makes the stored vectors stale
EMBEDDED_TEXT_FIELDS = ("title", "description", "tags")


class EmbeddableMixin:
    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    tags: Mapped[List[str]] = mapped_column(
        ARRAY(String(100)),
        nullable=False,
        default=list,
        server_default=text("'{}'"),
    )

    title_vector = mapped_column(Vector(EMBEDDING_DIMENSIONS), nullable=True)
    description_vector = mapped_column(Vector(EMBEDDING_DIMENSIONS), nullable=True)
    tags_vector = mapped_column(Vector(EMBEDDING_DIMENSIONS), nullable=True)
    combined_vector = mapped_column(Vector(EMBEDDING_DIMENSIONS), nullable=True)
    embedding_updated_at: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=True,
        default=None,
    )

    @property
    def has_embedding(self) -> bool:
        # pgvector hands back numpy arrays; never test them for truthiness
        return self.combined_vector is not None
