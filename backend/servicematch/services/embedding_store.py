"""
ServiceMatch Backend - Embedding Store
=======================================

What:  Reads and writes the vector columns of embeddable entities (services
       and service requests).
Why:   One place owns "text fields → vectors → row", so every path (create,
       update, lazy regeneration, backfill) writes vectors the same way.
How:   Vectors are written with a single partial UPDATE of the four vector
       columns plus embedding_updated_at. Values are bound through the
       pgvector column type, never formatted into SQL strings.

Staleness rule:
    Vectors are derived from title, description and tags only. Changing any
    other field (price, images, location, ...) never triggers regeneration.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, List, Mapping, Optional, Type, Union
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from servicematch.exceptions import NotFoundError
from servicematch.models.embeddable import EMBEDDED_TEXT_FIELDS, EmbeddableMixin
from servicematch.services.embedding_base import (
    EmbeddingProvider,
    EmbeddingSet,
    check_dimensions,
)

logger = logging.getLogger(__name__)

EmbeddableModel = Type[EmbeddableMixin]


def _normalize_tags(value: Optional[Iterable[str]]) -> List[str]:
    return list(value or [])


def text_fields_changed(entity: Any, updates: Mapping[str, Any]) -> bool:
    """
    True when `updates` changes title, description or tags of `entity`.

    Fields absent from `updates` are unchanged. Tags compare as ordered lists,
    so reordering tags counts as a change.
    """
    for field in EMBEDDED_TEXT_FIELDS:
        if field not in updates:
            continue
        new, old = updates[field], getattr(entity, field)
        if field == "tags":
            if _normalize_tags(new) != _normalize_tags(old):
                return True
        elif (new or None) != (old or None):
            return True
    return False


def _as_list(vector: Any) -> Optional[List[float]]:
    # pgvector hands back numpy arrays; callers get plain lists
    if vector is None:
        return None
    return [float(v) for v in vector]


class EmbeddingStore:
    """
    Args:
        provider: Embedding provider used by regenerate().
    """

    def __init__(self, provider: EmbeddingProvider):
        self.provider = provider

    async def persist(
        self,
        db: AsyncSession,
        model: EmbeddableModel,
        entity_id: Union[UUID, str],
        embeddings: EmbeddingSet,
    ) -> datetime:
        """
        Write all four vectors of one row and stamp embedding_updated_at.
        Returns the stamp.

        A None member clears its column (for example a title that was removed).
        Every present vector is checked against the provider dimension first;
        nothing is written when one is malformed.

        Raises:
            MalformedVectorError: a vector has the wrong number of entries.
        """
        columns = embeddings.as_columns()
        for column, vector in columns.items():
            if vector is not None:
                check_dimensions(vector, self.provider.dimensions, field=column)

        stamp = datetime.now(timezone.utc)
        await db.execute(
            update(model)
            .where(model.id == entity_id)
            .values(**columns, embedding_updated_at=stamp)
            .execution_options(synchronize_session=False)
        )
        logger.debug(
            "Stored embeddings for %s %s (combined=%s)",
            model.__tablename__,
            entity_id,
            embeddings.combined is not None,
        )
        return stamp

    async def get_combined_vector(
        self,
        db: AsyncSession,
        model: EmbeddableModel,
        entity_id: Union[UUID, str],
    ) -> Optional[List[float]]:
        """
        Returns:
            The stored combined vector, or None if the row has not been embedded.

        Raises:
            NotFoundError: no row with this id.
        """
        result = await db.execute(
            select(model.id, model.combined_vector).where(model.id == entity_id)
        )
        row = result.first()
        if row is None:
            raise NotFoundError(resource=model.__name__, resource_id=str(entity_id))
        return _as_list(row.combined_vector)

    async def regenerate(self, db: AsyncSession, entity: EmbeddableMixin) -> EmbeddingSet:
        """
        Embed the entity's current text fields and persist the result.

        The loaded entity gets the new vectors as its committed state, so the
        ORM does not issue a second UPDATE for them.

        Raises:
            EmbeddingGenerationError (or subclass), MalformedVectorError
        """
        embeddings = await self.provider.generate_service_embeddings(
            entity.title, entity.description, entity.tags
        )
        stamp = await self.persist(db, type(entity), entity.id, embeddings)
        for column, vector in embeddings.as_columns().items():
            set_committed_value(entity, column, vector)
        set_committed_value(entity, "embedding_updated_at", stamp)
        logger.info(
            "Regenerated embeddings for %s %s", type(entity).__tablename__, entity.id
        )
        return embeddings

    async def ensure_combined_vector(
        self, db: AsyncSession, entity: EmbeddableMixin
    ) -> Optional[List[float]]:
        """
        Lazy regeneration: the stored combined vector, or a freshly generated one.

        Returns None only when the entity has no embeddable text at all.
        """
        if entity.has_embedding:
            return _as_list(entity.combined_vector)
        logger.info(
            "%s %s has no combined vector; regenerating",
            type(entity).__tablename__,
            entity.id,
        )
        embeddings = await self.regenerate(db, entity)
        return embeddings.combined
