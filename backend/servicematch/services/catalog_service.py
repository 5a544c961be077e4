"""
ServiceMatch Backend - Catalog Service
=======================================

What:  Create, read and update the services providers offer.
Why:   These are the write paths that keep service vectors in step with the
       text they were derived from.
How:   The row is always saved first. Embedding generation afterwards is
       best-effort: if the provider fails, the service is kept without
       vectors (not searchable) until the backfill job fills them in.

Ownership:
    Only the user behind the service's provider may create or update it.
"""

import logging
from typing import Any, Dict
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from servicematch.exceptions import (
    EmbeddingGenerationError,
    ForbiddenError,
    MalformedVectorError,
    NotFoundError,
)
from servicematch.models import Category, Service, ServiceProvider
from servicematch.schemas.service import ServiceCreate, ServiceResponse, ServiceUpdate
from servicematch.services.embedding_store import EmbeddingStore, text_fields_changed

logger = logging.getLogger(__name__)


async def embed_best_effort(store: EmbeddingStore, db: AsyncSession, entity: Any) -> bool:
    """
    Regenerate vectors for a just-saved entity, swallowing provider failures.

    Returns True when vectors were written.
    """
    try:
        await store.regenerate(db, entity)
        return True
    except (EmbeddingGenerationError, MalformedVectorError) as e:
        logger.warning(
            "Saved %s %s without embeddings (%s): %s",
            type(entity).__tablename__,
            entity.id,
            type(e).__name__,
            e.message,
        )
        return False


class CatalogService:
    def __init__(self, store: EmbeddingStore):
        self.store = store

    async def _provider_owner(self, db: AsyncSession, provider_id: UUID) -> UUID:
        owner = await db.scalar(
            select(ServiceProvider.user_id).where(ServiceProvider.id == provider_id)
        )
        if owner is None:
            raise NotFoundError(resource="ServiceProvider", resource_id=str(provider_id))
        return owner

    async def create_service(
        self, db: AsyncSession, user_id: UUID, data: ServiceCreate
    ) -> ServiceResponse:
        """
        Raises:
            NotFoundError: unknown provider or category
            ForbiddenError: the provider belongs to another user
        """
        if await self._provider_owner(db, data.provider_id) != user_id:
            raise ForbiddenError("You can only publish services for your own provider profile")
        if await db.get(Category, data.category_id) is None:
            raise NotFoundError(resource="Category", resource_id=str(data.category_id))

        service = Service(**data.model_dump())
        db.add(service)
        await db.flush()
        logger.info("Service %s created by provider %s", service.id, service.provider_id)

        await embed_best_effort(self.store, db, service)
        return ServiceResponse.model_validate(service)

    async def get_service(self, db: AsyncSession, service_id: UUID) -> ServiceResponse:
        service = await db.get(Service, service_id)
        if service is None:
            raise NotFoundError(resource="Service", resource_id=str(service_id))
        return ServiceResponse.model_validate(service)

    async def update_service(
        self,
        db: AsyncSession,
        user_id: UUID,
        service_id: UUID,
        data: ServiceUpdate,
    ) -> ServiceResponse:
        """
        Apply a partial update; regenerate vectors only if title, description
        or tags changed.
        """
        service = await db.get(Service, service_id)
        if service is None:
            raise NotFoundError(resource="Service", resource_id=str(service_id))
        if await self._provider_owner(db, service.provider_id) != user_id:
            raise ForbiddenError()

        updates: Dict[str, Any] = data.model_dump(exclude_unset=True)
        if "category_id" in updates and await db.get(Category, updates["category_id"]) is None:
            raise NotFoundError(resource="Category", resource_id=str(updates["category_id"]))

        stale = text_fields_changed(service, updates)
        for field, value in updates.items():
            setattr(service, field, value)
        await db.flush()

        if stale:
            await embed_best_effort(self.store, db, service)
        logger.info(
            "Service %s updated (fields=%s, regenerated=%s)",
            service.id,
            sorted(updates),
            stale,
        )
        return ServiceResponse.model_validate(service)
