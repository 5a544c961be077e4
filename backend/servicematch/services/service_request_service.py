"""
ServiceMatch Backend - Service Request Service
===============================================

What:  CRUD for the free-text requests customers post.
How:   Same pattern as CatalogService: save the row, then embed best-effort.
       A request saved without vectors is still valid; the first "matching
       services" call regenerates its vector lazily.

The notification fan-out is NOT started here. The route schedules it after
the transaction has committed, because the fan-out reads the request from
its own session.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from servicematch.exceptions import ForbiddenError, NotFoundError
from servicematch.models import ServiceRequest
from servicematch.schemas.service_request import (
    ServiceRequestCreate,
    ServiceRequestListResponse,
    ServiceRequestResponse,
    ServiceRequestUpdate,
)
from servicematch.services.catalog_service import embed_best_effort
from servicematch.services.embedding_store import EmbeddingStore, text_fields_changed

logger = logging.getLogger(__name__)

LOCATION_FIELDS = ("address", "city", "state", "country", "postal_code", "latitude", "longitude")


class ServiceRequestService:
    def __init__(self, store: EmbeddingStore):
        self.store = store

    async def create_request(
        self, db: AsyncSession, user_id: UUID, data: ServiceRequestCreate
    ) -> ServiceRequest:
        """
        Persist a new request and try to embed it.

        Returns the ORM entity (the route needs its id to schedule the fan-out).
        Embedding failures never fail the creation.
        """
        values = data.model_dump()
        service_request = ServiceRequest(user_id=user_id, **values)
        if any(values.get(f) is not None for f in LOCATION_FIELDS):
            service_request.location_last_updated = datetime.now(timezone.utc)
        db.add(service_request)
        await db.flush()
        logger.info("Service request %s created by user %s", service_request.id, user_id)

        await embed_best_effort(self.store, db, service_request)
        return service_request

    async def _owned(self, db: AsyncSession, user_id: UUID, request_id: UUID) -> ServiceRequest:
        service_request = await db.get(ServiceRequest, request_id)
        if service_request is None:
            raise NotFoundError(resource="ServiceRequest", resource_id=str(request_id))
        if service_request.user_id != user_id:
            raise ForbiddenError()
        return service_request

    async def get_request(
        self, db: AsyncSession, user_id: UUID, request_id: UUID
    ) -> ServiceRequestResponse:
        return ServiceRequestResponse.model_validate(await self._owned(db, user_id, request_id))

    async def list_requests(
        self, db: AsyncSession, user_id: UUID, page: int = 1, limit: int = 10
    ) -> ServiceRequestListResponse:
        """The caller's own requests, newest first."""
        total = await db.scalar(
            select(func.count()).select_from(ServiceRequest).where(ServiceRequest.user_id == user_id)
        )
        result = await db.execute(
            select(ServiceRequest)
            .where(ServiceRequest.user_id == user_id)
            .order_by(ServiceRequest.created_at.desc())
            .limit(limit)
            .offset((page - 1) * limit)
        )
        return ServiceRequestListResponse.build(
            result.scalars().all(), total=total or 0, page=page, limit=limit
        )

    async def update_request(
        self,
        db: AsyncSession,
        user_id: UUID,
        request_id: UUID,
        data: ServiceRequestUpdate,
    ) -> ServiceRequestResponse:
        service_request = await self._owned(db, user_id, request_id)
        updates: Dict[str, Any] = data.model_dump(exclude_unset=True)

        stale = text_fields_changed(service_request, updates)
        for field, value in updates.items():
            setattr(service_request, field, value)
        if any(f in updates for f in LOCATION_FIELDS):
            service_request.location_last_updated = datetime.now(timezone.utc)
        await db.flush()

        if stale:
            await embed_best_effort(self.store, db, service_request)
        return ServiceRequestResponse.model_validate(service_request)

    async def delete_request(self, db: AsyncSession, user_id: UUID, request_id: UUID) -> None:
        service_request = await self._owned(db, user_id, request_id)
        await db.delete(service_request)
        await db.flush()
        logger.info("Service request %s deleted", request_id)
