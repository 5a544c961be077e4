"""
ServiceMatch Backend - Services Route Handlers
===============================================

What:  Semantic search and "similar services" over the catalog, plus the
       catalog write paths that keep service vectors current.

Route Inventory:
    GET  /api/services/search          free-text semantic search
    GET  /api/services/{id}/similar    services similar to one service
    POST /api/services                 publish a service
    GET  /api/services/{id}            service detail
    PUT  /api/services/{id}            update a service (owner only)

Note:
    /search is declared before /{service_id} so "search" is never parsed as
    a service id.
"""

import logging
from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from servicematch.container import ServiceContainer
from servicematch.database import get_db_session
from servicematch.exceptions import ValidationError
from servicematch.routes.dependencies import get_container, get_current_user_id
from servicematch.schemas.common import ErrorResponse
from servicematch.schemas.matching import SearchResponse, SimilarServicesResponse
from servicematch.schemas.service import ServiceCreate, ServiceResponse, ServiceUpdate
from servicematch.services.matching_policy import (
    DEFAULT_SEARCH_LIMIT,
    DEFAULT_SEARCH_THRESHOLD,
    DEFAULT_SIMILAR_LIMIT,
)
from servicematch.services.similarity_search import SearchFilters

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/services", tags=["Services"])

EMBEDDING_ERRORS = {
    429: {"description": "Embedding provider rate limit", "model": ErrorResponse},
    503: {"description": "Embedding provider unavailable", "model": ErrorResponse},
}


@router.get(
    "/search",
    response_model=SearchResponse,
    responses={400: {"model": ErrorResponse}, **EMBEDDING_ERRORS},
    summary="Semantic search over active services",
)
async def search_services(
    response: Response,
    q: str = Query(min_length=1, max_length=1000, description="What the customer needs"),
    category_id: UUID | None = Query(default=None),
    provider_id: UUID | None = Query(default=None),
    min_price: Decimal | None = Query(default=None, ge=0),
    max_price: Decimal | None = Query(default=None, ge=0),
    active_only: bool = Query(default=True),
    threshold: float = Query(default=DEFAULT_SEARCH_THRESHOLD, ge=-1.0, le=1.0),
    limit: int = Query(default=DEFAULT_SEARCH_LIMIT, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db_session),
    container: ServiceContainer = Depends(get_container),
) -> SearchResponse:
    """
    Services ranked by similarity to `q`, keeping only those at or above
    `threshold`. X-Total-Count carries the number of candidates passing the
    filters (before the threshold).
    """
    if min_price is not None and max_price is not None and min_price > max_price:
        raise ValidationError(message="min_price must not exceed max_price", field="min_price")

    result = await container.matching.search_services(
        db,
        q,
        SearchFilters(
            category_id=category_id,
            provider_id=provider_id,
            min_price=min_price,
            max_price=max_price,
            active_only=active_only,
        ),
        limit=limit,
        offset=offset,
        threshold=threshold,
    )
    response.headers["X-Total-Count"] = str(result.total)
    return result


@router.get(
    "/{service_id}/similar",
    response_model=SimilarServicesResponse,
    responses={
        404: {"description": "Service not found", "model": ErrorResponse},
        409: {"description": "Service not embedded yet", "model": ErrorResponse},
    },
    summary="Active services similar to a given service",
)
async def find_similar_services(
    service_id: UUID,
    limit: int = Query(default=DEFAULT_SIMILAR_LIMIT, ge=1, le=50),
    db: AsyncSession = Depends(get_db_session),
    container: ServiceContainer = Depends(get_container),
) -> SimilarServicesResponse:
    return await container.matching.find_similar_services(db, service_id, limit=limit)


@router.post(
    "",
    response_model=ServiceResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        403: {"model": ErrorResponse},
        404: {"description": "Provider or category not found", "model": ErrorResponse},
    },
    summary="Publish a service",
)
async def create_service(
    body: ServiceCreate,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
    container: ServiceContainer = Depends(get_container),
) -> ServiceResponse:
    """
    The service is saved even when embedding fails; `has_embedding` tells
    whether it is searchable yet.
    """
    return await container.catalog.create_service(db, user_id, body)


@router.get(
    "/{service_id}",
    response_model=ServiceResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get a service",
)
async def get_service(
    service_id: UUID,
    db: AsyncSession = Depends(get_db_session),
    container: ServiceContainer = Depends(get_container),
) -> ServiceResponse:
    return await container.catalog.get_service(db, service_id)


@router.put(
    "/{service_id}",
    response_model=ServiceResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Update a service",
)
async def update_service(
    service_id: UUID,
    body: ServiceUpdate,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
    container: ServiceContainer = Depends(get_container),
) -> ServiceResponse:
    return await container.catalog.update_service(db, user_id, service_id, body)
