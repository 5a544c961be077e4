"""
ServiceMatch Backend - Service Request Route Handlers
======================================================

Route Inventory:
    POST   /api/service-requests                 post a request (starts fan-out)
    GET    /api/service-requests                 the caller's requests
    GET    /api/service-requests/{id}            request detail
    PUT    /api/service-requests/{id}            update own request
    DELETE /api/service-requests/{id}            delete own request
    GET    /api/service-requests/{id}/matching   services matching the request

Fan-out timing:
    POST commits the new request explicitly and only then schedules the
    notification fan-out. The fan-out opens its own session and must see the
    committed row. The response never waits for notifications.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from servicematch.container import ServiceContainer
from servicematch.database import get_db_session
from servicematch.routes.dependencies import get_container, get_current_user_id
from servicematch.schemas.common import ErrorResponse
from servicematch.schemas.matching import MatchingServicesResponse
from servicematch.schemas.service_request import (
    ServiceRequestCreate,
    ServiceRequestListResponse,
    ServiceRequestResponse,
    ServiceRequestUpdate,
)
from servicematch.services.matching_policy import DEFAULT_MATCHING_LIMIT

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/service-requests", tags=["Service Requests"])

OWNED_ERRORS = {
    403: {"description": "Not your request", "model": ErrorResponse},
    404: {"description": "Request not found", "model": ErrorResponse},
}


@router.post(
    "",
    response_model=ServiceRequestResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Post a service request",
)
async def create_service_request(
    body: ServiceRequestCreate,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
    container: ServiceContainer = Depends(get_container),
) -> ServiceRequestResponse:
    service_request = await container.service_requests.create_request(db, user_id, body)
    await db.commit()

    container.fanout.schedule(service_request.id)
    logger.info("Notification fan-out scheduled for request %s", service_request.id)
    return ServiceRequestResponse.model_validate(service_request)


@router.get(
    "",
    response_model=ServiceRequestListResponse,
    summary="List your service requests",
)
async def list_service_requests(
    response: Response,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
    container: ServiceContainer = Depends(get_container),
) -> ServiceRequestListResponse:
    result = await container.service_requests.list_requests(db, user_id, page=page, limit=limit)
    response.headers["X-Total-Count"] = str(result.pagination.total)
    return result


@router.get(
    "/{request_id}",
    response_model=ServiceRequestResponse,
    responses=OWNED_ERRORS,
    summary="Get one of your service requests",
)
async def get_service_request(
    request_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
    container: ServiceContainer = Depends(get_container),
) -> ServiceRequestResponse:
    return await container.service_requests.get_request(db, user_id, request_id)


@router.put(
    "/{request_id}",
    response_model=ServiceRequestResponse,
    responses=OWNED_ERRORS,
    summary="Update one of your service requests",
)
async def update_service_request(
    request_id: UUID,
    body: ServiceRequestUpdate,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
    container: ServiceContainer = Depends(get_container),
) -> ServiceRequestResponse:
    return await container.service_requests.update_request(db, user_id, request_id, body)


@router.delete(
    "/{request_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=OWNED_ERRORS,
    summary="Delete one of your service requests",
)
async def delete_service_request(
    request_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
    container: ServiceContainer = Depends(get_container),
) -> Response:
    await container.service_requests.delete_request(db, user_id, request_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/{request_id}/matching",
    response_model=MatchingServicesResponse,
    responses={
        404: {"description": "Request not found", "model": ErrorResponse},
        409: {"description": "Request has no embeddable text", "model": ErrorResponse},
        503: {"description": "Embedding provider unavailable", "model": ErrorResponse},
    },
    summary="Services matching a request",
)
async def find_matching_services(
    request_id: UUID,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_MATCHING_LIMIT, ge=1, le=100),
    db: AsyncSession = Depends(get_db_session),
    container: ServiceContainer = Depends(get_container),
) -> MatchingServicesResponse:
    """
    Active services ranked by similarity to the request (restricted to its
    category when set). A request stored without a vector is embedded on
    first use.
    """
    return await container.matching.find_matching_services(
        db, request_id, page=page, limit=limit
    )
