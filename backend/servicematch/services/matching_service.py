"""
ServiceMatch Backend - Matching Service (Orchestrator)
=======================================================

What:  The three similarity use cases: free-text search, "similar services"
       and "services matching a customer's request".
How:   Obtains the query vector (embed the text, read the stored vector, or
       lazily regenerate the request's vector), then delegates ranking to the
       similarity search engine and shapes the API response.
Who:   Called by the services and service-requests routers; the notification
       fan-out reuses match_request().

Orchestration Flow (GET /api/service-requests/{id}/matching):
    ┌──────────┐    ┌──────────────────┐    ┌──────────────┐    ┌──────────┐
    │  Load    │───▶│ Ensure combined  │───▶│  Similarity  │───▶│ Paginate │
    │ request  │    │ vector (lazy)    │    │  search      │    │          │
    └──────────┘    └──────────────────┘    └──────────────┘    └──────────┘

Like the other services it is stateless per call: the db session is passed
in, collaborators are injected once at construction.
"""

import logging
from typing import Awaitable, Callable, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from servicematch.exceptions import NotFoundError, ValidationError, VectorMissingError
from servicematch.models import Service, ServiceRequest
from servicematch.schemas.matching import (
    MatchedService,
    MatchingServicesResponse,
    Pagination,
    SearchResponse,
    SimilarServicesResponse,
)
from servicematch.services import similarity_search
from servicematch.services.embedding_base import TASK_QUERY, EmbeddingProvider
from servicematch.services.embedding_store import EmbeddingStore
from servicematch.services.matching_policy import (
    DEFAULT_MATCHING_LIMIT,
    DEFAULT_SEARCH_LIMIT,
    DEFAULT_SEARCH_THRESHOLD,
    DEFAULT_SIMILAR_LIMIT,
    rank,
)
from servicematch.services.similarity_search import SearchFilters, SearchPage

logger = logging.getLogger(__name__)

SearchFn = Callable[..., Awaitable[SearchPage]]


class MatchingService:
    """
    Args:
        provider: Embeds free-text queries (query task type).
        store: Reads stored vectors and regenerates missing request vectors.
        search: Ranks services against a vector; takes the same arguments as
            `similarity_search.search`.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        store: EmbeddingStore,
        search: SearchFn = similarity_search.search,
    ):
        self.provider = provider
        self.store = store
        self.search = search

    async def search_services(
        self,
        db: AsyncSession,
        query: str,
        filters: Optional[SearchFilters] = None,
        limit: int = DEFAULT_SEARCH_LIMIT,
        offset: int = 0,
        threshold: float = DEFAULT_SEARCH_THRESHOLD,
    ) -> SearchResponse:
        """
        Free-text semantic search over active services.

        Raises:
            ValidationError: blank query (nothing left to embed after cleaning)
            EmbeddingGenerationError: the query could not be embedded
        """
        filters = filters or SearchFilters()
        vector = await self.provider.generate_embedding(query, task_type=TASK_QUERY)
        if vector is None:
            raise ValidationError(message="Search query must not be empty", field="q")

        page = await self.search(
            db,
            vector,
            filters,
            limit=limit,
            offset=offset,
            threshold=threshold,
            dimensions=self.provider.dimensions,
        )
        logger.info(
            "Search '%s' returned %d services (total=%d, threshold=%.2f)",
            query[:50],
            len(page.matches),
            page.total,
            threshold,
        )
        return SearchResponse(
            query=query,
            services=[MatchedService.from_match(m) for m in rank(page.matches)],
            total=page.total,
            limit=limit,
            offset=offset,
            threshold=threshold,
        )

    async def find_similar_services(
        self,
        db: AsyncSession,
        service_id: UUID,
        limit: int = DEFAULT_SIMILAR_LIMIT,
    ) -> SimilarServicesResponse:
        """
        Active services closest to `service_id`, excluding itself.

        Raises:
            NotFoundError: no such service
            VectorMissingError: the service has not been embedded yet
        """
        vector = await self.store.get_combined_vector(db, Service, service_id)
        if vector is None:
            raise VectorMissingError(resource="Service", resource_id=str(service_id))

        page = await self.search(
            db,
            vector,
            SearchFilters(active_only=True, exclude_id=service_id),
            limit=limit,
            offset=0,
        )
        return SimilarServicesResponse(
            service_id=service_id,
            services=[MatchedService.from_match(m) for m in rank(page.matches)],
        )

    async def match_request(
        self,
        db: AsyncSession,
        service_request: ServiceRequest,
        limit: int,
        offset: int = 0,
    ) -> SearchPage:
        """
        Rank active services against a request, regenerating its vector first
        when it is missing. Restricted to the request's category if it has one.

        Raises:
            VectorMissingError: the request has no embeddable text
            EmbeddingGenerationError: regeneration failed
        """
        vector = await self.store.ensure_combined_vector(db, service_request)
        if vector is None:
            raise VectorMissingError(
                resource="ServiceRequest", resource_id=str(service_request.id)
            )
        page = await self.search(
            db,
            vector,
            SearchFilters(active_only=True, category_id=service_request.category_id),
            limit=limit,
            offset=offset,
        )
        page.matches = rank(page.matches)
        return page

    async def find_matching_services(
        self,
        db: AsyncSession,
        request_id: UUID,
        page: int = 1,
        limit: int = DEFAULT_MATCHING_LIMIT,
    ) -> MatchingServicesResponse:
        """
        Paginated services matching a customer's request (no similarity floor).

        Raises:
            ValidationError: page or limit below 1
            NotFoundError: no such request
        """
        if page < 1 or limit < 1:
            raise ValidationError(message="page and limit must be positive integers")

        service_request = await db.get(ServiceRequest, request_id)
        if service_request is None:
            raise NotFoundError(resource="ServiceRequest", resource_id=str(request_id))

        result = await self.match_request(
            db, service_request, limit=limit, offset=(page - 1) * limit
        )
        return MatchingServicesResponse(
            service_request_id=request_id,
            services=[MatchedService.from_match(m) for m in result.matches],
            pagination=Pagination.build(result.total, page, limit),
        )
