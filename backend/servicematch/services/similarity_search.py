"""
ServiceMatch Backend - Similarity Search Engine
================================================

What:  Ranks services by cosine similarity of their combined vector to a query
       vector, with relational filters and pagination.
Why:   The single query path behind free-text search, "similar services" and
       "matching services for a request".
How:   One SELECT using pgvector's cosine distance operator (<=>):

           SELECT services.*, 1 - (combined_vector <=> :q) AS similarity, ...
           FROM services
           JOIN service_providers ... JOIN users ... JOIN categories ...
           WHERE combined_vector IS NOT NULL AND <filters> [AND similarity >= :t]
           ORDER BY combined_vector <=> :q
           LIMIT :limit OFFSET :offset

       plus a COUNT(*) with the same filters (but no similarity floor) for
       pagination totals.

Ordering:
    Distance ascending, i.e. similarity descending. Equal similarities have no
    defined order; the HNSW index may return them either way.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, List, Optional, Sequence, Union
from uuid import UUID

from sqlalchemy import ColumnElement, Select, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from servicematch.exceptions import DatabaseError
from servicematch.models import Category, Service, ServiceProvider, User
from servicematch.services.embedding_base import check_dimensions

logger = logging.getLogger(__name__)

Number = Union[int, float, Decimal]


@dataclass
class SearchFilters:
    """Relational predicates; every set field narrows the result (AND)."""

    category_id: Optional[UUID] = None
    provider_id: Optional[UUID] = None
    min_price: Optional[Number] = None
    max_price: Optional[Number] = None
    active_only: bool = True
    exclude_id: Optional[UUID] = None


@dataclass
class MatchResult:
    """One ranked service with the display fields the API returns."""

    service: Service
    similarity: float
    provider_id: UUID
    provider_first_name: Optional[str] = None
    provider_last_name: Optional[str] = None
    category_id: Optional[UUID] = None
    category_name: Optional[str] = None


@dataclass
class SearchPage:
    matches: List[MatchResult] = field(default_factory=list)
    total: int = 0


def _conditions(filters: SearchFilters) -> List[ColumnElement[bool]]:
    conditions: List[ColumnElement[bool]] = [Service.combined_vector.is_not(None)]
    if filters.active_only:
        conditions.append(Service.is_active.is_(True))
    if filters.category_id is not None:
        conditions.append(Service.category_id == filters.category_id)
    if filters.provider_id is not None:
        conditions.append(Service.provider_id == filters.provider_id)
    if filters.min_price is not None:
        conditions.append(Service.price >= filters.min_price)
    if filters.max_price is not None:
        conditions.append(Service.price <= filters.max_price)
    if filters.exclude_id is not None:
        conditions.append(Service.id != filters.exclude_id)
    return conditions


def _with_joins(stmt: Select) -> Select:
    # Ranking and counting must see the same rows.
    return (
        stmt.join(ServiceProvider, ServiceProvider.id == Service.provider_id)
        .join(User, User.id == ServiceProvider.user_id)
        .join(Category, Category.id == Service.category_id)
    )


def build_search_query(
    query_vector: Sequence[float],
    filters: SearchFilters,
    limit: int,
    offset: int = 0,
    threshold: Optional[float] = None,
) -> Select:
    distance = Service.combined_vector.cosine_distance(query_vector)
    similarity = (1 - distance).label("similarity")

    stmt = _with_joins(
        select(
            Service,
            similarity,
            ServiceProvider.id.label("provider_id"),
            User.first_name.label("provider_first_name"),
            User.last_name.label("provider_last_name"),
            Category.id.label("category_id"),
            Category.name.label("category_name"),
        )
    ).where(*_conditions(filters))
    if threshold is not None:
        stmt = stmt.where((1 - distance) >= threshold)
    return stmt.order_by(distance).limit(limit).offset(offset)


def build_count_query(filters: SearchFilters) -> Select:
    stmt = _with_joins(select(func.count()).select_from(Service))
    return stmt.where(*_conditions(filters))


def _to_match(row: Any) -> MatchResult:
    return MatchResult(
        service=row.Service,
        similarity=float(row.similarity),
        provider_id=row.provider_id,
        provider_first_name=row.provider_first_name,
        provider_last_name=row.provider_last_name,
        category_id=row.category_id,
        category_name=row.category_name,
    )


async def search(
    db: AsyncSession,
    query_vector: Sequence[float],
    filters: Optional[SearchFilters] = None,
    limit: int = 20,
    offset: int = 0,
    threshold: Optional[float] = None,
    dimensions: Optional[int] = None,
) -> SearchPage:
    """
    Rank active, embedded services against `query_vector`.

    Args:
        db: Async database session
        query_vector: Vector to compare against services.combined_vector
        filters: Relational filters (defaults: active services only)
        limit / offset: Page window over the ranked list
        threshold: Optional similarity floor (inclusive)
        dimensions: When given, the query vector length is checked first

    Returns:
        SearchPage. `total` counts every row passing the filters, ignoring
        the similarity floor.

    Raises:
        MalformedVectorError: query vector of the wrong length
        DatabaseError: the query failed
    """
    filters = filters or SearchFilters()
    if dimensions is not None:
        check_dimensions(query_vector, dimensions, field="query_vector")

    try:
        total = (await db.execute(build_count_query(filters))).scalar_one()
        if total == 0:
            return SearchPage(matches=[], total=0)
        result = await db.execute(
            build_search_query(query_vector, filters, limit, offset, threshold)
        )
        matches = [_to_match(row) for row in result.all()]
    except SQLAlchemyError as e:
        logger.error("Similarity search failed: %s", e, exc_info=True)
        raise DatabaseError(context={"operation": "similarity_search"}) from e

    logger.debug(
        "Similarity search returned %d of %d candidates (limit=%d, offset=%d, threshold=%s)",
        len(matches),
        total,
        limit,
        offset,
        threshold,
    )
    return SearchPage(matches=matches, total=total)
