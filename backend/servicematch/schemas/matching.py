"""
ServiceMatch Backend - Matching Response Schemas
=================================================

What:  Response payloads of the three similarity endpoints.
How:   MatchedService flattens a MatchResult (service row + similarity +
       joined provider/category fields) into the API shape.

Similarity is returned as the raw cosine similarity in [-1, 1] (in practice
[0, 1] for text embeddings), not as a percentage.
"""

import math
import uuid
from typing import List, Optional

from pydantic import BaseModel, Field

from servicematch.schemas.service import ServiceResponse
from servicematch.services.similarity_search import MatchResult


class ProviderSummary(BaseModel):
    id: uuid.UUID
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class CategorySummary(BaseModel):
    id: uuid.UUID
    name: str


class MatchedService(ServiceResponse):
    similarity: float = Field(description="Cosine similarity to the query (higher is closer)")
    provider: ProviderSummary
    category: Optional[CategorySummary] = None

    @classmethod
    def from_match(cls, match: MatchResult) -> "MatchedService":
        base = ServiceResponse.model_validate(match.service).model_dump()
        category = None
        if match.category_id is not None:
            category = CategorySummary(id=match.category_id, name=match.category_name or "")
        return cls(
            **base,
            similarity=match.similarity,
            provider=ProviderSummary(
                id=match.provider_id,
                first_name=match.provider_first_name,
                last_name=match.provider_last_name,
            ),
            category=category,
        )


class Pagination(BaseModel):
    total: int = Field(description="Candidates passing the filters (ignores similarity floor)")
    page: int
    limit: int
    pages: int

    @classmethod
    def build(cls, total: int, page: int, limit: int) -> "Pagination":
        return cls(total=total, page=page, limit=limit, pages=math.ceil(total / limit))


class SearchResponse(BaseModel):
    """
    Free-text search results.

    `total` counts every active, embedded service passing the filters,
    regardless of the similarity threshold, so it can exceed the number of
    services any page will return.
    """
    query: str
    services: List[MatchedService]
    total: int
    limit: int
    offset: int
    threshold: float


class SimilarServicesResponse(BaseModel):
    service_id: uuid.UUID
    services: List[MatchedService]


class MatchingServicesResponse(BaseModel):
    service_request_id: uuid.UUID
    services: List[MatchedService]
    pagination: Pagination
