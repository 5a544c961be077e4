"""
ServiceMatch Backend - Abstract Embedding Provider Interface
=============================================================

What:  Abstract base class for text embedding providers, plus the shared text
       preparation and dimension checks every provider goes through.
Why:   Matching code depends on "a thing that turns text into a 768-length
       vector", not on Gemini. Swapping providers (or using the hashing
       provider in development and tests) touches no calling code.
How:   Concrete providers implement embed_text(). generate_embedding() and
       generate_service_embeddings() are implemented here once.
Who:   Called by EmbeddingStore (stored entities) and MatchingService
       (free-text queries).

Contract:
    - Blank input (after cleaning) yields None, never an error and never a
      zero vector. A zero vector has no defined cosine similarity.
    - Every returned vector has exactly `dimensions` entries, otherwise
      MalformedVectorError is raised.
    - Provider-specific failures surface as EmbeddingGenerationError or one
      of its subclasses.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence

from servicematch.exceptions import MalformedVectorError

# Task types understood by the Gemini embedding API. Stored entities are
# documents; free-text searches are queries.
TASK_DOCUMENT = "retrieval_document"
TASK_QUERY = "retrieval_query"

MAX_INPUT_CHARS = 8000

_WHITESPACE_RE = re.compile(r"\s+")
_DISALLOWED_RE = re.compile(r"[^\w\s.\-]")


def clean_text(text: Optional[str]) -> str:
    """
    Normalize text before embedding.

    Trims, collapses runs of whitespace, drops everything except word
    characters, whitespace, '.' and '-', then truncates to MAX_INPUT_CHARS.

        >>> clean_text("  Need a   plumber!! ASAP ")
        'Need a plumber ASAP'
    """
    if not text:
        return ""
    cleaned = _WHITESPACE_RE.sub(" ", text.strip())
    cleaned = _DISALLOWED_RE.sub("", cleaned)
    return cleaned[:MAX_INPUT_CHARS].strip()


def build_combined_text(
    title: Optional[str],
    description: Optional[str],
    tags: Optional[Sequence[str]],
) -> str:
    """Title, description and tags (comma-joined), non-empty parts joined by '. '."""
    parts = [
        title or "",
        description or "",
        ", ".join(tags) if tags else "",
    ]
    return ". ".join(part for part in parts if part.strip())


@dataclass
class EmbeddingSet:
    """
    The four vectors of one embeddable entity.

    `combined` is the canonical similarity key. It is embedded from the
    combined text, never averaged from the other three.
    """

    title: Optional[List[float]] = None
    description: Optional[List[float]] = None
    tags: Optional[List[float]] = None
    combined: Optional[List[float]] = None

    def as_columns(self) -> dict:
        """Column name -> vector mapping used by the store's partial UPDATE."""
        return {
            "title_vector": self.title,
            "description_vector": self.description,
            "tags_vector": self.tags,
            "combined_vector": self.combined,
        }


def check_dimensions(vector: Sequence[float], expected: int, field: Optional[str] = None) -> None:
    if len(vector) != expected:
        raise MalformedVectorError(expected=expected, actual=len(vector), field=field)


class EmbeddingProvider(ABC):
    """
    Abstract interface for text embedding providers.

    Implementations:
        - GeminiEmbeddingProvider: Google text-embedding-004 (production)
        - HashingEmbeddingProvider: deterministic bag-of-words (development)
    """

    name: str = "embedding"

    def __init__(self, dimensions: int):
        self.dimensions = dimensions

    @abstractmethod
    async def embed_text(self, text: str, task_type: str = TASK_DOCUMENT) -> List[float]:
        """
        Embed already-cleaned, non-empty text.

        Raises:
            EmbeddingGenerationError (or a subclass) when the provider fails.
        """
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Cheap reachability probe. Must not consume embedding quota."""
        ...

    async def generate_embedding(
        self,
        text: Optional[str],
        task_type: str = TASK_DOCUMENT,
    ) -> Optional[List[float]]:
        """
        Embed arbitrary user text.

        Returns:
            The vector, or None when the text is blank after cleaning.

        Raises:
            MalformedVectorError: the provider answered with the wrong length.
            EmbeddingGenerationError: the provider call failed.
        """
        cleaned = clean_text(text)
        if not cleaned:
            return None
        vector = await self.embed_text(cleaned, task_type)
        check_dimensions(vector, self.dimensions)
        return [float(v) for v in vector]

    async def generate_service_embeddings(
        self,
        title: Optional[str],
        description: Optional[str],
        tags: Optional[Sequence[str]] = None,
    ) -> EmbeddingSet:
        """
        Embed the three text fields and their combination.

        Calls run one after another through the shared rate limiter.
        A failure anywhere propagates; the caller decides whether the entity
        is saved without vectors.
        """
        tag_list = [t for t in (tags or []) if t and t.strip()]
        return EmbeddingSet(
            title=await self.generate_embedding(title),
            description=await self.generate_embedding(description),
            tags=await self.generate_embedding(", ".join(tag_list)) if tag_list else None,
            combined=await self.generate_embedding(
                build_combined_text(title, description, tag_list)
            ),
        )
