"""
ServiceMatch Backend - Hashing Embedding Provider (development only)
====================================================================

What:  Deterministic bag-of-words embeddings without any network call.
Why:   Lets the whole matching pipeline run locally (and in tests) without
       a Gemini key or quota. Texts that share words get a positive cosine
       similarity; that is the only semantic it captures.
How:   Each lowercase word is hashed (31-multiplier string hash folded to 32
       bits) into one of `dimensions` buckets; bucket counts are then
       L2-normalized.

Selected with EMBEDDING_PROVIDER=hashing. Never use it in production: vectors
from this provider and from Gemini are not comparable, so switching providers
requires re-running the backfill job over every entity.
"""

import logging
import math
from typing import List

from servicematch.services.embedding_base import TASK_DOCUMENT, EmbeddingProvider

logger = logging.getLogger(__name__)


def word_hash(word: str) -> int:
    value = 0
    for char in word:
        value = (value * 31 + ord(char)) & 0xFFFFFFFF
    # Interpret as signed 32-bit, then take the magnitude
    if value >= 0x80000000:
        value -= 0x100000000
    return abs(value)


class HashingEmbeddingProvider(EmbeddingProvider):
    name = "hashing"

    def __init__(self, dimensions: int = 768):
        super().__init__(dimensions)
        logger.warning(
            "Using hashing embeddings (dimensions=%d) - not suitable for production",
            dimensions,
        )

    async def embed_text(self, text: str, task_type: str = TASK_DOCUMENT) -> List[float]:
        vector = [0.0] * self.dimensions
        for word in text.lower().split():
            vector[word_hash(word) % self.dimensions] += 1.0

        magnitude = math.sqrt(sum(v * v for v in vector))
        if magnitude == 0:
            return vector
        return [v / magnitude for v in vector]

    async def health_check(self) -> bool:
        return True
