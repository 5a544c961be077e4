"""
ServiceMatch Backend - Embedding Provider Contract Tests
=========================================================

What we test:
    ✅ Text cleaning and combined-text assembly
    ✅ Blank text yields an absent vector without calling the provider
    ✅ Wrong-length vectors are rejected
    ✅ generate_service_embeddings embeds the combined text separately
    ✅ Hashing provider: deterministic, normalized, word overlap ⇒ similarity
"""

import math

import pytest

from conftest import DIMS, FakeEmbeddingProvider, cosine, vec
from servicematch.exceptions import MalformedVectorError
from servicematch.services.embedding_base import (
    MAX_INPUT_CHARS,
    TASK_QUERY,
    build_combined_text,
    clean_text,
)
from servicematch.services.hashing_embeddings import HashingEmbeddingProvider, word_hash


class TestCleanText:
    def test_collapses_whitespace_and_strips_symbols(self):
        assert clean_text("  Need a   plumber!! ASAP ") == "Need a plumber ASAP"

    def test_keeps_periods_and_hyphens(self):
        assert clean_text("Re-pipe the house. Today?") == "Re-pipe the house. Today"

    def test_truncates_long_text(self):
        assert len(clean_text("a" * (MAX_INPUT_CHARS + 500))) == MAX_INPUT_CHARS

    @pytest.mark.parametrize("value", [None, "", "   ", "!!! ???"])
    def test_blank_input(self, value):
        assert clean_text(value) == ""


class TestCombinedText:
    def test_joins_all_fields(self):
        text = build_combined_text("Plumbing", "Fix leaks", ["pipes", "drains"])
        assert text == "Plumbing. Fix leaks. pipes, drains"

    def test_skips_missing_title_and_tags(self):
        assert build_combined_text(None, "Fix leaks", []) == "Fix leaks"


class TestGenerateEmbedding:
    @pytest.mark.asyncio
    async def test_blank_text_is_absent_not_error(self):
        provider = FakeEmbeddingProvider()
        assert await provider.generate_embedding("   ") is None
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_passes_cleaned_text_and_task_type(self):
        provider = FakeEmbeddingProvider()
        result = await provider.generate_embedding(" fix  leaking faucet! ", task_type=TASK_QUERY)
        assert len(result) == DIMS
        assert provider.calls == [("fix leaking faucet", TASK_QUERY)]

    @pytest.mark.asyncio
    async def test_wrong_dimension_rejected(self):
        provider = FakeEmbeddingProvider(default=[0.1] * 10)
        with pytest.raises(MalformedVectorError) as exc_info:
            await provider.generate_embedding("hello")
        assert exc_info.value.expected == DIMS
        assert exc_info.value.actual == 10


class TestGenerateServiceEmbeddings:
    @pytest.mark.asyncio
    async def test_four_vectors_with_separate_combined_call(self):
        provider = FakeEmbeddingProvider(
            vectors={"Plumbing. Fix leaks. pipes": vec(0.0, 1.0)}
        )
        result = await provider.generate_service_embeddings("Plumbing", "Fix leaks", ["pipes"])

        texts = [text for text, _ in provider.calls]
        assert texts == ["Plumbing", "Fix leaks", "pipes", "Plumbing. Fix leaks. pipes"]
        assert result.combined == vec(0.0, 1.0)
        assert result.title is not None and result.tags is not None

    @pytest.mark.asyncio
    async def test_absent_title_and_tags(self):
        provider = FakeEmbeddingProvider()
        result = await provider.generate_service_embeddings(None, "Fix leaks", [])
        assert result.title is None
        assert result.tags is None
        assert result.description is not None
        assert result.combined is not None
        assert len(provider.calls) == 2


class TestHashingProvider:
    def test_word_hash_matches_32bit_string_hash(self):
        assert word_hash("a") == 97
        assert word_hash("ab") == 97 * 31 + 98

    @pytest.mark.asyncio
    async def test_deterministic_and_normalized(self):
        provider = HashingEmbeddingProvider(dimensions=DIMS)
        first = await provider.generate_embedding("leaking kitchen faucet")
        second = await provider.generate_embedding("leaking kitchen faucet")
        assert first == second
        assert math.isclose(math.sqrt(sum(v * v for v in first)), 1.0)

    @pytest.mark.asyncio
    async def test_shared_words_are_closer(self):
        provider = HashingEmbeddingProvider(dimensions=DIMS)
        query = await provider.generate_embedding("plumber for leaking pipes")
        plumbing = await provider.generate_embedding("plumber fixes leaking pipes fast")
        guitar = await provider.generate_embedding("guitar lessons for beginners")
        assert cosine(query, plumbing) > cosine(query, guitar)
