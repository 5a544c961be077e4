"""
ServiceMatch Backend - Embedding Store Tests
============================================

What we test:
    ✅ Staleness detection (only title, description and tags count)
    ✅ persist() issues one UPDATE and rejects malformed vectors before writing
    ✅ get_combined_vector() distinguishes missing rows from missing vectors
    ✅ ensure_combined_vector(): stored vector reused, missing vector regenerated
"""

from unittest.mock import MagicMock

import pytest

from conftest import make_request, make_service, vec
from servicematch.exceptions import MalformedVectorError, NotFoundError
from servicematch.models import Service, ServiceRequest
from servicematch.services.embedding_base import EmbeddingSet
from servicematch.services.embedding_store import EmbeddingStore, text_fields_changed


class TestTextFieldsChanged:
    def test_price_only_is_not_stale(self):
        service = make_service()
        assert text_fields_changed(service, {"price": 99, "images": ["a.png"]}) is False

    def test_same_values_are_not_stale(self):
        service = make_service()
        assert text_fields_changed(service, {"title": service.title, "tags": list(service.tags)}) is False

    @pytest.mark.parametrize(
        "updates",
        [
            {"title": "Guitar lessons"},
            {"description": "Something else entirely"},
            {"tags": ["repair", "plumbing"]},
            {"tags": []},
        ],
    )
    def test_text_change_is_stale(self, updates):
        assert text_fields_changed(make_service(), updates) is True

    def test_blank_and_missing_title_are_equal(self):
        request = make_request(title=None)
        assert text_fields_changed(request, {"title": ""}) is False


class TestPersist:
    @pytest.mark.asyncio
    async def test_single_update(self, mock_db_session, fake_provider):
        store = EmbeddingStore(fake_provider)
        embeddings = EmbeddingSet(title=vec(1.0), description=vec(0.0, 1.0), combined=vec(1.0, 1.0))

        stamp = await store.persist(mock_db_session, Service, make_service().id, embeddings)

        assert stamp.tzinfo is not None
        mock_db_session.execute.assert_awaited_once()
        statement = mock_db_session.execute.await_args.args[0]
        assert statement.table.name == "services"

    @pytest.mark.asyncio
    async def test_malformed_vector_writes_nothing(self, mock_db_session, fake_provider):
        store = EmbeddingStore(fake_provider)
        embeddings = EmbeddingSet(title=vec(1.0), combined=[0.1, 0.2])

        with pytest.raises(MalformedVectorError):
            await store.persist(mock_db_session, Service, make_service().id, embeddings)
        mock_db_session.execute.assert_not_awaited()


class TestGetCombinedVector:
    @pytest.mark.asyncio
    async def test_missing_row(self, mock_db_session, fake_provider):
        mock_db_session.execute.return_value = MagicMock(first=MagicMock(return_value=None))

        with pytest.raises(NotFoundError):
            await EmbeddingStore(fake_provider).get_combined_vector(
                mock_db_session, Service, make_service().id
            )

    @pytest.mark.asyncio
    async def test_row_without_vector(self, mock_db_session, fake_provider):
        row = MagicMock(combined_vector=None)
        mock_db_session.execute.return_value = MagicMock(first=MagicMock(return_value=row))

        result = await EmbeddingStore(fake_provider).get_combined_vector(
            mock_db_session, Service, make_service().id
        )
        assert result is None

    @pytest.mark.asyncio
    async def test_row_with_vector(self, mock_db_session, fake_provider):
        row = MagicMock(combined_vector=vec(0.5))
        mock_db_session.execute.return_value = MagicMock(first=MagicMock(return_value=row))

        result = await EmbeddingStore(fake_provider).get_combined_vector(
            mock_db_session, Service, make_service().id
        )
        assert result == vec(0.5)


class TestEnsureCombinedVector:
    @pytest.mark.asyncio
    async def test_existing_vector_is_reused(self, mock_db_session, fake_provider):
        service = make_service(combined_vector=vec(0.0, 1.0))

        result = await EmbeddingStore(fake_provider).ensure_combined_vector(mock_db_session, service)

        assert result == vec(0.0, 1.0)
        assert fake_provider.calls == []
        mock_db_session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_vector_is_regenerated(self, mock_db_session, fake_provider):
        request = make_request(title=None, tags=[])
        assert request.combined_vector is None

        result = await EmbeddingStore(fake_provider).ensure_combined_vector(mock_db_session, request)

        assert result == vec(1.0)
        assert request.combined_vector == vec(1.0)
        assert request.embedding_updated_at is not None
        mock_db_session.execute.assert_awaited_once()
        statement = mock_db_session.execute.await_args.args[0]
        assert statement.table.name == ServiceRequest.__tablename__
