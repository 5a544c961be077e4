"""
ServiceMatch Backend - Write Path Tests (service requests and services)
=======================================================================

What we test:
    ✅ Creation succeeds even when embedding fails (entity saved without vectors)
    ✅ Successful creation stores vectors
    ✅ Updates regenerate vectors only when title, description or tags change
    ✅ Ownership checks (403) and missing rows (404)
    ✅ Listing builds pagination
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError

from conftest import make_request, make_service, vec
from servicematch.exceptions import (
    DailyQuotaExceededError,
    EmbeddingGenerationError,
    ForbiddenError,
    NotFoundError,
)
from servicematch.schemas.service import ServiceCreate, ServiceUpdate
from servicematch.schemas.service_request import ServiceRequestCreate, ServiceRequestUpdate
from servicematch.services.catalog_service import CatalogService
from servicematch.services.embedding_store import EmbeddingStore
from servicematch.services.service_request_service import ServiceRequestService


@pytest.fixture
def added(mock_db_session):
    """
    Entities passed to db.add(); flush() fills the column defaults the
    database would.
    """
    entities = []
    mock_db_session.add.side_effect = entities.append

    async def flush():
        now = datetime.now(timezone.utc)
        for entity in entities:
            if entity.id is None:
                entity.id = uuid.uuid4()
            entity.created_at = entity.created_at or now
            entity.updated_at = entity.updated_at or now
            if hasattr(entity, "is_active") and entity.is_active is None:
                entity.is_active = True

    mock_db_session.flush.side_effect = flush
    return entities


# ══════════════════════════════════════════════════════════════════════════
# Service requests
# ══════════════════════════════════════════════════════════════════════════

class TestCreateRequest:
    @pytest.mark.asyncio
    async def test_embedding_failure_does_not_fail_creation(
        self, mock_db_session, fake_provider, added
    ):
        fake_provider.error = EmbeddingGenerationError()
        service = ServiceRequestService(EmbeddingStore(fake_provider))

        created = await service.create_request(
            mock_db_session,
            uuid.uuid4(),
            ServiceRequestCreate(description="need a plumber urgently", city="Austin"),
        )

        assert added == [created]
        assert created.id is not None
        assert created.combined_vector is None
        assert created.has_embedding is False
        mock_db_session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_daily_quota_also_tolerated(self, mock_db_session, fake_provider, added):
        fake_provider.error = DailyQuotaExceededError(quota=1500)
        service = ServiceRequestService(EmbeddingStore(fake_provider))

        created = await service.create_request(
            mock_db_session, uuid.uuid4(), ServiceRequestCreate(description="fix my sink")
        )
        assert created.combined_vector is None

    @pytest.mark.asyncio
    async def test_successful_creation_stores_vectors(self, mock_db_session, fake_provider, added):
        service = ServiceRequestService(EmbeddingStore(fake_provider))

        created = await service.create_request(
            mock_db_session,
            uuid.uuid4(),
            ServiceRequestCreate(title="Leak", description="kitchen sink leaking", tags=["plumbing"]),
        )

        assert created.combined_vector == vec(1.0)
        assert created.embedding_updated_at is not None
        assert created.location_last_updated is None
        mock_db_session.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_location_stamp(self, mock_db_session, fake_provider, added):
        service = ServiceRequestService(EmbeddingStore(fake_provider))

        created = await service.create_request(
            mock_db_session, uuid.uuid4(), ServiceRequestCreate(description="x", latitude=30.2)
        )
        assert created.location_last_updated is not None


class TestUpdateRequest:
    @pytest.mark.asyncio
    async def test_description_change_regenerates(self, mock_db_session, fake_provider):
        request = make_request(combined_vector=vec(0.0, 1.0))
        mock_db_session.get.return_value = request
        service = ServiceRequestService(EmbeddingStore(fake_provider))

        response = await service.update_request(
            mock_db_session,
            request.user_id,
            request.id,
            ServiceRequestUpdate(description="actually I need an electrician"),
        )

        assert response.description == "actually I need an electrician"
        assert request.combined_vector == vec(1.0)
        assert fake_provider.calls

    @pytest.mark.asyncio
    async def test_location_change_keeps_vectors(self, mock_db_session, fake_provider):
        request = make_request(combined_vector=vec(0.0, 1.0))
        mock_db_session.get.return_value = request
        service = ServiceRequestService(EmbeddingStore(fake_provider))

        await service.update_request(
            mock_db_session, request.user_id, request.id, ServiceRequestUpdate(city="Dallas")
        )

        assert fake_provider.calls == []
        assert request.combined_vector == vec(0.0, 1.0)
        assert request.location_last_updated is not None

    @pytest.mark.asyncio
    async def test_other_users_request_forbidden(self, mock_db_session, fake_provider):
        request = make_request()
        mock_db_session.get.return_value = request
        service = ServiceRequestService(EmbeddingStore(fake_provider))

        with pytest.raises(ForbiddenError):
            await service.update_request(
                mock_db_session, uuid.uuid4(), request.id, ServiceRequestUpdate(title="mine now")
            )

    @pytest.mark.parametrize("field", ["description", "tags"])
    def test_null_for_required_column_rejected(self, field):
        with pytest.raises(ValidationError):
            ServiceRequestUpdate.model_validate({field: None})

    @pytest.mark.asyncio
    async def test_null_title_clears_it(self, mock_db_session, fake_provider):
        request = make_request(title="Leaky sink")
        mock_db_session.get.return_value = request
        service = ServiceRequestService(EmbeddingStore(fake_provider))

        response = await service.update_request(
            mock_db_session,
            request.user_id,
            request.id,
            ServiceRequestUpdate.model_validate({"title": None}),
        )

        assert response.title is None
        assert request.description is not None
        assert request.tags is not None

    @pytest.mark.asyncio
    async def test_missing_request(self, mock_db_session, fake_provider):
        service = ServiceRequestService(EmbeddingStore(fake_provider))
        with pytest.raises(NotFoundError):
            await service.get_request(mock_db_session, uuid.uuid4(), uuid.uuid4())


class TestListAndDelete:
    @pytest.mark.asyncio
    async def test_list_pagination(self, mock_db_session, fake_provider):
        user_id = uuid.uuid4()
        requests = [make_request(user_id=user_id), make_request(user_id=user_id)]
        mock_db_session.scalar.return_value = 12
        result = MagicMock()
        result.scalars.return_value.all.return_value = requests
        mock_db_session.execute.return_value = result

        response = await ServiceRequestService(EmbeddingStore(fake_provider)).list_requests(
            mock_db_session, user_id, page=2, limit=5
        )

        assert len(response.service_requests) == 2
        assert response.pagination.total == 12
        assert response.pagination.pages == 3

    @pytest.mark.asyncio
    async def test_delete(self, mock_db_session, fake_provider):
        request = make_request()
        mock_db_session.get.return_value = request

        await ServiceRequestService(EmbeddingStore(fake_provider)).delete_request(
            mock_db_session, request.user_id, request.id
        )
        mock_db_session.delete.assert_awaited_once_with(request)


# ══════════════════════════════════════════════════════════════════════════
# Services
# ══════════════════════════════════════════════════════════════════════════

def service_create(**overrides) -> ServiceCreate:
    fields = dict(
        provider_id=uuid.uuid4(),
        category_id=uuid.uuid4(),
        title="Plumbing repair",
        description="Leak repair and drain cleaning",
        tags=["plumbing"],
        price=Decimal("80.00"),
    )
    fields.update(overrides)
    return ServiceCreate(**fields)


class TestCatalogService:
    @pytest.mark.asyncio
    async def test_create_survives_embedding_failure(self, mock_db_session, fake_provider, added):
        user_id = uuid.uuid4()
        mock_db_session.scalar.return_value = user_id
        mock_db_session.get.return_value = MagicMock(name="category")
        fake_provider.error = EmbeddingGenerationError()

        response = await CatalogService(EmbeddingStore(fake_provider)).create_service(
            mock_db_session, user_id, service_create()
        )

        assert response.has_embedding is False
        assert response.title == "Plumbing repair"

    @pytest.mark.asyncio
    async def test_create_embeds(self, mock_db_session, fake_provider, added):
        user_id = uuid.uuid4()
        mock_db_session.scalar.return_value = user_id
        mock_db_session.get.return_value = MagicMock(name="category")

        response = await CatalogService(EmbeddingStore(fake_provider)).create_service(
            mock_db_session, user_id, service_create()
        )

        assert response.has_embedding is True
        assert response.embedding_updated_at is not None

    @pytest.mark.asyncio
    async def test_create_for_foreign_provider_forbidden(self, mock_db_session, fake_provider):
        mock_db_session.scalar.return_value = uuid.uuid4()

        with pytest.raises(ForbiddenError):
            await CatalogService(EmbeddingStore(fake_provider)).create_service(
                mock_db_session, uuid.uuid4(), service_create()
            )
        mock_db_session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_category(self, mock_db_session, fake_provider):
        user_id = uuid.uuid4()
        mock_db_session.scalar.return_value = user_id
        mock_db_session.get.return_value = None

        with pytest.raises(NotFoundError):
            await CatalogService(EmbeddingStore(fake_provider)).create_service(
                mock_db_session, user_id, service_create()
            )

    @pytest.mark.asyncio
    async def test_price_update_keeps_vectors(self, mock_db_session, fake_provider):
        service = make_service(combined_vector=vec(0.0, 1.0))
        mock_db_session.get.return_value = service
        mock_db_session.scalar.return_value = service.provider_id

        response = await CatalogService(EmbeddingStore(fake_provider)).update_service(
            mock_db_session, service.provider_id, service.id, ServiceUpdate(price=Decimal("95.00"))
        )

        assert response.price == Decimal("95.00")
        assert fake_provider.calls == []
        assert service.combined_vector == vec(0.0, 1.0)

    @pytest.mark.asyncio
    async def test_tag_update_regenerates(self, mock_db_session, fake_provider):
        service = make_service(combined_vector=vec(0.0, 1.0))
        mock_db_session.get.return_value = service
        mock_db_session.scalar.return_value = service.provider_id

        await CatalogService(EmbeddingStore(fake_provider)).update_service(
            mock_db_session, service.provider_id, service.id, ServiceUpdate(tags=["drains"])
        )

        assert service.combined_vector == vec(1.0)

    @pytest.mark.parametrize(
        "field", ["category_id", "description", "tags", "price", "currency", "images", "is_active"]
    )
    def test_null_for_required_column_rejected(self, field):
        with pytest.raises(ValidationError):
            ServiceUpdate.model_validate({field: None})

    @pytest.mark.asyncio
    async def test_omitted_fields_left_alone(self, mock_db_session, fake_provider):
        service = make_service(combined_vector=vec(0.0, 1.0))
        mock_db_session.get.return_value = service
        mock_db_session.scalar.return_value = service.provider_id

        await CatalogService(EmbeddingStore(fake_provider)).update_service(
            mock_db_session, service.provider_id, service.id, ServiceUpdate(city="Austin")
        )

        assert service.price == Decimal("80.00")
        assert service.description is not None
        assert service.is_active is True
