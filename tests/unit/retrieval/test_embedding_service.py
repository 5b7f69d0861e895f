"""Unit tests for page embedding generation and readiness."""

import pytest
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

from tender_ai.core.exceptions import PipelineError
from tender_ai.services.retrieval.embedding_service import EmbeddingService, is_ready


class FakeEmbedder:
    model_name = "fake-model"

    def __init__(self):
        self.calls = []

    async def embed(self, texts):
        self.calls.append(list(texts))
        return [[float(len(text)), 1.0] for text in texts]


def _page(number, text):
    return SimpleNamespace(id=uuid4(), page_number=number, text=text)


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def service(embedder):
    service = EmbeddingService.__new__(EmbeddingService)
    service.page_repo = MagicMock()
    service.embedding_repo = MagicMock()
    service.embedding_repo.create_many = AsyncMock(side_effect=lambda rows: rows)
    service.embedding_repo.delete_by_document = AsyncMock(return_value=3)
    service.embedder = embedder
    service.batch_size = 2
    service.min_chars = 50
    service.ready_ratio = 0.8
    return service


class TestIsReady:

    @pytest.mark.parametrize("embedded,total,expected", [
        (80, 100, True),
        (79, 100, False),
        (0, 0, False),
        (1, 1, True),
    ])
    def test_threshold(self, embedded, total, expected):
        assert is_ready(embedded, total) is expected


class TestGenerateForDocument:

    @pytest.mark.asyncio
    async def test_skips_short_and_embedded_pages(self, service, embedder):
        long_text = "x" * 60
        pages = [_page(1, long_text), _page(2, "   curta   "), _page(3, long_text), _page(4, long_text), _page(5, long_text)]
        service.page_repo.get_by_document = AsyncMock(return_value=pages)
        service.embedding_repo.get_embedded_page_ids = AsyncMock(return_value={pages[0].id})

        result = await service.generate_for_document(uuid4())

        assert result.created == 3
        assert result.skipped == 2
        assert [len(call) for call in embedder.calls] == [2, 1]
        rows = service.embedding_repo.create_many.await_args_list[0].args[0]
        assert rows[0]["page_number"] == 3
        assert rows[0]["embedding_model"] == "fake-model"

    @pytest.mark.asyncio
    async def test_regenerate_deletes_first(self, service):
        service.page_repo.get_by_document = AsyncMock(return_value=[])
        service.embedding_repo.get_embedded_page_ids = AsyncMock(return_value=set())

        result = await service.generate_for_document(uuid4(), regenerate=True)

        service.embedding_repo.delete_by_document.assert_awaited_once()
        assert result.created == 0

    @pytest.mark.asyncio
    async def test_short_provider_output_rejected(self, service, embedder):
        pages = [_page(1, "x" * 60), _page(2, "y" * 60)]
        service.page_repo.get_by_document = AsyncMock(return_value=pages)
        service.embedding_repo.get_embedded_page_ids = AsyncMock(return_value=set())
        embedder.embed = AsyncMock(return_value=[[1.0, 0.0]])

        with pytest.raises(PipelineError):
            await service.generate_for_document(uuid4())

        service.embedding_repo.create_many.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_status(self, service):
        service.page_repo.get_by_document = AsyncMock(return_value=[_page(n, "") for n in range(10)])
        service.embedding_repo.count_by_document = AsyncMock(return_value=8)

        status = await service.get_status(uuid4())

        assert (status.total_pages, status.embedded_pages, status.ready) == (10, 8, True)
