"""Page embeddings for retrieval-grounded chat."""

import asyncio
from typing import List, Optional, Protocol
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from tender_ai.core.config import settings
from tender_ai.core.exceptions import PipelineError
from tender_ai.repositories.embedding_repository import EmbeddingRepository
from tender_ai.repositories.page_repository import PageRepository
from tender_ai.schemas.chat import EmbeddingResult, RetrievalStatus
from tender_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)


class Embedder(Protocol):
    model_name: str

    async def embed(self, texts: List[str]) -> List[List[float]]:
        ...


class SentenceTransformerEmbedder:
    """Embedding provider backed by a local sentence-transformers model."""

    def __init__(self, model_name: Optional[str] = None):
        self.model_name = model_name or settings.retrieval.embedding_model
        self._model = None

    @property
    def model(self):
        """Lazy loader for the SentenceTransformer model."""
        if self._model is None:
            from sentence_transformers import SentenceTransformer

            LOGGER.info(f"Loading embedding model: {self.model_name}")
            self._model = SentenceTransformer(self.model_name)
        return self._model

    async def embed(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        vectors = await asyncio.to_thread(self.model.encode, texts, convert_to_numpy=True)
        return [vector.tolist() for vector in vectors]


def is_ready(embedded_pages: int, total_pages: int, ready_ratio: float = 0.8) -> bool:
    """Retrieval is usable once enough of the document is embedded."""
    return embedded_pages > 0 and embedded_pages >= ready_ratio * total_pages


class EmbeddingService:
    """Creates and reports on a document's page embeddings."""

    def __init__(self, session: AsyncSession, embedder: Optional[Embedder] = None):
        self.session = session
        self.page_repo = PageRepository(session)
        self.embedding_repo = EmbeddingRepository(session)
        self.embedder = embedder or SentenceTransformerEmbedder()
        self.batch_size = settings.retrieval.embedding_batch_size
        self.min_chars = settings.retrieval.min_page_chars
        self.ready_ratio = settings.retrieval.ready_ratio

    async def generate_for_document(self, document_id: UUID, regenerate: bool = False) -> EmbeddingResult:
        """Embed every page that is long enough and not yet embedded.

        Args:
            document_id: Document whose pages are embedded
            regenerate: Delete existing embeddings first

        Returns:
            EmbeddingResult with created and skipped page counts

        Raises:
            PipelineError: If the provider returns a different number of vectors than texts
        """
        if regenerate:
            deleted = await self.embedding_repo.delete_by_document(document_id)
            LOGGER.info(f"Deleted {deleted} embeddings for regeneration", extra={"document_id": str(document_id)})

        pages = await self.page_repo.get_by_document(document_id)
        embedded = await self.embedding_repo.get_embedded_page_ids(document_id)

        todo = []
        skipped = 0
        for page in pages:
            if page.id in embedded or len((page.text or "").strip()) < self.min_chars:
                skipped += 1
            else:
                todo.append(page)

        created = 0
        for start in range(0, len(todo), self.batch_size):
            chunk = todo[start:start + self.batch_size]
            vectors = await self.embedder.embed([page.text for page in chunk])
            if len(vectors) != len(chunk):
                raise PipelineError(
                    f"Embedding provider returned {len(vectors)} vectors for {len(chunk)} pages"
                )
            await self.embedding_repo.create_many([
                {
                    "document_id": document_id,
                    "page_id": page.id,
                    "page_number": page.page_number,
                    "text": page.text,
                    "embedding": vector,
                    "embedding_model": self.embedder.model_name,
                }
                for page, vector in zip(chunk, vectors)
            ])
            created += len(chunk)

        LOGGER.info(
            f"Embedding generation complete: {created} created, {skipped} skipped",
            extra={"document_id": str(document_id), "created": created, "skipped": skipped},
        )
        return EmbeddingResult(created=created, skipped=skipped)

    async def get_status(self, document_id: UUID) -> RetrievalStatus:
        total = len(await self.page_repo.get_by_document(document_id))
        embedded = await self.embedding_repo.count_by_document(document_id)
        return RetrievalStatus(
            total_pages=total,
            embedded_pages=embedded,
            ready=is_ready(embedded, total, self.ready_ratio),
        )

    async def is_ready(self, document_id: UUID) -> bool:
        return (await self.get_status(document_id)).ready
