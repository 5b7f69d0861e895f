"""Retrieval-grounded chat over a processed document."""

from typing import List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from tender_ai.core.config import settings
from tender_ai.core.exceptions import DocumentNotFoundError, RetrievalNotReadyError, ValidationError
from tender_ai.core.llm_client import BaseOracle
from tender_ai.database.models import Conversation, Message
from tender_ai.repositories.conversation_repository import ConversationRepository, MessageRepository
from tender_ai.repositories.document_repository import DocumentRepository
from tender_ai.repositories.embedding_repository import EmbeddingRepository
from tender_ai.schemas.chat import ChatResponse, SimilarPage, SourceSnippet
from tender_ai.schemas.enums import MessageRole
from tender_ai.services.retrieval.embedding_service import Embedder, EmbeddingService
from tender_ai.services.retrieval.prompts import (
    CHAT_SYSTEM_PROMPT,
    DOCUMENT_NOT_READY_MESSAGE,
    NO_CONTEXT_RESPONSE,
    build_rag_prompt,
)
from tender_ai.services.retrieval.similarity import find_similar
from tender_ai.utils.logging import get_logger

LOGGER = get_logger(__name__)

TITLE_MAX_WORDS = 6
TITLE_MAX_CHARS = 50
SNIPPET_MAX_CHARS = 300


def conversation_title(message: str) -> str:
    """First words of the opening message, marked when truncated."""
    text = message.strip()
    title = " ".join(text.split()[:TITLE_MAX_WORDS])
    if len(text) > len(title):
        title += "..."
    return title[:TITLE_MAX_CHARS]


class ChatService:
    """Answers questions from the pages most similar to them."""

    def __init__(
        self,
        session: AsyncSession,
        oracle: BaseOracle,
        embedder: Optional[Embedder] = None,
    ):
        self.document_repo = DocumentRepository(session)
        self.conversation_repo = ConversationRepository(session)
        self.message_repo = MessageRepository(session)
        self.embedding_repo = EmbeddingRepository(session)
        self.embedding_service = EmbeddingService(session, embedder)
        self.embedder = self.embedding_service.embedder
        self.oracle = oracle
        self.min_similarity = settings.retrieval.min_similarity
        self.history_limit = settings.retrieval.history_limit

    async def _conversation(
        self, document_id: UUID, conversation_id: Optional[UUID], message: str
    ) -> Conversation:
        if conversation_id is None:
            return await self.conversation_repo.create(
                document_id=document_id, title=conversation_title(message)
            )
        conversation = await self.conversation_repo.get_by_id(conversation_id)
        if conversation is None or conversation.document_id != document_id:
            raise ValidationError(f"Conversation {conversation_id} not found for document {document_id}")
        return conversation

    async def retrieve(self, document_id: UUID, query: str, top_k: int) -> List[SimilarPage]:
        """Top pages for a query, above the similarity threshold."""
        query_vector = (await self.embedder.embed([query]))[0]
        embeddings = await self.embedding_repo.get_by_document(document_id)
        candidates = [
            SimilarPage(page_id=e.page_id, page_number=e.page_number, text=e.text, similarity=0.0)
            for e in embeddings
        ]
        return find_similar(
            query_vector,
            candidates,
            [e.embedding for e in embeddings],
            top_k=top_k,
            min_similarity=self.min_similarity,
        )

    async def chat(
        self,
        document_id: UUID,
        message: str,
        conversation_id: Optional[UUID] = None,
        top_k: Optional[int] = None,
    ) -> ChatResponse:
        """Answer a question about a document.

        Args:
            document_id: Document being asked about
            message: The user's question
            conversation_id: Existing conversation, or None to start one
            top_k: Maximum pages used as context

        Returns:
            ChatResponse with the answer and the pages it was grounded on

        Raises:
            DocumentNotFoundError: If the document does not exist
            RetrievalNotReadyError: If too few pages are embedded
            ValidationError: If the message is empty, top_k is negative or the
                conversation is unknown
        """
        if not message or not message.strip():
            raise ValidationError("Message must not be empty")
        if top_k is None:
            top_k = settings.retrieval.default_top_k
        elif top_k < 0:
            raise ValidationError(f"top_k must not be negative, got {top_k}")

        document = await self.document_repo.get_by_id(document_id)
        if document is None:
            raise DocumentNotFoundError(f"Document {document_id} not found")

        status = await self.embedding_service.get_status(document_id)
        if not status.ready:
            raise RetrievalNotReadyError(
                DOCUMENT_NOT_READY_MESSAGE,
                embedded_pages=status.embedded_pages,
                total_pages=status.total_pages,
            )

        conversation = await self._conversation(document_id, conversation_id, message)
        # History is read before the new message is stored so it is not sent twice
        history = await self.message_repo.get_recent(conversation.id, self.history_limit)
        await self.message_repo.create(
            conversation_id=conversation.id,
            role=MessageRole.USER.value,
            content=message,
            source_pages_used=[],
        )

        pages = await self.retrieve(document_id, message, top_k)
        if not pages:
            LOGGER.info(f"No relevant pages for question on document {document_id}")
            content = NO_CONTEXT_RESPONSE
        else:
            messages = [{"role": m.role, "content": m.content} for m in history]
            messages.append({
                "role": MessageRole.USER.value,
                "content": build_rag_prompt(message, pages, document.name),
            })
            content = await self.oracle.generate(
                CHAT_SYSTEM_PROMPT,
                messages,
                temperature=settings.llm.chat_temperature,
                max_output_tokens=settings.llm.chat_max_output_tokens,
            )

        source_pages = [page.page_number for page in pages]
        reply = await self.message_repo.create(
            conversation_id=conversation.id,
            role=MessageRole.ASSISTANT.value,
            content=content,
            source_pages_used=source_pages,
        )
        await self.conversation_repo.save(conversation)

        return ChatResponse(
            message_id=reply.id,
            conversation_id=conversation.id,
            content=content,
            source_pages_used=source_pages,
            source_snippets=[
                SourceSnippet(
                    page_number=page.page_number,
                    excerpt=page.text[:SNIPPET_MAX_CHARS],
                    similarity=page.similarity,
                )
                for page in pages
            ],
        )

    async def list_conversations(self, document_id: UUID) -> List[Conversation]:
        return await self.conversation_repo.get_by_document(document_id)

    async def get_messages(self, conversation_id: UUID) -> List[Message]:
        return await self.message_repo.get_by_conversation(conversation_id)

    async def delete_conversation(self, conversation_id: UUID) -> bool:
        return await self.conversation_repo.delete(conversation_id)
