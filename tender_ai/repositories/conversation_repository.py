from typing import List
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tender_ai.database.models import Conversation, Message
from tender_ai.repositories.base_repository import BaseRepository


class ConversationRepository(BaseRepository[Conversation]):
    """Repository for chat conversations."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Conversation)

    async def get_by_document(self, document_id: UUID) -> List[Conversation]:
        """Get a document's conversations, most recently updated first."""
        return await self._scalars(
            select(Conversation)
            .where(Conversation.document_id == document_id)
            .order_by(Conversation.updated_at.desc())
        )


class MessageRepository(BaseRepository[Message]):
    """Repository for chat messages."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Message)

    async def get_by_conversation(self, conversation_id: UUID) -> List[Message]:
        return await self._scalars(
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at)
        )

    async def get_recent(self, conversation_id: UUID, limit: int = 10) -> List[Message]:
        """Get the last ``limit`` messages in chronological order."""
        rows = await self._scalars(
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.desc())
            .limit(limit)
        )
        return list(reversed(rows))
