from typing import Iterable, List, Optional
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from tender_ai.database.models import Entity, EntityConflict
from tender_ai.repositories.base_repository import BaseRepository


class EntityRepository(BaseRepository[Entity]):
    """Repository for deduplicated entities."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Entity)

    async def get_by_key(self, document_id: UUID, semantic_key: str) -> Optional[Entity]:
        """Get the live entity for a semantic key."""
        return await self._scalar(
            select(Entity).where(
                Entity.document_id == document_id,
                Entity.semantic_key == semantic_key,
            )
        )

    async def get_by_keys(self, document_id: UUID, semantic_keys: Iterable[str]) -> List[Entity]:
        keys = list(set(semantic_keys))
        if not keys:
            return []
        return await self._scalars(
            select(Entity).where(
                Entity.document_id == document_id,
                Entity.semantic_key.in_(keys),
            )
        )

    async def find(
        self,
        document_id: UUID,
        query: Optional[str] = None,
        entity_type: Optional[str] = None,
        limit: int = 20,
    ) -> List[Entity]:
        """Search a document's entities by name/raw value and type."""
        stmt = select(Entity).where(Entity.document_id == document_id)
        if entity_type:
            stmt = stmt.where(Entity.type == entity_type)
        if query:
            pattern = f"%{query}%"
            stmt = stmt.where(or_(Entity.name.ilike(pattern), Entity.raw_value.ilike(pattern)))
        return await self._scalars(stmt.limit(limit))

    async def count_by_type(self, document_id: UUID) -> dict:
        return await self.count_grouped(document_id, "type")


class EntityConflictRepository(BaseRepository[EntityConflict]):
    """Repository for recorded reconciliation conflicts."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, EntityConflict)
