from sqlalchemy.ext.asyncio import AsyncSession

from tender_ai.database.models import Risk
from tender_ai.repositories.base_repository import BaseRepository


class RiskRepository(BaseRepository[Risk]):
    """Repository for risk assessments."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, Risk)
