from typing import Any, Dict, Generic, List, Optional, Type, TypeVar
from uuid import UUID
from datetime import datetime, timezone

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tender_ai.core.exceptions import PersistenceError
from tender_ai.utils.logging import get_logger

# Define a generic type for SQLAlchemy models
ModelType = TypeVar("ModelType")

LOGGER = get_logger(__name__)


class BaseRepository(Generic[ModelType]):
    """Base repository implementing common CRUD operations.

    Every SQLAlchemy failure is logged and re-raised as ``PersistenceError``
    so callers deal with a single fatal error type for durable state.
    Writes commit immediately unless the session is inside a savepoint.
    """

    def __init__(self, session: AsyncSession, model: Type[ModelType]):
        """Initialize the repository.

        Args:
            session: SQLAlchemy async session
            model: The SQLAlchemy model class this repository manages
        """
        self.session = session
        self.model = model
        self.logger = LOGGER

    def _fail(self, action: str, error: SQLAlchemyError) -> PersistenceError:
        self.logger.error(
            f"Error {action} {self.model.__name__}: {str(error)}",
            exc_info=True
        )
        return PersistenceError(f"Failed {action} {self.model.__name__}", original_error=error)

    async def _flush_and_commit(self) -> None:
        await self.session.flush()
        # Inside a savepoint the caller commits once the savepoint is released
        if not self.session.in_nested_transaction():
            await self.session.commit()

    async def _scalars(self, query) -> List[ModelType]:
        try:
            result = await self.session.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise self._fail("querying", e) from e

    async def _scalar(self, query) -> Any:
        try:
            result = await self.session.execute(query)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise self._fail("querying", e) from e

    async def _rows(self, query) -> list:
        try:
            result = await self.session.execute(query)
            return list(result.all())
        except SQLAlchemyError as e:
            raise self._fail("querying", e) from e

    async def get_by_id(self, id: UUID) -> Optional[ModelType]:
        """Get a record by its ID.

        Args:
            id: The UUID of the record

        Returns:
            The record if found, None otherwise
        """
        return await self._scalar(select(self.model).where(self.model.id == id))

    async def get_all(
        self,
        skip: int = 0,
        limit: int = 200,
        filters: Optional[Dict[str, Any]] = None
    ) -> List[ModelType]:
        """Get all records with optional pagination and filtering.

        Args:
            skip: Number of records to skip
            limit: Maximum number of records to return
            filters: Dictionary of field_name: value to filter by

        Returns:
            List of records
        """
        query = select(self.model)

        if filters:
            for field, value in filters.items():
                if hasattr(self.model, field):
                    query = query.where(getattr(self.model, field) == value)

        return await self._scalars(query.offset(skip).limit(limit))

    async def create(self, **kwargs) -> ModelType:
        """Create a new record.

        Args:
            **kwargs: Fields and values for the new record

        Returns:
            The created record
        """
        try:
            instance = self.model(**kwargs)
            self.session.add(instance)
            await self._flush_and_commit()
            return instance
        except SQLAlchemyError as e:
            raise self._fail("creating", e) from e

    async def create_many(self, rows: List[Dict[str, Any]]) -> List[ModelType]:
        """Create several records in one flush/commit.

        Args:
            rows: One kwargs dict per record

        Returns:
            The created records, in input order
        """
        if not rows:
            return []
        try:
            instances = [self.model(**row) for row in rows]
            self.session.add_all(instances)
            await self._flush_and_commit()
            return instances
        except SQLAlchemyError as e:
            raise self._fail("bulk creating", e) from e

    async def update(self, id: UUID, **kwargs) -> Optional[ModelType]:
        """Update an existing record.

        Args:
            id: The UUID of the record to update
            **kwargs: Fields and values to update

        Returns:
            The updated record if found, None otherwise
        """
        instance = await self.get_by_id(id)
        if not instance:
            return None
        return await self.save(instance, **kwargs)

    async def save(self, instance: ModelType, **kwargs) -> ModelType:
        """Apply field changes to a loaded record and commit.

        Args:
            instance: A record attached to this session
            **kwargs: Fields and values to update

        Returns:
            The updated record
        """
        try:
            for key, value in kwargs.items():
                if hasattr(instance, key):
                    setattr(instance, key, value)

            if hasattr(instance, "updated_at"):
                setattr(instance, "updated_at", datetime.now(timezone.utc))

            await self._flush_and_commit()
            return instance
        except SQLAlchemyError as e:
            raise self._fail("updating", e) from e

    async def commit(self) -> None:
        """Flush and commit pending changes to loaded records."""
        try:
            await self._flush_and_commit()
        except SQLAlchemyError as e:
            raise self._fail("committing", e) from e

    async def delete(self, id: UUID) -> bool:
        """Delete a record by ID.

        Args:
            id: The UUID of the record to delete

        Returns:
            True if deleted, False if not found
        """
        instance = await self.get_by_id(id)
        if not instance:
            return False
        try:
            await self.session.delete(instance)
            await self._flush_and_commit()
            return True
        except SQLAlchemyError as e:
            raise self._fail("deleting", e) from e

    async def delete_by_document(self, document_id: UUID) -> int:
        """Delete every record owned by a document.

        Args:
            document_id: Owning document

        Returns:
            Number of deleted rows
        """
        try:
            result = await self.session.execute(
                delete(self.model).where(self.model.document_id == document_id)
            )
            await self._flush_and_commit()
            return result.rowcount or 0
        except SQLAlchemyError as e:
            raise self._fail("deleting", e) from e

    async def get_by_document(self, document_id: UUID) -> List[ModelType]:
        """Get all records owned by a document."""
        return await self._scalars(
            select(self.model).where(self.model.document_id == document_id)
        )

    async def count(self, filters: Optional[Dict[str, Any]] = None) -> int:
        """Count records matching filters.

        Args:
            filters: Dictionary of field_name: value to filter by

        Returns:
            Count of matching records
        """
        query = select(func.count()).select_from(self.model)

        if filters:
            for field, value in filters.items():
                if hasattr(self.model, field):
                    query = query.where(getattr(self.model, field) == value)

        return (await self._scalar(query)) or 0

    async def count_grouped(self, document_id: UUID, column: str) -> Dict[str, int]:
        """Count a document's records grouped by one column.

        Args:
            document_id: Owning document
            column: Column name to group by

        Returns:
            Mapping of column value to count
        """
        attr = getattr(self.model, column)
        query = (
            select(attr, func.count())
            .where(self.model.document_id == document_id)
            .group_by(attr)
        )
        rows = await self._rows(query)
        return {str(value): count for value, count in rows}
