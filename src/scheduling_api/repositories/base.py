"""Base repository class with common CRUD operations."""

import logging
from typing import Any, Generic, List, Optional, Sequence, Tuple, Type, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from scheduling_api.database.models import Base
from scheduling_api.exceptions import DatabaseError

logger = logging.getLogger(__name__)

# Type variable for the model type
ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """Base repository with common CRUD operations."""

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        """
        Initialize repository.

        Args:
            model: SQLAlchemy model class
            session: Async database session
        """
        self.model = model
        self.session = session

    async def get_by_id(self, id: str) -> Optional[ModelType]:
        """
        Get a record by ID.

        Args:
            id: Record ID

        Returns:
            Model instance or None if not found
        """
        try:
            result = await self.session.execute(select(self.model).where(self.model.id == id))
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Error getting {self.model.__name__} by ID {id}: {e}")
            raise DatabaseError(f"Failed to retrieve {self.model.__name__}") from e

    async def create(self, **kwargs: Any) -> ModelType:
        """
        Create a new record.

        Args:
            **kwargs: Model field values

        Returns:
            Created model instance
        """
        try:
            instance = self.model(**kwargs)
            self.session.add(instance)
            await self.session.flush()
            logger.debug(f"Created {self.model.__name__} with ID: {instance.id}")
            return instance
        except SQLAlchemyError as e:
            logger.error(f"Error creating {self.model.__name__}: {e}")
            await self.session.rollback()
            raise DatabaseError(f"Failed to create {self.model.__name__}") from e

    async def update(self, instance: ModelType, **kwargs: Any) -> ModelType:
        """
        Update fields of a loaded record.

        Args:
            instance: Model instance to update
            **kwargs: Fields to update

        Returns:
            Updated model instance
        """
        try:
            for field, value in kwargs.items():
                if hasattr(instance, field):
                    setattr(instance, field, value)
            await self.session.flush()
            logger.debug(f"Updated {self.model.__name__} with ID: {instance.id}")
            return instance
        except SQLAlchemyError as e:
            logger.error(f"Error updating {self.model.__name__} with ID {instance.id}: {e}")
            await self.session.rollback()
            raise DatabaseError(f"Failed to update {self.model.__name__}") from e

    async def delete(self, instance: ModelType) -> None:
        """
        Delete a loaded record.

        Args:
            instance: Model instance to delete
        """
        try:
            await self.session.delete(instance)
            await self.session.flush()
            logger.debug(f"Deleted {self.model.__name__} with ID: {instance.id}")
        except SQLAlchemyError as e:
            logger.error(f"Error deleting {self.model.__name__} with ID {instance.id}: {e}")
            await self.session.rollback()
            raise DatabaseError(f"Failed to delete {self.model.__name__}") from e

    async def count_where(self, *conditions: Any) -> int:
        """Count records matching all given conditions."""
        try:
            query = select(func.count()).select_from(self.model).where(*conditions)
            result = await self.session.execute(query)
            return result.scalar() or 0
        except SQLAlchemyError as e:
            logger.error(f"Error counting {self.model.__name__}: {e}")
            raise DatabaseError(f"Failed to count {self.model.__name__} records") from e

    async def paginate(
        self, query: Select, page: int, limit: int
    ) -> Tuple[List[Any], int]:
        """
        Run ``query`` for one page and count the full result set.

        Args:
            query: Select statement with filters and ordering applied
            page: 1-based page number
            limit: Page size

        Returns:
            Tuple of (items on the page, total matching rows)
        """
        try:
            count_query = select(func.count()).select_from(query.order_by(None).subquery())
            total = (await self.session.execute(count_query)).scalar() or 0
            result = await self.session.execute(query.offset((page - 1) * limit).limit(limit))
            return list(result.scalars().unique().all()), total
        except SQLAlchemyError as e:
            logger.error(f"Error paginating {self.model.__name__}: {e}")
            raise DatabaseError(f"Failed to retrieve {self.model.__name__} records") from e

    async def all(self, query: Select) -> Sequence[Any]:
        """Run ``query`` and return every entity it selects."""
        try:
            result = await self.session.execute(query)
            return list(result.scalars().unique().all())
        except SQLAlchemyError as e:
            logger.error(f"Error querying {self.model.__name__}: {e}")
            raise DatabaseError(f"Failed to retrieve {self.model.__name__} records") from e
