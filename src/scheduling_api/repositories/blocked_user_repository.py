"""Repository for directed block edges between users."""

import logging
from typing import List, Optional, Sequence, Set, Tuple

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from scheduling_api.database.models import BlockedUser
from scheduling_api.exceptions import ConflictError, DatabaseError
from scheduling_api.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


class BlockedUserRepository(BaseRepository[BlockedUser]):
    """Repository for BlockedUser model operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(BlockedUser, session)

    async def get_edge(self, blocker_id: str, blocked_id: str) -> Optional[BlockedUser]:
        """Return the edge blocker -> blocked, if any."""
        try:
            result = await self.session.execute(
                select(BlockedUser).where(
                    BlockedUser.blocker_id == blocker_id,
                    BlockedUser.blocked_id == blocked_id,
                )
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Error getting block {blocker_id} -> {blocked_id}: {e}")
            raise DatabaseError("Failed to retrieve block record") from e

    async def create_edge(
        self, blocker_id: str, blocked_id: str, reason: Optional[str] = None
    ) -> BlockedUser:
        """
        Insert the edge blocker -> blocked.

        Raises:
            ConflictError: the pair already exists (unique constraint)
        """
        edge = BlockedUser(blocker_id=blocker_id, blocked_id=blocked_id, reason=reason)
        self.session.add(edge)
        try:
            await self.session.flush()
        except IntegrityError as e:
            await self.session.rollback()
            logger.info(f"Block {blocker_id} -> {blocked_id} already exists")
            raise ConflictError("User is already blocked") from e
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Error creating block {blocker_id} -> {blocked_id}: {e}")
            raise DatabaseError("Failed to create BlockedUser") from e
        return edge

    async def exists(self, blocker_id: str, blocked_id: str) -> bool:
        return await self.get_edge(blocker_id, blocked_id) is not None

    async def counterparts_blocked_with(self, user_id: str, others: Sequence[str]) -> Set[str]:
        """
        Return the subset of ``others`` that has an edge with ``user_id`` in
        either direction.
        """
        if not others:
            return set()
        others = list(others)
        try:
            result = await self.session.execute(
                select(BlockedUser.blocker_id, BlockedUser.blocked_id).where(
                    or_(
                        and_(BlockedUser.blocker_id == user_id, BlockedUser.blocked_id.in_(others)),
                        and_(BlockedUser.blocked_id == user_id, BlockedUser.blocker_id.in_(others)),
                    )
                )
            )
            counterparts = set()
            for blocker_id, blocked_id in result.all():
                counterparts.add(blocked_id if blocker_id == user_id else blocker_id)
            return counterparts
        except SQLAlchemyError as e:
            logger.error(f"Error checking blocks for user {user_id}: {e}")
            raise DatabaseError("Failed to check blocking relationships") from e

    async def list_blocked_by(
        self, blocker_id: str, page: int, limit: int
    ) -> Tuple[List[BlockedUser], int]:
        """Edges created by ``blocker_id``, newest first, with the blocked user loaded."""
        query = (
            select(BlockedUser)
            .where(BlockedUser.blocker_id == blocker_id)
            .options(selectinload(BlockedUser.blocked))
            .order_by(BlockedUser.created_at.desc(), BlockedUser.id)
        )
        return await self.paginate(query, page, limit)

    async def list_blockers_of(
        self, blocked_id: str, page: int, limit: int
    ) -> Tuple[List[BlockedUser], int]:
        """Edges pointing at ``blocked_id``, newest first, with the blocker loaded."""
        query = (
            select(BlockedUser)
            .where(BlockedUser.blocked_id == blocked_id)
            .options(selectinload(BlockedUser.blocker))
            .order_by(BlockedUser.created_at.desc(), BlockedUser.id)
        )
        return await self.paginate(query, page, limit)

    async def count_blocked_by(self, user_id: str) -> int:
        return await self.count_where(BlockedUser.blocker_id == user_id)

    async def count_blockers_of(self, user_id: str) -> int:
        return await self.count_where(BlockedUser.blocked_id == user_id)
