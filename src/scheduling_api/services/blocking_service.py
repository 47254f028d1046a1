"""Blocking ledger: directed block edges that gate appointment scheduling."""

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from scheduling_api.database.models import BlockedUser, User
from scheduling_api.exceptions import ConflictError, NotFoundError, ValidationError
from scheduling_api.repositories.blocked_user_repository import BlockedUserRepository
from scheduling_api.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)

MAX_REASON_LENGTH = 500


def ensure_distinct_parties(blocker_id: str, blocked_id: str) -> None:
    """A user can never block themself."""
    if blocker_id == blocked_id:
        raise ConflictError("You cannot block yourself")


def _user_summary(user: User, with_department: bool = False) -> Dict[str, Any]:
    summary = {
        "id": user.id,
        "name": user.full_name,
        "email": user.email,
        "role": user.role,
    }
    if with_department:
        summary["department"] = user.department
    return summary


def _edge_view(edge: BlockedUser, counterpart: User) -> Dict[str, Any]:
    return {
        "block_id": edge.id,
        "user": _user_summary(counterpart, with_department=True),
        "reason": edge.reason,
        "blocked_at": edge.created_at,
    }


class BlockingService:
    """Service for block/unblock operations and blocking checks."""

    def __init__(self, session: AsyncSession):
        """
        Initialize blocking service.

        Args:
            session: Database session
        """
        self.blocks = BlockedUserRepository(session)
        self.users = UserRepository(session)

    async def is_blocked(self, blocker_id: str, blocked_id: str) -> bool:
        """True iff ``blocker_id`` has blocked ``blocked_id``."""
        return await self.blocks.exists(blocker_id, blocked_id)

    async def is_blocked_either_way(self, user_a: str, user_b: str) -> bool:
        """True if either user has blocked the other."""
        return await self.is_blocked(user_a, user_b) or await self.is_blocked(user_b, user_a)

    async def find_blocked_attendee(
        self, manager_id: str, attendees: Sequence[User]
    ) -> Optional[User]:
        """First attendee (in the given order) with a block edge to or from the manager."""
        blocked_ids = await self.blocks.counterparts_blocked_with(
            manager_id, [attendee.id for attendee in attendees]
        )
        for attendee in attendees:
            if attendee.id in blocked_ids:
                return attendee
        return None

    async def _require_user(self, user_id: str) -> User:
        user = await self.users.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User", message="User not found")
        return user

    async def block(
        self, blocker_id: str, blocked_id: Optional[str], reason: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Create the edge blocker -> blocked.

        Raises:
            ValidationError: missing user id or over-long reason
            ConflictError: self-block or an existing edge
            NotFoundError: the blocked user does not exist
        """
        if not blocked_id:
            raise ValidationError("User ID is required")
        ensure_distinct_parties(blocker_id, blocked_id)
        if reason is not None:
            reason = reason.strip() or None
        if reason and len(reason) > MAX_REASON_LENGTH:
            raise ValidationError(f"Reason cannot exceed {MAX_REASON_LENGTH} characters")

        blocked_user = await self._require_user(blocked_id)
        summary = _user_summary(blocked_user)
        already_blocked = f"{blocked_user.full_name} is already blocked"
        if await self.blocks.exists(blocker_id, blocked_id):
            raise ConflictError(already_blocked)

        try:
            edge = await self.blocks.create_edge(blocker_id, blocked_id, reason)
        except ConflictError as e:
            raise ConflictError(already_blocked) from e
        logger.info(f"User {blocker_id} blocked user {blocked_id}")
        return {
            "block_id": edge.id,
            "blocked_user": summary,
            "reason": edge.reason,
            "blocked_at": edge.created_at,
        }

    async def unblock(self, blocker_id: str, blocked_id: str) -> User:
        """Remove the edge blocker -> blocked. Returns the unblocked user."""
        blocked_user = await self._require_user(blocked_id)
        edge = await self.blocks.get_edge(blocker_id, blocked_id)
        if edge is None:
            raise NotFoundError("Block record", message=f"{blocked_user.full_name} is not blocked")
        await self.blocks.delete(edge)
        logger.info(f"User {blocker_id} unblocked user {blocked_id}")
        return blocked_user

    async def block_status(self, current_id: str, other_id: str) -> Dict[str, Any]:
        """Pairwise view of the block edges between the current user and another user."""
        other = await self._require_user(other_id)
        by_you = await self.is_blocked(current_id, other_id)
        by_them = await self.is_blocked(other_id, current_id)
        return {
            "user": _user_summary(other),
            "blocked": {
                "by_you": by_you,
                "by_them": by_them,
                "can_schedule_appointment": not (by_you or by_them),
            },
        }

    async def list_blocked_by(
        self, user_id: str, page: int, limit: int
    ) -> Tuple[List[Dict[str, Any]], int]:
        """Users blocked by ``user_id``, newest block first."""
        edges, total = await self.blocks.list_blocked_by(user_id, page, limit)
        return [_edge_view(edge, edge.blocked) for edge in edges], total

    async def list_blockers_of(
        self, user_id: str, page: int, limit: int
    ) -> Tuple[List[Dict[str, Any]], int]:
        """Users who blocked ``user_id``, newest block first."""
        edges, total = await self.blocks.list_blockers_of(user_id, page, limit)
        return [_edge_view(edge, edge.blocker) for edge in edges], total

    async def stats(self, user_id: str) -> Dict[str, int]:
        return {
            "blocked_count": await self.blocks.count_blocked_by(user_id),
            "blocked_by_count": await self.blocks.count_blockers_of(user_id),
        }


def get_blocking_service(session: AsyncSession) -> BlockingService:
    """Get a blocking service instance."""
    return BlockingService(session)
