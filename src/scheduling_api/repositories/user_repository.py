"""User repository for database operations."""

import logging
from typing import List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from scheduling_api.database.models import User
from scheduling_api.exceptions import DatabaseError
from scheduling_api.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


class UserRepository(BaseRepository[User]):
    """Repository for User model operations."""

    def __init__(self, session: AsyncSession):
        """Initialize user repository."""
        super().__init__(User, session)

    async def get_by_email(self, email: str) -> Optional[User]:
        """
        Get a user by email address (case-insensitive).

        Args:
            email: User email address

        Returns:
            User instance or None if not found
        """
        try:
            result = await self.session.execute(
                select(User).where(User.email == email.strip().lower())
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Error getting user by email {email}: {e}")
            raise DatabaseError("Failed to retrieve user by email") from e

    async def get_by_ids(self, ids: Sequence[str]) -> List[User]:
        """Return the users whose id is in ``ids`` (missing ids are skipped)."""
        if not ids:
            return []
        try:
            result = await self.session.execute(select(User).where(User.id.in_(list(ids))))
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Error getting users by ids: {e}")
            raise DatabaseError("Failed to retrieve users") from e

    async def email_exists(self, email: str) -> bool:
        """Check if a user with this email already exists."""
        return await self.get_by_email(email) is not None

    async def create_user(
        self,
        first_name: str,
        last_name: str,
        email: str,
        hashed_password: str,
        role: str,
        phone: Optional[str] = None,
        department: Optional[str] = None,
    ) -> User:
        """
        Create a new user with normalized name and email fields.

        Args:
            first_name: Given name
            last_name: Family name
            email: Email address (stored trimmed and lower-cased)
            hashed_password: bcrypt hash of the password
            role: Manager or Developer
            phone: Optional phone number
            department: Optional department

        Returns:
            Created user instance
        """
        return await self.create(
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            email=email.strip().lower(),
            hashed_password=hashed_password,
            role=role,
            phone=phone.strip() if phone else None,
            department=department.strip() if department else None,
        )
