"""Repositories for issued access tokens and password reset requests."""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from scheduling_api.database.models import PasswordReset, Token
from scheduling_api.exceptions import DatabaseError
from scheduling_api.repositories.base import BaseRepository
from scheduling_api.utils.time import utcnow

logger = logging.getLogger(__name__)


class TokenRepository(BaseRepository[Token]):
    """Durable token store."""

    def __init__(self, session: AsyncSession):
        super().__init__(Token, session)

    async def store(self, token: str, user_id: str, expires_at: datetime) -> Token:
        """Persist a freshly issued token."""
        return await self.create(token=token, user_id=user_id, expires_at=expires_at)

    async def get_valid(self, token: str) -> Optional[Token]:
        """Return the stored token if it exists and has not expired."""
        try:
            result = await self.session.execute(
                select(Token).where(Token.token == token, Token.expires_at > utcnow())
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Error looking up token: {e}")
            raise DatabaseError("Failed to retrieve token") from e

    async def list_for_user(self, user_id: str) -> List[str]:
        """Return every token value stored for a user."""
        try:
            result = await self.session.execute(select(Token.token).where(Token.user_id == user_id))
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Error listing tokens for user {user_id}: {e}")
            raise DatabaseError("Failed to retrieve tokens") from e

    async def delete_token(self, token: str) -> bool:
        """Delete a single token. Returns True if a row was removed."""
        try:
            result = await self.session.execute(delete(Token).where(Token.token == token))
            return (result.rowcount or 0) > 0
        except SQLAlchemyError as e:
            logger.error(f"Error deleting token: {e}")
            raise DatabaseError("Failed to delete token") from e

    async def delete_for_user(self, user_id: str) -> int:
        """Delete every token of a user. Returns the number of rows removed."""
        try:
            result = await self.session.execute(delete(Token).where(Token.user_id == user_id))
            return result.rowcount or 0
        except SQLAlchemyError as e:
            logger.error(f"Error deleting tokens for user {user_id}: {e}")
            raise DatabaseError("Failed to delete tokens") from e


class PasswordResetRepository(BaseRepository[PasswordReset]):
    """Password reset request store."""

    def __init__(self, session: AsyncSession):
        super().__init__(PasswordReset, session)

    async def find_valid(self, token_hash: str) -> Optional[PasswordReset]:
        """Return an unused, unexpired reset record for the hashed token."""
        try:
            result = await self.session.execute(
                select(PasswordReset).where(
                    PasswordReset.token_hash == token_hash,
                    PasswordReset.expires_at > utcnow(),
                    PasswordReset.is_used.is_(False),
                )
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Error looking up password reset: {e}")
            raise DatabaseError("Failed to retrieve password reset") from e

    async def delete_for_user(self, user_id: str) -> None:
        try:
            await self.session.execute(delete(PasswordReset).where(PasswordReset.user_id == user_id))
        except SQLAlchemyError as e:
            logger.error(f"Error deleting password resets for user {user_id}: {e}")
            raise DatabaseError("Failed to delete password resets") from e

    async def invalidate_for_user(self, user_id: str) -> None:
        """Mark every reset record of a user as used."""
        try:
            await self.session.execute(
                update(PasswordReset).where(PasswordReset.user_id == user_id).values(is_used=True)
            )
        except SQLAlchemyError as e:
            logger.error(f"Error invalidating password resets for user {user_id}: {e}")
            raise DatabaseError("Failed to update password resets") from e
