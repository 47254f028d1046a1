"""Pydantic models for blocking endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field

from scheduling_api.models.common import CamelModel, UserSummary


class BlockRequest(CamelModel):
    """Request model for blocking a user."""

    user_id: Optional[str] = Field(None, description="ID of the user to block")
    reason: Optional[str] = Field(None, description="Optional reason (up to 500 characters)")


class BlockResponse(CamelModel):
    """A newly created block."""

    block_id: str = Field(..., description="Block record ID")
    blocked_user: UserSummary
    reason: Optional[str] = Field(None, description="Reason")
    blocked_at: datetime = Field(..., description="When the block was created")


class BlockListItem(CamelModel):
    """The other party of a block, seen from the current user."""

    block_id: str
    user: UserSummary
    reason: Optional[str] = None
    blocked_at: datetime


class BlockFlags(CamelModel):
    by_you: bool = Field(..., description="The current user blocked the other user")
    by_them: bool = Field(..., description="The other user blocked the current user")
    can_schedule_appointment: bool = Field(..., description="No block in either direction")


class BlockStatusResponse(CamelModel):
    user: UserSummary
    blocked: BlockFlags


class BlockStatsResponse(CamelModel):
    blocked_count: int = Field(..., description="Users blocked by the current user")
    blocked_by_count: int = Field(..., description="Users who blocked the current user")


class UnblockResponse(CamelModel):
    unblocked_user: UserSummary
