"""Blocking endpoints: block, unblock and inspect block edges."""

import logging
from typing import List

from fastapi import APIRouter, Depends, Query, status

from scheduling_api.auth.dependencies import get_current_user
from scheduling_api.dependencies import blocking_service
from scheduling_api.models.blocking import (
    BlockListItem,
    BlockRequest,
    BlockResponse,
    BlockStatsResponse,
    BlockStatusResponse,
    UnblockResponse,
)
from scheduling_api.models.common import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    ApiResponse,
    PaginatedResponse,
    Pagination,
    UserSummary,
)
from scheduling_api.services.auth_service import CurrentUser
from scheduling_api.services.blocking_service import BlockingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/blocks", tags=["blocking"])


@router.get(
    "",
    response_model=PaginatedResponse[List[BlockListItem]],
    summary="Users I blocked",
)
async def list_blocked(
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, description="Page size"),
    current_user: CurrentUser = Depends(get_current_user),
    service: BlockingService = Depends(blocking_service),
):
    items, total = await service.list_blocked_by(current_user.user_id, page, limit)
    return PaginatedResponse(
        message="Blocked users retrieved successfully",
        data=[BlockListItem.model_validate(item) for item in items],
        pagination=Pagination.build(page, limit, total),
    )


@router.get(
    "/blockers",
    response_model=PaginatedResponse[List[BlockListItem]],
    summary="Users who blocked me",
)
async def list_blockers(
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, description="Page size"),
    current_user: CurrentUser = Depends(get_current_user),
    service: BlockingService = Depends(blocking_service),
):
    items, total = await service.list_blockers_of(current_user.user_id, page, limit)
    return PaginatedResponse(
        message="Users who blocked you retrieved successfully",
        data=[BlockListItem.model_validate(item) for item in items],
        pagination=Pagination.build(page, limit, total),
    )


@router.get("/stats", response_model=ApiResponse[BlockStatsResponse], summary="Block counts")
async def block_stats(
    current_user: CurrentUser = Depends(get_current_user),
    service: BlockingService = Depends(blocking_service),
):
    stats = await service.stats(current_user.user_id)
    return ApiResponse(
        message="Block statistics retrieved successfully",
        data=BlockStatsResponse.model_validate(stats),
    )


@router.post(
    "",
    response_model=ApiResponse[BlockResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Block a user",
)
async def block_user(
    request: BlockRequest,
    current_user: CurrentUser = Depends(get_current_user),
    service: BlockingService = Depends(blocking_service),
):
    """
    Block another user.

    While a block exists in either direction the two users cannot be put on
    the same appointment by the manager among them.
    """
    block = await service.block(current_user.user_id, request.user_id, request.reason)
    return ApiResponse(
        message=f"{block['blocked_user']['name']} has been blocked successfully",
        data=BlockResponse.model_validate(block),
    )


@router.delete("/{user_id}", response_model=ApiResponse[UnblockResponse], summary="Unblock")
async def unblock_user(
    user_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: BlockingService = Depends(blocking_service),
):
    user = await service.unblock(current_user.user_id, user_id)
    return ApiResponse(
        message=f"{user.full_name} has been unblocked successfully",
        data=UnblockResponse(
            unblocked_user=UserSummary(
                id=user.id, name=user.full_name, email=user.email, role=user.role
            )
        ),
    )


@router.get(
    "/{user_id}/status",
    response_model=ApiResponse[BlockStatusResponse],
    summary="Block status with a user",
)
async def block_status(
    user_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: BlockingService = Depends(blocking_service),
):
    result = await service.block_status(current_user.user_id, user_id)
    return ApiResponse(
        message="Block status retrieved successfully",
        data=BlockStatusResponse.model_validate(result),
    )
