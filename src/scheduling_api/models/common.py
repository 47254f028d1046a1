"""Shared response envelope and pagination models."""

from __future__ import annotations

import math
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys; accepts either spelling on input."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class UserSummary(CamelModel):
    """Compact user reference used across responses."""

    id: str = Field(..., description="User ID")
    name: str = Field(..., description="Full name")
    email: str = Field(..., description="Email address")
    role: Optional[str] = Field(None, description="Manager or Developer")
    department: Optional[str] = Field(None, description="Department")


class Pagination(CamelModel):
    """Offset pagination metadata."""

    current_page: int = Field(..., description="Current page (1-based)")
    total_pages: int = Field(..., description="Number of pages")
    total_items: int = Field(..., description="Number of matching items")
    limit: int = Field(..., description="Page size")
    has_next: bool = Field(..., description="A later page exists")
    has_prev: bool = Field(..., description="An earlier page exists")

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        total_pages = math.ceil(total / limit) if limit else 0
        return cls(
            current_page=page,
            total_pages=total_pages,
            total_items=total,
            limit=limit,
            has_next=page < total_pages,
            has_prev=page > 1,
        )


class ApiResponse(CamelModel, Generic[T]):
    """Success envelope."""

    success: bool = Field(True, description="Always true for successful requests")
    message: str = Field(..., description="Human readable outcome")
    data: Optional[T] = Field(None, description="Response payload")


class PaginatedResponse(ApiResponse[T], Generic[T]):
    """Success envelope for paged listings."""

    pagination: Pagination = Field(..., description="Pagination metadata")


class ErrorResponse(BaseModel):
    """Failure envelope (documentation only; rendered by the exception handlers)."""

    success: bool = Field(False, description="Always false")
    message: str = Field(..., description="Error message")
    errors: Optional[Any] = Field(None, description="Per-field validation errors")
