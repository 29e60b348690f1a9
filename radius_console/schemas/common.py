"""Shared response schemas."""

import math
from typing import Generic, List, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class PaginatedResponse(BaseModel, Generic[T]):
    """One page of results."""

    items: List[T] = Field(default_factory=list, description="Items on this page")
    total: int = Field(..., description="Total matching items")
    page: int = Field(..., description="Current page (1-indexed)")
    page_size: int = Field(..., description="Items per page")
    pages: int = Field(..., description="Total pages (at least 1)")
    has_next: bool = Field(..., description="Whether a later page exists")
    has_previous: bool = Field(..., description="Whether an earlier page exists")

    @classmethod
    def build(cls, items: list, total: int, page: int, page_size: int) -> "PaginatedResponse[T]":
        pages = max(math.ceil(total / page_size), 1) if page_size else 1
        return cls(
            items=items,
            total=total,
            page=page,
            page_size=page_size,
            pages=pages,
            has_next=page < pages,
            has_previous=page > 1,
        )


class MessageResponse(BaseModel):
    """Plain acknowledgement."""

    message: str = Field(..., description="Human readable result")
