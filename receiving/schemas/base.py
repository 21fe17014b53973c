"""
Base Schema Classes for Pydantic Models

RULE: All response schemas that read from ORM models inherit from BaseResponseSchema.
Decimals serialize as strings in JSON, so quantities round-trip without float error.
"""

from typing import Any, Generic, List, Optional, TypeVar
from pydantic import BaseModel, ConfigDict


T = TypeVar("T")


class BaseResponseSchema(BaseModel):
    """
    Base class for all response schemas that read from ORM models.

    Usage:
        class ProductBrief(BaseResponseSchema):
            id: UUID
            code: str
    """
    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class BaseCreateSchema(BaseModel):
    """
    Base class for create/input schemas.

    Accepts string UUIDs from the frontend and converts them to UUID objects.
    """
    model_config = ConfigDict(
        # Allow extra fields to be ignored (forward compatibility)
        extra='ignore',
    )


class BaseUpdateSchema(BaseModel):
    """
    Base class for update/patch schemas.

    All fields are optional by default for partial updates.
    """
    model_config = ConfigDict(
        extra='ignore',
    )


class PaginationInfo(BaseModel):
    page: int
    page_size: int
    total: int
    total_pages: int


class DataResponse(BaseModel, Generic[T]):
    """`{"success": true, "data": ...}` envelope."""
    success: bool = True
    data: T


class ListResponse(BaseModel, Generic[T]):
    """Envelope for paginated lists."""
    success: bool = True
    data: List[T]
    pagination: PaginationInfo


class MessageResponse(BaseModel):
    success: bool = True
    message: str
    data: Optional[Any] = None

