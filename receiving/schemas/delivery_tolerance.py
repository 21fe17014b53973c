"""Pydantic schemas for delivery tolerance settings."""
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from receiving.core.enum_utils import normalize_to_uppercase, enum_values
from receiving.models.delivery_tolerance import ToleranceLevel
from receiving.schemas.base import BaseResponseSchema, BaseCreateSchema, BaseUpdateSchema


VALID_TOLERANCE_LEVELS = set(enum_values(ToleranceLevel))


class DeliveryToleranceCreate(BaseCreateSchema):
    """Create a tolerance setting at one hierarchy level."""
    level: ToleranceLevel
    category_name: Optional[str] = Field(None, max_length=100)
    product_id: Optional[UUID] = None
    under_delivery_tolerance: Decimal
    over_delivery_tolerance: Decimal
    unlimited_over_delivery: bool = False
    is_active: Optional[bool] = None
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v):
        return normalize_to_uppercase(v, VALID_TOLERANCE_LEVELS)


class DeliveryToleranceUpdate(BaseUpdateSchema):
    under_delivery_tolerance: Optional[Decimal] = None
    over_delivery_tolerance: Optional[Decimal] = None
    unlimited_over_delivery: Optional[bool] = None
    is_active: Optional[bool] = None
    notes: Optional[str] = Field(None, max_length=500)


class DeliveryToleranceProductBrief(BaseResponseSchema):
    id: UUID
    code: str
    name: str
    category: Optional[str] = None
    base_unit: str


class DeliveryToleranceResponse(BaseResponseSchema):
    id: UUID
    level: str
    category_name: Optional[str] = None
    product_id: Optional[UUID] = None
    product: Optional[DeliveryToleranceProductBrief] = None
    under_delivery_tolerance: Decimal
    over_delivery_tolerance: Decimal
    unlimited_over_delivery: bool
    is_active: bool
    notes: Optional[str] = None
    created_by: Optional[UUID] = None
    updated_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime


class EffectiveToleranceResponse(BaseModel):
    """Tolerance that will actually be applied to a product."""
    product_id: UUID
    product_code: str
    product_name: str
    under_delivery_tolerance: Decimal
    over_delivery_tolerance: Decimal
    unlimited_over_delivery: bool
    resolved_from: str  # PRODUCT, CATEGORY, COMPANY, or DEFAULT
    tolerance_id: Optional[UUID] = None
