"""Delivery tolerance API endpoints."""
from typing import Optional
import uuid
from math import ceil

from fastapi import APIRouter, Query, status

from receiving.api.deps import DB, Scope
from receiving.config import settings
from receiving.schemas.base import DataResponse, ListResponse, MessageResponse, PaginationInfo
from receiving.schemas.delivery_tolerance import (
    DeliveryToleranceCreate,
    DeliveryToleranceUpdate,
    DeliveryToleranceResponse,
    EffectiveToleranceResponse,
)
from receiving.services.delivery_tolerance_service import (
    DeliveryToleranceService,
    build_tolerance_response,
)


router = APIRouter()


@router.post(
    "",
    response_model=DataResponse[DeliveryToleranceResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_delivery_tolerance(data: DeliveryToleranceCreate, db: DB, scope: Scope):
    """Create a COMPANY, CATEGORY or PRODUCT level tolerance."""
    tolerance = await DeliveryToleranceService(db).create_tolerance(scope, data)
    return DataResponse(data=build_tolerance_response(tolerance))


@router.get("", response_model=ListResponse[DeliveryToleranceResponse])
async def list_delivery_tolerances(
    db: DB,
    scope: Scope,
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    level: Optional[str] = Query(None),
    category_name: Optional[str] = Query(None),
    product_id: Optional[uuid.UUID] = Query(None),
    is_active: Optional[bool] = Query(None),
    sort_by: str = Query("createdAt", pattern="^(level|createdAt|updatedAt)$"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
):
    """Get paginated list of tolerance settings."""
    tolerances, total = await DeliveryToleranceService(db).list_tolerances(
        scope,
        page=page,
        page_size=page_size,
        level=level,
        category_name=category_name,
        product_id=product_id,
        is_active=is_active,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return ListResponse(
        data=[build_tolerance_response(t) for t in tolerances],
        pagination=PaginationInfo(
            page=page,
            page_size=page_size,
            total=total,
            total_pages=ceil(total / page_size) if total > 0 else 0,
        ),
    )


# Declared before /{tolerance_id} so "effective" is not parsed as an ID
@router.get("/effective", response_model=DataResponse[EffectiveToleranceResponse])
async def get_effective_tolerance(db: DB, scope: Scope, product_id: uuid.UUID = Query(...)):
    """Tolerance that applies to a product after hierarchy resolution."""
    effective = await DeliveryToleranceService(db).get_effective_tolerance(scope, product_id)
    return DataResponse(data=EffectiveToleranceResponse.model_validate(effective, from_attributes=True))


@router.get("/{tolerance_id}", response_model=DataResponse[DeliveryToleranceResponse])
async def get_delivery_tolerance(tolerance_id: uuid.UUID, db: DB, scope: Scope):
    tolerance = await DeliveryToleranceService(db).get_tolerance(scope, tolerance_id)
    return DataResponse(data=build_tolerance_response(tolerance))


@router.put("/{tolerance_id}", response_model=DataResponse[DeliveryToleranceResponse])
async def update_delivery_tolerance(
    tolerance_id: uuid.UUID,
    data: DeliveryToleranceUpdate,
    db: DB,
    scope: Scope,
):
    tolerance = await DeliveryToleranceService(db).update_tolerance(scope, tolerance_id, data)
    return DataResponse(data=build_tolerance_response(tolerance))


@router.delete("/{tolerance_id}", response_model=MessageResponse)
async def delete_delivery_tolerance(tolerance_id: uuid.UUID, db: DB, scope: Scope):
    await DeliveryToleranceService(db).delete_tolerance(scope, tolerance_id)
    return MessageResponse(message="Delivery tolerance deleted successfully")
