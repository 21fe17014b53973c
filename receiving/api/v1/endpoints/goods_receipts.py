"""Goods Receipt Note (GRN) API endpoints."""
from datetime import date
from typing import Optional
import uuid
from math import ceil

from fastapi import APIRouter, Query, status

from receiving.api.deps import DB, Scope
from receiving.config import settings
from receiving.schemas.base import DataResponse, ListResponse, MessageResponse, PaginationInfo
from receiving.schemas.goods_receipt import (
    GoodsReceiptCreate,
    GoodsReceiptUpdate,
    GoodsReceiptResponse,
    ReceiveGoodsRequest,
    InspectGoodsRequest,
    AcceptGoodsRequest,
    RejectGoodsRequest,
    UpdateDispositionRequest,
    ResolveDispositionRequest,
    NextGrnNumberResponse,
)
from receiving.services.document_sequence_service import DocumentSequenceService
from receiving.services.goods_receipt_service import GoodsReceiptService


router = APIRouter()


# ==================== GRN CRUD ====================

@router.post(
    "",
    response_model=DataResponse[GoodsReceiptResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_goods_receipt(data: GoodsReceiptCreate, db: DB, scope: Scope):
    """Create a PENDING GRN against a confirmed purchase order."""
    service = GoodsReceiptService(db)
    grn = await service.create_goods_receipt(scope, data)
    return DataResponse(data=await service.build_response(grn))


@router.get("", response_model=ListResponse[GoodsReceiptResponse])
async def list_goods_receipts(
    db: DB,
    scope: Scope,
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    search: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    purchase_order_id: Optional[uuid.UUID] = Query(None),
    supplier_id: Optional[uuid.UUID] = Query(None),
    warehouse_id: Optional[uuid.UUID] = Query(None),
    date_from: Optional[str] = Query(None, description="YYYY-MM-DD"),
    date_to: Optional[str] = Query(None, description="YYYY-MM-DD"),
    sort_by: str = Query("createdAt", pattern="^(grnNumber|grnDate|status|createdAt)$"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
):
    """Get paginated list of GRNs with invoice status."""
    service = GoodsReceiptService(db)
    receipts, total = await service.list_goods_receipts(
        scope,
        page=page,
        page_size=page_size,
        search=search,
        status=status,
        purchase_order_id=purchase_order_id,
        supplier_id=supplier_id,
        warehouse_id=warehouse_id,
        date_from=date_from,
        date_to=date_to,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return ListResponse(
        data=[await service.build_response(grn) for grn in receipts],
        pagination=PaginationInfo(
            page=page,
            page_size=page_size,
            total=total,
            total_pages=ceil(total / page_size) if total > 0 else 0,
        ),
    )


@router.get("/next-number", response_model=DataResponse[NextGrnNumberResponse])
async def get_next_grn_number(
    db: DB,
    scope: Scope,
    grn_date: Optional[date] = Query(None, description="YYYY-MM-DD, defaults to today"),
):
    """Get the next GRN number without consuming it."""
    service = DocumentSequenceService(db)
    next_grn = await service.preview_next_number(scope, "GRN", on=grn_date)

    # Everything except the sequence number
    prefix = next_grn.rsplit("-", 1)[0]

    return DataResponse(data=NextGrnNumberResponse(next_number=next_grn, prefix=prefix))


@router.get("/{grn_id}", response_model=DataResponse[GoodsReceiptResponse])
async def get_goods_receipt(grn_id: uuid.UUID, db: DB, scope: Scope):
    """Get GRN by ID."""
    service = GoodsReceiptService(db)
    grn = await service.get_goods_receipt(scope, grn_id)
    return DataResponse(data=await service.build_response(grn))


@router.put("/{grn_id}", response_model=DataResponse[GoodsReceiptResponse])
async def update_goods_receipt(grn_id: uuid.UUID, data: GoodsReceiptUpdate, db: DB, scope: Scope):
    """Update a PENDING GRN."""
    service = GoodsReceiptService(db)
    grn = await service.update_goods_receipt(scope, grn_id, data)
    return DataResponse(data=await service.build_response(grn))


@router.delete("/{grn_id}", response_model=MessageResponse)
async def delete_goods_receipt(grn_id: uuid.UUID, db: DB, scope: Scope):
    """Delete a PENDING GRN."""
    await GoodsReceiptService(db).delete_goods_receipt(scope, grn_id)
    return MessageResponse(message="Goods receipt deleted successfully")


# ==================== GRN WORKFLOW ====================

@router.post("/{grn_id}/receive", response_model=DataResponse[GoodsReceiptResponse])
async def receive_goods(grn_id: uuid.UUID, db: DB, scope: Scope, data: Optional[ReceiveGoodsRequest] = None):
    """PENDING -> RECEIVED."""
    service = GoodsReceiptService(db)
    grn = await service.receive_goods(scope, grn_id, notes=data.notes if data else None)
    return DataResponse(data=await service.build_response(grn))


@router.post("/{grn_id}/inspect", response_model=DataResponse[GoodsReceiptResponse])
async def inspect_goods(grn_id: uuid.UUID, db: DB, scope: Scope, data: Optional[InspectGoodsRequest] = None):
    """RECEIVED -> INSPECTED, optionally recording per-line results."""
    service = GoodsReceiptService(db)
    grn = await service.inspect_goods(scope, grn_id, data or InspectGoodsRequest())
    return DataResponse(data=await service.build_response(grn))


@router.post("/{grn_id}/accept", response_model=DataResponse[GoodsReceiptResponse])
async def accept_goods(grn_id: uuid.UUID, db: DB, scope: Scope, data: Optional[AcceptGoodsRequest] = None):
    """INSPECTED -> ACCEPTED/PARTIAL. Posts stock and updates the purchase order."""
    service = GoodsReceiptService(db)
    grn = await service.accept_goods(scope, grn_id, notes=data.notes if data else None)
    return DataResponse(data=await service.build_response(grn))


@router.post("/{grn_id}/reject", response_model=DataResponse[GoodsReceiptResponse])
async def reject_goods(grn_id: uuid.UUID, data: RejectGoodsRequest, db: DB, scope: Scope):
    """INSPECTED -> REJECTED."""
    service = GoodsReceiptService(db)
    grn = await service.reject_goods(scope, grn_id, data.reason)
    return DataResponse(data=await service.build_response(grn))


# ==================== REJECTION DISPOSITION ====================

@router.put(
    "/{grn_id}/items/{item_id}/disposition",
    response_model=DataResponse[GoodsReceiptResponse],
)
async def update_rejection_disposition(
    grn_id: uuid.UUID,
    item_id: uuid.UUID,
    data: UpdateDispositionRequest,
    db: DB,
    scope: Scope,
):
    """Set the disposition of a line's rejected quantity."""
    service = GoodsReceiptService(db)
    grn = await service.update_rejection_disposition(
        scope, grn_id, item_id, data.rejection_disposition, data.disposition_notes
    )
    return DataResponse(data=await service.build_response(grn))


@router.post(
    "/{grn_id}/items/{item_id}/resolve-disposition",
    response_model=DataResponse[GoodsReceiptResponse],
)
async def resolve_disposition(
    grn_id: uuid.UUID,
    item_id: uuid.UUID,
    db: DB,
    scope: Scope,
    data: Optional[ResolveDispositionRequest] = None,
):
    """Mark a line's disposition as resolved."""
    service = GoodsReceiptService(db)
    grn = await service.resolve_disposition(
        scope, grn_id, item_id, data.resolution_notes if data else None
    )
    return DataResponse(data=await service.build_response(grn))
