"""Pydantic schemas for goods receipts (GRN) and their workflow actions."""
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from receiving.core.enum_utils import enum_values, normalize_to_uppercase
from receiving.models.purchase import RejectionDisposition
from receiving.schemas.base import BaseResponseSchema, BaseCreateSchema, BaseUpdateSchema


VALID_DISPOSITIONS = set(enum_values(RejectionDisposition))


# ==================== GRN Item Schemas ====================

class GoodsReceiptItemCreate(BaseCreateSchema):
    """One receipt line, linked to exactly one purchase order item.

    Dates are YYYY-MM-DD strings and are validated by the service.
    """
    purchase_order_item_id: UUID
    product_id: UUID
    received_qty: Decimal
    accepted_qty: Optional[Decimal] = None  # defaults to received_qty
    rejected_qty: Optional[Decimal] = None  # defaults to 0
    batch_number: Optional[str] = Field(None, max_length=100)
    manufacture_date: Optional[str] = None
    expiry_date: Optional[str] = None
    rejection_reason: Optional[str] = Field(None, max_length=500)
    quality_note: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = None


class GoodsReceiptItemUpdate(BaseUpdateSchema):
    """Correction of an existing line while the receipt is PENDING."""
    id: UUID
    received_qty: Optional[Decimal] = None
    accepted_qty: Optional[Decimal] = None
    rejected_qty: Optional[Decimal] = None
    batch_number: Optional[str] = Field(None, max_length=100)
    manufacture_date: Optional[str] = None
    expiry_date: Optional[str] = None
    rejection_reason: Optional[str] = Field(None, max_length=500)
    quality_note: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = None


# ==================== GRN Schemas ====================

class GoodsReceiptCreate(BaseCreateSchema):
    """Schema for creating a GRN against a confirmed purchase order."""
    purchase_order_id: UUID
    grn_date: str
    supplier_invoice: Optional[str] = Field(None, max_length=100)
    supplier_do_number: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None
    items: List[GoodsReceiptItemCreate] = []


class GoodsReceiptUpdate(BaseUpdateSchema):
    """Schema for updating a PENDING GRN."""
    grn_date: Optional[str] = None
    supplier_invoice: Optional[str] = Field(None, max_length=100)
    supplier_do_number: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None
    items: Optional[List[GoodsReceiptItemUpdate]] = None


# ==================== Workflow Requests ====================

class ReceiveGoodsRequest(BaseModel):
    notes: Optional[str] = None


class InspectItemRequest(BaseModel):
    """Inspection result for one line."""
    item_id: UUID
    accepted_qty: Optional[Decimal] = None
    rejected_qty: Optional[Decimal] = None
    rejection_reason: Optional[str] = Field(None, max_length=500)
    quality_note: Optional[str] = Field(None, max_length=500)


class InspectGoodsRequest(BaseModel):
    notes: Optional[str] = None
    items: List[InspectItemRequest] = []


class AcceptGoodsRequest(BaseModel):
    notes: Optional[str] = None


class RejectGoodsRequest(BaseModel):
    reason: str = ""


class UpdateDispositionRequest(BaseModel):
    """Set what happens to the rejected quantity of a line."""
    rejection_disposition: RejectionDisposition
    disposition_notes: Optional[str] = None

    @field_validator("rejection_disposition", mode="before")
    @classmethod
    def normalize_disposition(cls, v):
        return normalize_to_uppercase(v, VALID_DISPOSITIONS)


class ResolveDispositionRequest(BaseModel):
    resolution_notes: Optional[str] = None


# ==================== Responses ====================

class PurchaseOrderBrief(BaseResponseSchema):
    id: UUID
    po_number: str
    po_date: date
    status: str


class WarehouseBrief(BaseResponseSchema):
    id: UUID
    code: str
    name: str


class SupplierBrief(BaseResponseSchema):
    id: UUID
    code: str
    name: str


class ProductBrief(BaseResponseSchema):
    id: UUID
    code: str
    name: str
    base_unit: str
    is_batch_tracked: bool
    is_perishable: bool


class GoodsReceiptItemResponse(BaseResponseSchema):
    """Response schema for a GRN line."""
    id: UUID
    purchase_order_item_id: UUID
    product_id: UUID
    product: Optional[ProductBrief] = None
    line_number: int
    batch_number: Optional[str] = None
    manufacture_date: Optional[date] = None
    expiry_date: Optional[date] = None
    ordered_qty: Decimal
    received_qty: Decimal
    accepted_qty: Decimal
    rejected_qty: Decimal
    invoiced_qty: Decimal = Decimal("0")
    rejection_reason: Optional[str] = None
    quality_note: Optional[str] = None
    notes: Optional[str] = None
    rejection_disposition: Optional[str] = None
    disposition_notes: Optional[str] = None
    disposition_resolved: bool = False
    disposition_resolved_at: Optional[datetime] = None
    disposition_resolved_by: Optional[UUID] = None
    disposition_resolved_notes: Optional[str] = None


class GoodsReceiptResponse(BaseResponseSchema):
    """Response schema for a GRN, with its invoice coverage."""
    id: UUID
    grn_number: str
    grn_date: date
    status: str
    purchase_order_id: UUID
    purchase_order: Optional[PurchaseOrderBrief] = None
    warehouse_id: UUID
    warehouse: Optional[WarehouseBrief] = None
    supplier_id: UUID
    supplier: Optional[SupplierBrief] = None
    supplier_invoice: Optional[str] = None
    supplier_do_number: Optional[str] = None
    notes: Optional[str] = None
    receive_notes: Optional[str] = None
    inspection_notes: Optional[str] = None
    acceptance_notes: Optional[str] = None
    rejection_notes: Optional[str] = None
    item_count: int
    received_by: Optional[UUID] = None
    received_at: Optional[datetime] = None
    inspected_by: Optional[UUID] = None
    inspected_at: Optional[datetime] = None
    created_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime
    items: List[GoodsReceiptItemResponse] = []
    total_accepted_qty: Decimal = Decimal("0")
    total_invoiced_qty: Decimal = Decimal("0")
    invoice_status: str = "NONE"  # NONE, PARTIAL, FULL



class NextGrnNumberResponse(BaseModel):
    next_number: str
    prefix: str
