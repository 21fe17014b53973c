"""Purchase/Procurement models for the receiving side of Procure-to-Pay.

Supports:
- Purchase Order (PO) header and lines, read and mutated by receipts
- Goods Receipt Note (GRN) header and lines
- Rejection disposition tracking on GRN lines
"""
import uuid
from datetime import datetime, date, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional, List
from decimal import Decimal

from sqlalchemy import String, DateTime, ForeignKey, Integer, Text, Numeric, Date
from sqlalchemy import UniqueConstraint, Index, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import inspect as sa_inspect

from receiving.core.enum_utils import enum_comment
from receiving.database import Base
from receiving.db_types import UUIDType, QuantityType

if TYPE_CHECKING:
    from receiving.models.warehouse import Warehouse
    from receiving.models.product import Product
    from receiving.models.supplier import Supplier


# ==================== Enums ====================

class PurchaseOrderStatus(str, Enum):
    """Purchase Order status."""
    DRAFT = "DRAFT"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    SHORT_CLOSED = "SHORT_CLOSED"      # Closed without full delivery


class GoodsReceiptStatus(str, Enum):
    """Goods Receipt status."""
    PENDING = "PENDING"                # Created, goods not yet at dock
    RECEIVED = "RECEIVED"              # Physically received
    INSPECTED = "INSPECTED"            # Quality inspection done
    ACCEPTED = "ACCEPTED"              # Posted to stock, nothing rejected
    PARTIAL = "PARTIAL"                # Posted to stock, some quantity rejected
    REJECTED = "REJECTED"              # Whole delivery rejected, nothing posted


class RejectionDisposition(str, Enum):
    """Resolution path for rejected quantity on a GRN line."""
    PENDING_REPLACEMENT = "PENDING_REPLACEMENT"
    CREDIT_REQUESTED = "CREDIT_REQUESTED"
    RETURNED = "RETURNED"
    WRITTEN_OFF = "WRITTEN_OFF"


# ==================== Purchase Order ====================

class PurchaseOrder(Base):
    """
    Purchase Order model.
    Official order placed with a supplier; receipts are recorded against it.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        UniqueConstraint("company_id", "po_number", name="uq_po_company_number"),
        Index("ix_po_supplier_date", "supplier_id", "po_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False, index=True)
    company_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Identification
    po_number: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        index=True
    )
    po_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Status
    status: Mapped[str] = mapped_column(
        String(50),
        default=PurchaseOrderStatus.DRAFT.value,
        nullable=False,
        index=True,
        comment=enum_comment(PurchaseOrderStatus)
    )

    supplier_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("suppliers.id", ondelete="RESTRICT"),
        nullable=False
    )
    warehouse_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("warehouses.id", ondelete="RESTRICT"),
        nullable=False
    )

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Relationships
    supplier: Mapped["Supplier"] = relationship("Supplier")
    warehouse: Mapped["Warehouse"] = relationship("Warehouse")
    items: Mapped[List["PurchaseOrderItem"]] = relationship(
        "PurchaseOrderItem",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderItem.line_number"
    )
    goods_receipts: Mapped[List["GoodsReceipt"]] = relationship(
        "GoodsReceipt",
        back_populates="purchase_order"
    )

    def __repr__(self) -> str:
        try:
            if sa_inspect(self).detached:
                return f"<PurchaseOrder(id={self.id})>"
            return f"<PurchaseOrder(number='{self.po_number}', status='{self.status}')>"
        except Exception:
            return f"<PurchaseOrder(id={getattr(self, 'id', 'unknown')})>"


class PurchaseOrderItem(Base):
    """Line items in a Purchase Order."""
    __tablename__ = "purchase_order_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="chk_po_item_quantity_positive"),
        CheckConstraint("received_qty >= 0", name="chk_po_item_received_non_negative"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    purchase_order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("purchase_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False
    )

    line_number: Mapped[int] = mapped_column(Integer, default=1)

    # Quantity
    quantity: Mapped[Decimal] = mapped_column(
        QuantityType,
        nullable=False,
        comment="Ordered quantity"
    )
    received_qty: Mapped[Decimal] = mapped_column(
        QuantityType,
        default=Decimal("0"),
        nullable=False,
        comment="Accepted quantity posted by GRNs, only ever incremented"
    )

    # Pricing
    unit_price: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0"),
        nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Relationships
    purchase_order: Mapped["PurchaseOrder"] = relationship(
        "PurchaseOrder",
        back_populates="items"
    )
    product: Mapped["Product"] = relationship("Product")

    @property
    def remaining_qty(self) -> Decimal:
        """Quantity still owed by the supplier."""
        return (self.quantity or Decimal("0")) - (self.received_qty or Decimal("0"))


# ==================== Goods Receipt ====================

class GoodsReceipt(Base):
    """
    Goods Receipt Note model.
    Records one delivery received against a PO.
    """
    __tablename__ = "goods_receipts"
    __table_args__ = (
        UniqueConstraint("company_id", "grn_number", name="uq_grn_company_number"),
        Index("ix_grn_po", "purchase_order_id"),
        Index("ix_grn_company_status", "company_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False, index=True)
    company_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Identification
    grn_number: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        index=True,
        comment="GRN-YYYYMM-XXXX"
    )
    grn_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    # Status
    status: Mapped[str] = mapped_column(
        String(50),
        default=GoodsReceiptStatus.PENDING.value,
        nullable=False,
        index=True,
        comment=enum_comment(GoodsReceiptStatus)
    )

    # Against PO (warehouse and supplier are copied from it)
    purchase_order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("purchase_orders.id", ondelete="RESTRICT"),
        nullable=False
    )
    warehouse_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("warehouses.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    supplier_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("suppliers.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    # Supplier's delivery references
    supplier_invoice: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    supplier_do_number: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Supplier delivery order number"
    )

    # Stage annotations
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    receive_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    inspection_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    acceptance_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rejection_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    item_count: Mapped[int] = mapped_column(Integer, default=0)

    # Stage actors
    received_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    received_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )
    inspected_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    inspected_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )

    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Relationships
    purchase_order: Mapped["PurchaseOrder"] = relationship(
        "PurchaseOrder",
        back_populates="goods_receipts"
    )
    supplier: Mapped["Supplier"] = relationship("Supplier")
    warehouse: Mapped["Warehouse"] = relationship("Warehouse")
    items: Mapped[List["GoodsReceiptItem"]] = relationship(
        "GoodsReceiptItem",
        back_populates="goods_receipt",
        cascade="all, delete-orphan",
        order_by="GoodsReceiptItem.line_number"
    )

    def __repr__(self) -> str:
        try:
            if sa_inspect(self).detached:
                return f"<GoodsReceipt(id={self.id})>"
            return f"<GoodsReceipt(number='{self.grn_number}', status='{self.status}')>"
        except Exception:
            return f"<GoodsReceipt(id={getattr(self, 'id', 'unknown')})>"


class GoodsReceiptItem(Base):
    """Line items in a GRN. One line per PO item per receipt."""
    __tablename__ = "goods_receipt_items"
    __table_args__ = (
        UniqueConstraint("goods_receipt_id", "purchase_order_item_id", name="uq_grn_item_po_item"),
        CheckConstraint("received_qty >= 0", name="chk_grn_item_received_non_negative"),
        CheckConstraint("accepted_qty >= 0", name="chk_grn_item_accepted_non_negative"),
        CheckConstraint("rejected_qty >= 0", name="chk_grn_item_rejected_non_negative"),
        CheckConstraint(
            "accepted_qty + rejected_qty <= received_qty",
            name="chk_grn_item_accepted_rejected_within_received"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    goods_receipt_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("goods_receipts.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    purchase_order_item_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("purchase_order_items.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False
    )

    line_number: Mapped[int] = mapped_column(Integer, default=1)

    # Batch / Lot
    batch_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    manufacture_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    expiry_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    # Quantities
    ordered_qty: Mapped[Decimal] = mapped_column(
        QuantityType,
        nullable=False,
        comment="Snapshot of PO item quantity at creation"
    )
    received_qty: Mapped[Decimal] = mapped_column(QuantityType, nullable=False)
    accepted_qty: Mapped[Decimal] = mapped_column(QuantityType, default=Decimal("0"), nullable=False)
    rejected_qty: Mapped[Decimal] = mapped_column(QuantityType, default=Decimal("0"), nullable=False)

    # Quality
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    quality_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Rejection disposition
    rejection_disposition: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment=enum_comment(RejectionDisposition)
    )
    disposition_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    disposition_resolved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )
    disposition_resolved_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    disposition_resolved_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Relationships
    goods_receipt: Mapped["GoodsReceipt"] = relationship(
        "GoodsReceipt",
        back_populates="items"
    )
    purchase_order_item: Mapped["PurchaseOrderItem"] = relationship("PurchaseOrderItem")
    product: Mapped["Product"] = relationship("Product")

    @property
    def disposition_resolved(self) -> bool:
        return self.disposition_resolved_at is not None
