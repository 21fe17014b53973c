"""Supplier (purchase) invoices.

Owned by the invoicing subsystem. The receiving workflow only reads them to
derive how much of a goods receipt has been invoiced.
"""
import uuid
from datetime import datetime, date, timezone
from enum import Enum
from typing import List, Optional
from decimal import Decimal

from sqlalchemy import String, DateTime, ForeignKey, Date
from sqlalchemy.orm import Mapped, mapped_column, relationship

from receiving.core.enum_utils import enum_comment
from receiving.database import Base
from receiving.db_types import UUIDType, QuantityType


class PurchaseInvoiceStatus(str, Enum):
    """Supplier invoice status."""
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    PAID = "PAID"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


# Invoices in these states do not count towards invoiced quantity
NON_BILLING_INVOICE_STATUSES = [
    PurchaseInvoiceStatus.REJECTED.value,
    PurchaseInvoiceStatus.CANCELLED.value,
]


class PurchaseInvoice(Base):
    """Supplier invoice header."""
    __tablename__ = "purchase_invoices"

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

    invoice_number: Mapped[str] = mapped_column(String(50), nullable=False)
    invoice_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(
        String(50),
        default=PurchaseInvoiceStatus.DRAFT.value,
        nullable=False,
        comment=enum_comment(PurchaseInvoiceStatus)
    )

    supplier_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("suppliers.id", ondelete="RESTRICT"),
        nullable=False
    )
    # Header-level link, used by invoices without line-level GRN linkage
    goods_receipt_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("goods_receipts.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    items: Mapped[List["PurchaseInvoiceItem"]] = relationship(
        "PurchaseInvoiceItem",
        back_populates="purchase_invoice",
        cascade="all, delete-orphan"
    )


class PurchaseInvoiceItem(Base):
    """Supplier invoice line."""
    __tablename__ = "purchase_invoice_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    purchase_invoice_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("purchase_invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    goods_receipt_item_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("goods_receipt_items.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False
    )
    quantity: Mapped[Decimal] = mapped_column(QuantityType, nullable=False)

    purchase_invoice: Mapped["PurchaseInvoice"] = relationship(
        "PurchaseInvoice",
        back_populates="items"
    )
