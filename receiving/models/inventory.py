"""Inventory models for stock management.

Both tables are mutated only by GRN acceptance posting, through atomic
upserts keyed on their unique constraints.
"""
from enum import Enum
from datetime import datetime, timezone
from decimal import Decimal
from sqlalchemy import Column, String, ForeignKey, DateTime, Date
from sqlalchemy import UniqueConstraint, CheckConstraint
from sqlalchemy.orm import relationship
import uuid

from receiving.database import Base
from receiving.db_types import UUIDType, QuantityType


class BatchStatus(str, Enum):
    """Product batch availability."""
    AVAILABLE = "AVAILABLE"
    QUARANTINE = "QUARANTINE"
    EXPIRED = "EXPIRED"
    CONSUMED = "CONSUMED"


class BatchQualityStatus(str, Enum):
    """Product batch quality grade."""
    GOOD = "GOOD"
    DAMAGED = "DAMAGED"
    EXPIRED = "EXPIRED"


class WarehouseStock(Base):
    """Quantity on hand per product per warehouse."""

    __tablename__ = "warehouse_stocks"
    __table_args__ = (
        UniqueConstraint("warehouse_id", "product_id", name="uq_warehouse_stock_warehouse_product"),
        CheckConstraint("quantity >= 0", name="chk_warehouse_stock_quantity_non_negative"),
    )

    id = Column(UUIDType, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUIDType, nullable=False, index=True)

    warehouse_id = Column(UUIDType, ForeignKey("warehouses.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(UUIDType, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)

    # Stock levels
    quantity = Column(QuantityType, default=Decimal("0"), nullable=False)
    minimum_stock = Column(QuantityType, default=Decimal("0"), nullable=False)
    maximum_stock = Column(QuantityType, default=Decimal("0"), nullable=False)
    location = Column(String(100))  # Rack/bin label

    last_receipt_at = Column(DateTime(timezone=True))

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    # Relationships
    warehouse = relationship("Warehouse")
    product = relationship("Product")
    batches = relationship("ProductBatch", back_populates="warehouse_stock")

    def __repr__(self):
        return f"<WarehouseStock warehouse={self.warehouse_id} product={self.product_id} qty={self.quantity}>"


class ProductBatch(Base):
    """Batch/lot of a batch-tracked product, accumulated across receipts."""

    __tablename__ = "product_batches"
    __table_args__ = (
        UniqueConstraint("product_id", "batch_number", name="uq_product_batch_product_number"),
        CheckConstraint("quantity >= 0", name="chk_product_batch_quantity_non_negative"),
    )

    id = Column(UUIDType, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUIDType, nullable=False, index=True)

    product_id = Column(UUIDType, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    batch_number = Column(String(100), nullable=False)
    warehouse_stock_id = Column(UUIDType, ForeignKey("warehouse_stocks.id", ondelete="SET NULL"), index=True)

    # Dates
    manufacture_date = Column(Date)
    expiry_date = Column(Date, index=True)  # Only ever moves forward
    receipt_date = Column(Date)

    quantity = Column(QuantityType, default=Decimal("0"), nullable=False)

    # First receipt that created the batch
    goods_receipt_id = Column(UUIDType, ForeignKey("goods_receipts.id", ondelete="SET NULL"))

    status = Column(String(50), default=BatchStatus.AVAILABLE.value, nullable=False)
    quality_status = Column(String(50), default=BatchQualityStatus.GOOD.value, nullable=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    # Relationships
    product = relationship("Product")
    warehouse_stock = relationship("WarehouseStock", back_populates="batches")

    def __repr__(self):
        return f"<ProductBatch {self.batch_number} qty={self.quantity} expiry={self.expiry_date}>"
