"""Delivery tolerance settings.

Hierarchical tolerance configuration:
- COMPANY: default tolerances for every product of the company
- CATEGORY: override for products whose `category` matches `category_name`
- PRODUCT: override for one product

Resolution order: PRODUCT > CATEGORY > COMPANY > DEFAULT (0% / 0%).
"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional
from decimal import Decimal

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Text
from sqlalchemy import UniqueConstraint, Index, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from receiving.core.enum_utils import enum_comment
from receiving.database import Base
from receiving.db_types import UUIDType, PercentType

if TYPE_CHECKING:
    from receiving.models.product import Product


class ToleranceLevel(str, Enum):
    """Hierarchy level of a tolerance setting."""
    COMPANY = "COMPANY"
    CATEGORY = "CATEGORY"
    PRODUCT = "PRODUCT"


class DeliveryTolerance(Base):
    """Configurable under/over-delivery tolerance percentages."""
    __tablename__ = "delivery_tolerances"
    __table_args__ = (
        UniqueConstraint(
            "company_id", "level", "category_name", "product_id",
            name="uq_delivery_tolerance_scope"
        ),
        Index("ix_delivery_tolerance_lookup", "company_id", "level", "is_active"),
        CheckConstraint(
            "under_delivery_tolerance >= 0 AND under_delivery_tolerance <= 100",
            name="chk_delivery_tolerance_under_range"
        ),
        CheckConstraint(
            "over_delivery_tolerance >= 0 AND over_delivery_tolerance <= 100",
            name="chk_delivery_tolerance_over_range"
        ),
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

    level: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment=enum_comment(ToleranceLevel)
    )

    # Empty string instead of NULL keeps the unique constraint meaningful
    category_name: Mapped[str] = mapped_column(
        String(100),
        default="",
        nullable=False,
        comment="Matches Product.category for CATEGORY level"
    )
    product_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=True,
        index=True
    )

    # Percentages, e.g. 5 means ordered 100 accepts 95..105
    under_delivery_tolerance: Mapped[Decimal] = mapped_column(
        PercentType,
        default=Decimal("0"),
        nullable=False
    )
    over_delivery_tolerance: Mapped[Decimal] = mapped_column(
        PercentType,
        default=Decimal("0"),
        nullable=False
    )
    unlimited_over_delivery: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        comment="Any over-delivery accepted, over_delivery_tolerance ignored"
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    updated_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
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

    product: Mapped[Optional["Product"]] = relationship("Product")

    def __repr__(self) -> str:
        return (
            f"<DeliveryTolerance(level='{self.level}', under={self.under_delivery_tolerance}, "
            f"over={self.over_delivery_tolerance})>"
        )
