"""Product master.

Only the attributes the receiving workflow reads are modelled here:
batch tracking and perishability drive line validation and batch posting,
`category` drives category-level delivery tolerances.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from receiving.database import Base
from receiving.db_types import UUIDType


class Product(Base):
    """Product/SKU master."""
    __tablename__ = "products"
    __table_args__ = (
        UniqueConstraint("company_id", "code", name="uq_product_company_code"),
        Index("ix_product_company_category", "company_id", "category"),
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

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Free-text category, matched by CATEGORY level delivery tolerances"
    )
    base_unit: Mapped[str] = mapped_column(String(20), default="PCS", nullable=False)

    # Tracking flags
    is_batch_tracked: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        comment="Batch number required on receipt"
    )
    is_perishable: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        comment="Expiry date required on receipt"
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

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

    def __repr__(self) -> str:
        return f"<Product(code='{self.code}', name='{self.name}')>"
