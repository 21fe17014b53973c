"""Company model: the business entity that owns purchase orders and receipts.

Every operational table carries `tenant_id` plus `company_id`; a tenant may
operate several companies.
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Boolean, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from receiving.database import Base
from receiving.db_types import UUIDType


class Company(Base):
    """Company master."""
    __tablename__ = "companies"
    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_company_tenant_code"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False, index=True)

    code: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
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
        return f"<Company(code='{self.code}', name='{self.name}')>"
