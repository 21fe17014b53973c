"""Warehouse model for inventory management."""
from datetime import datetime, timezone
from sqlalchemy import Column, String, Text, Boolean, ForeignKey, DateTime, UniqueConstraint
import uuid

from receiving.database import Base
from receiving.db_types import UUIDType


class Warehouse(Base):
    """Warehouse model for storing inventory locations."""

    __tablename__ = "warehouses"
    __table_args__ = (
        UniqueConstraint("company_id", "code", name="uq_warehouse_company_code"),
    )

    id = Column(UUIDType, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(UUIDType, nullable=False, index=True)
    company_id = Column(UUIDType, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)

    code = Column(String(20), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    address = Column(Text)

    # Status
    is_active = Column(Boolean, default=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    def __repr__(self):
        return f"<Warehouse {self.code}: {self.name}>"
