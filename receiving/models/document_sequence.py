"""
Document Sequence Model for Atomic Number Generation

• Monthly numbering per company and document type
• Atomic number generation with database-level locking
• Format: {PREFIX}-{YYYYMM}-{SEQUENCE}

DOCUMENT FORMATS:
━━━━━━━━━━━━━━━━
• GRN: GRN-202610-0001 (Goods Receipt Note)
"""

import uuid
from datetime import datetime, date, timezone
from typing import Optional

from sqlalchemy import String, Integer, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from receiving.database import Base
from receiving.db_types import UUIDType


class DocumentSequence(Base):
    """
    Document sequence counter.

    One row per (company, document type, month). Rows are locked with
    SELECT ... FOR UPDATE while the counter is advanced.

    Example:
        document_type = "GRN"
        period = "202610"
        current_number = 42
        → Next GRN number: GRN-202610-0043
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        UniqueConstraint(
            "company_id", "document_type", "period",
            name="uq_document_sequence_company_type_period"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False, index=True)
    company_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False, index=True)

    document_type: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        comment="GRN"
    )
    period: Mapped[str] = mapped_column(
        String(6),
        nullable=False,
        comment="YYYYMM"
    )

    # Sequence Counter
    current_number: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        comment="Last used sequence number"
    )
    padding_length: Mapped[int] = mapped_column(
        Integer,
        default=4,
        comment="Zero padding for sequence (4 = 0001)"
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

    @staticmethod
    def get_period(on: Optional[date] = None) -> str:
        """Return the YYYYMM period for a date (today when omitted)."""
        on = on or datetime.now(timezone.utc).date()
        return f"{on.year}{on.month:02d}"

    def format_number(self, number: int) -> str:
        seq = str(number).zfill(self.padding_length or 4)
        return f"{self.document_type}-{self.period}-{seq}"

    def get_next_number(self) -> str:
        """
        Advance the counter and return the formatted number.

        NOTE: This method increments current_number but does NOT
        commit to database. The caller must handle the transaction.
        """
        self.current_number = (self.current_number or 0) + 1
        return self.format_number(self.current_number)

    def preview_next_number(self) -> str:
        """Preview next number without incrementing."""
        return self.format_number((self.current_number or 0) + 1)
