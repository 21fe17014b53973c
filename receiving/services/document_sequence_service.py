"""
Document Sequence Service for Atomic Number Generation

- Monthly numbering per company (sequence restarts every month)
- Atomic number generation with database-level locking
- Format: {PREFIX}-{YYYYMM}-{SEQUENCE}

USAGE:
    from receiving.services.document_sequence_service import DocumentSequenceService

    async def create_grn(db: AsyncSession, scope: RequestScope):
        service = DocumentSequenceService(db)
        grn_number = await service.get_next_number(scope, "GRN")
        # Returns: GRN-202610-0001
"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from receiving.core.scope import RequestScope
from receiving.models.document_sequence import DocumentSequence


logger = logging.getLogger(__name__)


# Document type metadata
DOCUMENT_METADATA = {
    "GRN": {"name": "Goods Receipt Note", "padding": 4},
}


class DocumentSequenceService:
    """
    Service for generating atomic document numbers.

    Uses database-level locking (SELECT FOR UPDATE) so concurrent requests
    never receive the same number.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    def _validate_type(self, document_type: str) -> str:
        doc_type = document_type.upper()
        if doc_type not in DOCUMENT_METADATA:
            valid_types = ", ".join(DOCUMENT_METADATA.keys())
            raise ValueError(f"Invalid document type '{doc_type}'. Valid types: {valid_types}")
        return doc_type

    async def get_next_number(
        self,
        scope: RequestScope,
        document_type: str,
        on: Optional[date] = None
    ) -> str:
        """
        Get next document number with atomic increment.

        Args:
            scope: Tenant/company the number belongs to
            document_type: Document type code (GRN)
            on: Date whose month selects the sequence (today when omitted)

        Returns:
            Formatted document number, e.g., GRN-202610-0001

        Raises:
            ValueError: If document_type is invalid
        """
        doc_type = self._validate_type(document_type)
        period = DocumentSequence.get_period(on)

        sequence = await self._get_or_create_sequence(scope, doc_type, period)
        doc_number = sequence.get_next_number()

        await self.db.flush()
        logger.debug(f"Allocated {doc_number} for company {scope.company_id}")
        return doc_number

    async def preview_next_number(
        self,
        scope: RequestScope,
        document_type: str,
        on: Optional[date] = None
    ) -> str:
        """Preview what the next number would be without incrementing."""
        doc_type = self._validate_type(document_type)
        period = DocumentSequence.get_period(on)

        result = await self.db.execute(
            select(DocumentSequence).where(
                DocumentSequence.company_id == scope.company_id,
                DocumentSequence.document_type == doc_type,
                DocumentSequence.period == period,
            )
        )
        sequence = result.scalar_one_or_none()
        if sequence:
            return sequence.preview_next_number()

        # No sequence exists yet - would be first number
        return DocumentSequence(
            document_type=doc_type,
            period=period,
            padding_length=DOCUMENT_METADATA[doc_type]["padding"],
        ).format_number(1)

    async def _lock_sequence(
        self,
        scope: RequestScope,
        document_type: str,
        period: str
    ) -> Optional[DocumentSequence]:
        result = await self.db.execute(
            select(DocumentSequence)
            .where(
                DocumentSequence.company_id == scope.company_id,
                DocumentSequence.document_type == document_type,
                DocumentSequence.period == period,
            )
            .with_for_update()
        )
        return result.scalar_one_or_none()

    async def _get_or_create_sequence(
        self,
        scope: RequestScope,
        document_type: str,
        period: str
    ) -> DocumentSequence:
        """
        Get existing sequence with row lock, or create new one.

        A concurrent creator losing the insert race falls back to locking
        the row the winner created.
        """
        sequence = await self._lock_sequence(scope, document_type, period)
        if sequence:
            return sequence

        sequence = DocumentSequence(
            tenant_id=scope.tenant_id,
            company_id=scope.company_id,
            document_type=document_type,
            period=period,
            current_number=0,
            padding_length=DOCUMENT_METADATA[document_type]["padding"],
        )
        try:
            async with self.db.begin_nested():
                self.db.add(sequence)
                await self.db.flush()
        except IntegrityError:
            logger.info(f"Sequence {document_type}/{period} created concurrently, re-locking")
            sequence = await self._lock_sequence(scope, document_type, period)
            if sequence is None:
                raise
        return sequence
