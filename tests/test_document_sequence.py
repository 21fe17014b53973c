"""
Tests for monthly GRN numbering.
"""
import uuid
from datetime import date

import pytest

from receiving.core.scope import RequestScope
from receiving.models import DocumentSequence
from receiving.services.document_sequence_service import DocumentSequenceService


class TestDocumentSequence:

    @pytest.fixture
    def service(self, db):
        return DocumentSequenceService(db)

    def test_period_and_format(self):
        sequence = DocumentSequence(document_type="GRN", period="202610", padding_length=4)

        assert DocumentSequence.get_period(date(2026, 10, 18)) == "202610"
        assert sequence.format_number(7) == "GRN-202610-0007"

    async def test_numbers_are_sequential(self, world, service):
        on = date(2026, 10, 18)

        first = await service.get_next_number(world.scope, "GRN", on=on)
        second = await service.get_next_number(world.scope, "grn", on=on)

        assert first == "GRN-202610-0001"
        assert second == "GRN-202610-0002"

    async def test_new_month_restarts(self, world, service):
        await service.get_next_number(world.scope, "GRN", on=date(2026, 10, 31))

        number = await service.get_next_number(world.scope, "GRN", on=date(2026, 11, 1))

        assert number == "GRN-202611-0001"

    async def test_numbering_is_per_company(self, world, service):
        other = RequestScope(tenant_id=world.tenant_id, company_id=uuid.uuid4())
        on = date(2026, 10, 18)

        await service.get_next_number(world.scope, "GRN", on=on)

        assert await service.get_next_number(other, "GRN", on=on) == "GRN-202610-0001"

    async def test_preview_does_not_consume(self, world, service):
        on = date(2026, 10, 18)

        assert await service.preview_next_number(world.scope, "GRN", on=on) == "GRN-202610-0001"
        await service.get_next_number(world.scope, "GRN", on=on)
        assert await service.preview_next_number(world.scope, "GRN", on=on) == "GRN-202610-0002"
        assert await service.get_next_number(world.scope, "GRN", on=on) == "GRN-202610-0002"

    async def test_unknown_document_type(self, world, service):
        with pytest.raises(ValueError, match="Invalid document type"):
            await service.get_next_number(world.scope, "INVOICE")
