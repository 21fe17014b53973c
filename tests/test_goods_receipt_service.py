"""
Tests for the goods receipt workflow and acceptance posting.

Purchase orders default to a 0% / 0% tolerance, so lines receive the full
remaining quantity unless a test configures a tolerance.
"""
import logging
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select, text

from receiving.core.exceptions import NotFoundError, ValidationError
from receiving.core.scope import RequestScope
from receiving.models import (
    AuditLog,
    Company,
    DocumentSequence,
    GoodsReceipt,
    ProductBatch,
    PurchaseInvoice,
    PurchaseInvoiceItem,
    PurchaseOrder,
    PurchaseOrderItem,
    PurchaseOrderStatus,
    RejectionDisposition,
    WarehouseStock,
)
from receiving.schemas.delivery_tolerance import DeliveryToleranceCreate
from receiving.schemas.goods_receipt import (
    GoodsReceiptCreate,
    GoodsReceiptItemCreate,
    GoodsReceiptItemUpdate,
    GoodsReceiptUpdate,
    InspectGoodsRequest,
    InspectItemRequest,
)
from receiving.services.delivery_tolerance_service import DeliveryToleranceService
from receiving.services.goods_receipt_service import GoodsReceiptService, invoice_status_for

from tests.conftest import create_product, create_purchase_order


GRN_DATE = "2026-10-18"


def line(po_item, received, **extra) -> GoodsReceiptItemCreate:
    return GoodsReceiptItemCreate(
        purchase_order_item_id=po_item.id,
        product_id=po_item.product_id,
        received_qty=Decimal(str(received)),
        **extra
    )


def receipt(po, *lines, **extra) -> GoodsReceiptCreate:
    return GoodsReceiptCreate(purchase_order_id=po.id, grn_date=GRN_DATE, items=list(lines), **extra)


async def inspected(service, scope, data, inspection=None):
    """Create a receipt and walk it to INSPECTED."""
    grn = await service.create_goods_receipt(scope, data)
    await service.receive_goods(scope, grn.id)
    return await service.inspect_goods(scope, grn.id, inspection or InspectGoodsRequest())


async def stock_quantity(db, world, product_id):
    result = await db.execute(
        select(WarehouseStock.quantity).where(
            WarehouseStock.warehouse_id == world.warehouse_id,
            WarehouseStock.product_id == product_id,
        )
    )
    return result.scalar_one_or_none()


async def count(db, model):
    return (await db.execute(select(func.count()).select_from(model))).scalar()


@pytest.fixture
def service(db):
    return GoodsReceiptService(db)


class TestCreateGoodsReceipt:

    async def test_create_pending_receipt(self, db, world, service):
        product = await create_product(db, world)
        po = await create_purchase_order(db, world, [(product, 50)])

        grn = await service.create_goods_receipt(
            world.scope, receipt(po, line(po.items[0], 50), supplier_invoice="INV-77")
        )

        assert grn.status == "PENDING"
        assert grn.grn_number == "GRN-202610-0001"
        assert grn.grn_date == date(2026, 10, 18)
        assert grn.warehouse_id == world.warehouse_id
        assert grn.supplier_id == world.supplier_id
        assert grn.supplier_invoice == "INV-77"
        assert grn.item_count == 1
        assert grn.created_by == world.user_id

        item = grn.items[0]
        assert item.line_number == 1
        assert item.ordered_qty == Decimal("50")
        assert item.received_qty == Decimal("50")
        assert item.accepted_qty == Decimal("50")
        assert item.rejected_qty == Decimal("0")

        actions = (await db.execute(
            select(AuditLog.action).where(AuditLog.entity_id == grn.id)
        )).scalars().all()
        assert actions == ["CREATE"]

    async def test_second_receipt_gets_next_number(self, db, world, service):
        product = await create_product(db, world)
        po_a = await create_purchase_order(db, world, [(product, 5)])
        po_b = await create_purchase_order(db, world, [(product, 5)])

        await service.create_goods_receipt(world.scope, receipt(po_a, line(po_a.items[0], 5)))
        grn = await service.create_goods_receipt(world.scope, receipt(po_b, line(po_b.items[0], 5)))

        assert grn.grn_number == "GRN-202610-0002"

    async def test_accepted_defaults_to_received_minus_rejected(self, db, world, service):
        product = await create_product(db, world)
        po = await create_purchase_order(db, world, [(product, 50)])

        grn = await service.create_goods_receipt(
            world.scope, receipt(po, line(po.items[0], 50, rejected_qty=Decimal("5")))
        )

        assert grn.items[0].accepted_qty == Decimal("45")
        assert grn.items[0].rejected_qty == Decimal("5")

    async def test_accepted_plus_rejected_cannot_exceed_received(self, db, world, service):
        product = await create_product(db, world)
        po = await create_purchase_order(db, world, [(product, 50)])

        with pytest.raises(ValidationError, match="exceeds received qty"):
            await service.create_goods_receipt(
                world.scope,
                receipt(po, line(po.items[0], 50, accepted_qty=Decimal("40"), rejected_qty=Decimal("20"))),
            )

    @pytest.mark.parametrize("po_status", [PurchaseOrderStatus.DRAFT, PurchaseOrderStatus.COMPLETED])
    async def test_purchase_order_must_be_confirmed(self, db, world, service, po_status):
        product = await create_product(db, world)
        po = await create_purchase_order(db, world, [(product, 10)], status=po_status)

        with pytest.raises(ValidationError, match="CONFIRMED"):
            await service.create_goods_receipt(world.scope, receipt(po, line(po.items[0], 10)))

        assert await count(db, GoodsReceipt) == 0

    async def test_unknown_purchase_order(self, world, service):
        data = GoodsReceiptCreate(purchase_order_id=uuid.uuid4(), grn_date=GRN_DATE, items=[])

        with pytest.raises(NotFoundError):
            await service.create_goods_receipt(world.scope, data)

    async def test_purchase_order_of_other_company_is_not_found(self, db, world, service):
        product = await create_product(db, world)
        po = await create_purchase_order(db, world, [(product, 10)])
        other = RequestScope(tenant_id=world.tenant_id, company_id=uuid.uuid4())

        with pytest.raises(NotFoundError):
            await service.create_goods_receipt(other, receipt(po, line(po.items[0], 10)))

    async def test_items_required(self, db, world, service):
        product = await create_product(db, world)
        po = await create_purchase_order(db, world, [(product, 10)])

        with pytest.raises(ValidationError, match="at least one item"):
            await service.create_goods_receipt(world.scope, receipt(po))

    async def test_invalid_date(self, db, world, service):
        product = await create_product(db, world)
        po = await create_purchase_order(db, world, [(product, 10)])
        data = GoodsReceiptCreate(purchase_order_id=po.id, grn_date="18/10/2026", items=[line(po.items[0], 10)])

        with pytest.raises(ValidationError, match="invalid grn_date format"):
            await service.create_goods_receipt(world.scope, data)

    async def test_unknown_po_item(self, db, world, service):
        product = await create_product(db, world)
        po = await create_purchase_order(db, world, [(product, 10)])
        bad = GoodsReceiptItemCreate(
            purchase_order_item_id=uuid.uuid4(), product_id=product.id, received_qty=Decimal("10")
        )

        with pytest.raises(ValidationError, match="purchase order item not found"):
            await service.create_goods_receipt(world.scope, receipt(po, bad))

    async def test_product_must_match_po_item(self, db, world, service):
        product = await create_product(db, world)
        other = await create_product(db, world)
        po = await create_purchase_order(db, world, [(product, 10)])
        bad = GoodsReceiptItemCreate(
            purchase_order_item_id=po.items[0].id, product_id=other.id, received_qty=Decimal("10")
        )

        with pytest.raises(ValidationError, match="does not match"):
            await service.create_goods_receipt(world.scope, receipt(po, bad))

    async def test_same_po_item_twice(self, db, world, service):
        product = await create_product(db, world)
        po = await create_purchase_order(db, world, [(product, 10)])

        with pytest.raises(ValidationError, match="more than once"):
            await service.create_goods_receipt(
                world.scope, receipt(po, line(po.items[0], 10), line(po.items[0], 10))
            )

    async def test_batch_tracked_requires_batch_number(self, db, world, service):
        product = await create_product(db, world, name="Paracetamol", is_batch_tracked=True)
        po = await create_purchase_order(db, world, [(product, 10)])

        with pytest.raises(ValidationError, match="batch number is required for batch-tracked product: Paracetamol"):
            await service.create_goods_receipt(world.scope, receipt(po, line(po.items[0], 10)))

        assert await count(db, GoodsReceipt) == 0
        assert await count(db, DocumentSequence) == 0

    async def test_perishable_requires_expiry_date(self, db, world, service):
        product = await create_product(db, world, name="Milk", is_perishable=True)
        po = await create_purchase_order(db, world, [(product, 10)])

        with pytest.raises(ValidationError, match="expiry date is required for perishable product: Milk"):
            await service.create_goods_receipt(world.scope, receipt(po, line(po.items[0], 10)))

        assert await count(db, GoodsReceipt) == 0

    async def test_received_cannot_exceed_remaining(self, db, world, service):
        product = await create_product(db, world)
        po = await create_purchase_order(db, world, [(product, 10)])

        with pytest.raises(ValidationError, match=r"received qty \(12\) exceeds remaining qty \(10\)"):
            await service.create_goods_receipt(world.scope, receipt(po, line(po.items[0], 12)))

        assert await count(db, GoodsReceipt) == 0

    async def test_under_delivery_outside_tolerance(self, db, world, service):
        product = await create_product(db, world, name="Widget")
        po = await create_purchase_order(db, world, [(product, 100)])

        with pytest.raises(ValidationError, match="delivery tolerance violated for product Widget"):
            await service.create_goods_receipt(world.scope, receipt(po, line(po.items[0], 90)))

        assert await count(db, GoodsReceipt) == 0

    async def test_under_delivery_within_configured_tolerance(self, db, world, service):
        product = await create_product(db, world)
        po = await create_purchase_order(db, world, [(product, 100)])
        await DeliveryToleranceService(db).create_tolerance(world.scope, DeliveryToleranceCreate(
            level="COMPANY", under_delivery_tolerance=10, over_delivery_tolerance=0,
        ))

        grn = await service.create_goods_receipt(world.scope, receipt(po, line(po.items[0], 90)))

        assert grn.items[0].received_qty == Decimal("90")

    async def test_resolver_failure_falls_back_to_exact_quantity(self, db, world, caplog):
        class BrokenResolver:
            async def get_effective_tolerance(self, scope, product_id):
                raise RuntimeError("tolerance store unavailable")

        service = GoodsReceiptService(db, tolerance_service=BrokenResolver())
        product = await create_product(db, world)
        po = await create_purchase_order(db, world, [(product, 10)])
        po_item = po.items[0]

        with caplog.at_level(logging.WARNING):
            with pytest.raises(ValidationError, match="from: DEFAULT"):
                await service.create_goods_receipt(world.scope, receipt(po, line(po_item, 9)))
        assert "Failed to get effective tolerance" in caplog.text

        grn = await service.create_goods_receipt(world.scope, receipt(po, line(po_item, 10)))
        assert grn.status == "PENDING"

    async def test_failed_resolver_query_keeps_transaction_usable(self, db, world, caplog):
        class FailingQueryResolver:
            async def get_effective_tolerance(self, scope, product_id):
                await db.execute(text("SELECT under_delivery_tolerance FROM archived_tolerances"))

        service = GoodsReceiptService(db, tolerance_service=FailingQueryResolver())
        product = await create_product(db, world)
        po = await create_purchase_order(db, world, [(product, 10)])
        po_item = po.items[0]

        with caplog.at_level(logging.WARNING):
            grn = await service.create_goods_receipt(world.scope, receipt(po, line(po_item, 10)))
        assert "Failed to get effective tolerance" in caplog.text
        assert grn.grn_number == "GRN-202610-0001"

        await db.commit()
        assert await count(db, GoodsReceipt) == 1
        assert await count(db, DocumentSequence) == 1

    async def test_product_of_other_company_is_not_found(self, db, world, service):
        other_company = Company(tenant_id=world.tenant_id, code="OTHER", name="Other Trading")
        db.add(other_company)
        await db.flush()
        product = await create_product(db, world)
        product.company_id = other_company.id
        await db.commit()
        po = await create_purchase_order(db, world, [(product, 10)])

        with pytest.raises(NotFoundError, match="product not found"):
            await service.create_goods_receipt(world.scope, receipt(po, line(po.items[0], 10)))

        assert await count(db, GoodsReceipt) == 0


class TestWorkflow:

    async def test_receive_and_inspect(self, db, world, service):
        product = await create_product(db, world)
        po = await create_purchase_order(db, world, [(product, 50)])
        grn = await service.create_goods_receipt(world.scope, receipt(po, line(po.items[0], 50)))

        grn = await service.receive_goods(world.scope, grn.id, notes="dock 3")
        assert grn.status == "RECEIVED"
        assert grn.received_by == world.user_id
        assert grn.received_at is not None
        assert grn.receive_notes == "dock 3"

        grn = await service.inspect_goods(world.scope, grn.id, InspectGoodsRequest(
            notes="two cartons crushed",
            items=[InspectItemRequest(
                item_id=grn.items[0].id,
                accepted_qty=Decimal("30"),
                rejected_qty=Decimal("20"),
                rejection_reason="crushed",
            )],
        ))
        assert grn.status == "INSPECTED"
        assert grn.inspected_by == world.user_id
        assert grn.inspection_notes == "two cartons crushed"
        assert grn.items[0].accepted_qty == Decimal("30")
        assert grn.items[0].rejected_qty == Decimal("20")
        assert grn.items[0].rejection_reason == "crushed"

    async def test_inspection_cannot_exceed_received(self, db, world, service):
        product = await create_product(db, world)
        po = await create_purchase_order(db, world, [(product, 50)])
        grn = await service.create_goods_receipt(world.scope, receipt(po, line(po.items[0], 50)))
        await service.receive_goods(world.scope, grn.id)

        with pytest.raises(ValidationError):
            await service.inspect_goods(world.scope, grn.id, InspectGoodsRequest(items=[
                InspectItemRequest(item_id=grn.items[0].id, accepted_qty=Decimal("40"), rejected_qty=Decimal("20")),
            ]))

    @pytest.mark.parametrize("action", ["inspect", "accept", "reject"])
    async def test_steps_cannot_be_skipped(self, db, world, service, action):
        product = await create_product(db, world)
        po = await create_purchase_order(db, world, [(product, 10)])
        grn = await service.create_goods_receipt(world.scope, receipt(po, line(po.items[0], 10)))

        with pytest.raises(ValidationError, match="current status: PENDING"):
            if action == "inspect":
                await service.inspect_goods(world.scope, grn.id, InspectGoodsRequest())
            elif action == "accept":
                await service.accept_goods(world.scope, grn.id)
            else:
                await service.reject_goods(world.scope, grn.id, "wrong goods")

        grn = await service.get_goods_receipt(world.scope, grn.id)
        assert grn.status == "PENDING"
        assert await stock_quantity(db, world, product.id) is None

    async def test_receive_twice(self, db, world, service):
        product = await create_product(db, world)
        po = await create_purchase_order(db, world, [(product, 10)])
        grn = await service.create_goods_receipt(world.scope, receipt(po, line(po.items[0], 10)))
        await service.receive_goods(world.scope, grn.id)

        with pytest.raises(ValidationError, match="can only receive"):
            await service.receive_goods(world.scope, grn.id)

    async def test_audit_trail(self, db, world, service):
        product = await create_product(db, world)
        po = await create_purchase_order(db, world, [(product, 10)])
        grn = await inspected(service, world.scope, receipt(po, line(po.items[0], 10)))
        await service.accept_goods(world.scope, grn.id)

        actions = (await db.execute(
            select(AuditLog.action)
            .where(AuditLog.entity_id == grn.id)
            .order_by(AuditLog.created_at)
        )).scalars().all()
        assert sorted(actions) == sorted(["CREATE", "RECEIVE", "INSPECT", "ACCEPT"])


class TestAcceptGoods:

    async def test_full_acceptance_completes_purchase_order(self, db, world, service):
        product = await create_product(db, world)
        po = await create_purchase_order(db, world, [(product, 50)])
        po_item = po.items[0]
        grn = await inspected(service, world.scope, receipt(po, line(po_item, 50)))

        grn = await service.accept_goods(world.scope, grn.id, notes="all good")

        assert grn.status == "ACCEPTED"
        assert grn.acceptance_notes == "all good"
        assert await stock_quantity(db, world, product.id) == Decimal("50")

        po_item = await db.get(PurchaseOrderItem, po_item.id, populate_existing=True)
        assert po_item.received_qty == Decimal("50")
        po = await db.get(PurchaseOrder, po.id, populate_existing=True)
        assert po.status == "COMPLETED"
        assert po.completed_at is not None

    async def test_rejected_quantity_makes_partial(self, db, world, service):
        product = await create_product(db, world)
        po = await create_purchase_order(db, world, [(product, 50)])
        po_item = po.items[0]
        grn = await service.create_goods_receipt(world.scope, receipt(po, line(po_item, 50)))
        await service.receive_goods(world.scope, grn.id)
        await service.inspect_goods(world.scope, grn.id, InspectGoodsRequest(items=[
            InspectItemRequest(item_id=grn.items[0].id, accepted_qty=Decimal("30"), rejected_qty=Decimal("20")),
        ]))

        grn = await service.accept_goods(world.scope, grn.id)

        assert grn.status == "PARTIAL"
        assert await stock_quantity(db, world, product.id) == Decimal("30")
        po_item = await db.get(PurchaseOrderItem, po_item.id, populate_existing=True)
        assert po_item.received_qty == Decimal("30")
        po = await db.get(PurchaseOrder, po.id, populate_existing=True)
        assert po.status == "CONFIRMED"

    async def test_lines_of_same_product_sum_into_one_stock_row(self, db, world, service):
        product = await create_product(db, world)
        po = await create_purchase_order(db, world, [(product, 10), (product, 15)])
        first_item, second_item = po.items
        grn = await inspected(
            service, world.scope, receipt(po, line(first_item, 10), line(second_item, 15))
        )

        await service.accept_goods(world.scope, grn.id)

        rows = (await db.execute(
            select(WarehouseStock).where(WarehouseStock.product_id == product.id)
        )).scalars().all()
        assert len(rows) == 1
        assert rows[0].quantity == Decimal("25")
        assert rows[0].last_receipt_at is not None

    async def test_existing_stock_is_incremented(self, db, world, service):
        product = await create_product(db, world)
        db.add(WarehouseStock(
            tenant_id=world.tenant_id,
            warehouse_id=world.warehouse_id,
            product_id=product.id,
            quantity=Decimal("5"),
        ))
        await db.commit()
        po = await create_purchase_order(db, world, [(product, 10)])
        grn = await inspected(service, world.scope, receipt(po, line(po.items[0], 10)))

        await service.accept_goods(world.scope, grn.id)

        assert await stock_quantity(db, world, product.id) == Decimal("15")

    async def test_batch_accumulates_and_keeps_later_expiry(self, db, world, service):
        product = await create_product(db, world, is_batch_tracked=True, is_perishable=True)
        po = await create_purchase_order(db, world, [(product, 10), (product, 15)])
        first_item, second_item = po.items
        first = await inspected(service, world.scope, receipt(
            po, line(first_item, 10, batch_number="B-1", expiry_date="2027-06-30")
        ))
        second = await inspected(service, world.scope, receipt(
            po, line(second_item, 15, batch_number="B-1", expiry_date="2027-01-31")
        ))

        await service.accept_goods(world.scope, first.id)
        await service.accept_goods(world.scope, second.id)

        batch = (await db.execute(
            select(ProductBatch).where(ProductBatch.product_id == product.id)
        )).scalar_one()
        assert batch.batch_number == "B-1"
        assert batch.quantity == Decimal("25")
        assert batch.expiry_date == date(2027, 6, 30)
        assert batch.receipt_date == date(2026, 10, 18)

        stock = (await db.execute(
            select(WarehouseStock).where(WarehouseStock.product_id == product.id)
        )).scalar_one()
        assert batch.warehouse_stock_id == stock.id
        po = await db.get(PurchaseOrder, po.id, populate_existing=True)
        assert po.status == "COMPLETED"

    async def test_untracked_product_posts_no_batch(self, db, world, service):
        product = await create_product(db, world)
        po = await create_purchase_order(db, world, [(product, 10)])
        grn = await inspected(service, world.scope, receipt(po, line(po.items[0], 10, batch_number="B-9")))

        await service.accept_goods(world.scope, grn.id)

        assert await count(db, ProductBatch) == 0

    async def test_acceptance_beyond_ordered_quantity_rolls_back(self, db, world, service):
        product = await create_product(db, world)
        product_id = product.id
        po = await create_purchase_order(db, world, [(product, 10)])
        po_item = po.items[0]
        po_item_id = po_item.id
        first = await inspected(service, world.scope, receipt(po, line(po_item, 10)))
        second = await inspected(service, world.scope, receipt(po, line(po_item, 10)))
        second_id = second.id
        await service.accept_goods(world.scope, first.id)
        await db.commit()

        with pytest.raises(ValidationError, match="would exceed ordered quantity"):
            await service.accept_goods(world.scope, second_id)
        await db.rollback()

        assert await stock_quantity(db, world, product_id) == Decimal("10")
        received = (await db.execute(
            select(PurchaseOrderItem.received_qty).where(PurchaseOrderItem.id == po_item_id)
        )).scalar_one()
        assert received == Decimal("10")
        second = await service.get_goods_receipt(world.scope, second_id)
        assert second.status == "INSPECTED"


class TestRejectGoods:

    async def test_reject_whole_receipt(self, db, world, service):
        product = await create_product(db, world)
        po = await create_purchase_order(db, world, [(product, 10), (product, 5)])
        first_item, second_item = po.items
        grn = await inspected(service, world.scope, receipt(po, line(first_item, 10), line(second_item, 5)))

        grn = await service.reject_goods(world.scope, grn.id, "  wrong grade  ")

        assert grn.status == "REJECTED"
        assert grn.rejection_notes == "wrong grade"
        for item in grn.items:
            assert item.accepted_qty == Decimal("0")
            assert item.rejected_qty == item.received_qty
            assert item.rejection_reason == "wrong grade"
        assert await stock_quantity(db, world, product.id) is None
        po_item = await db.get(PurchaseOrderItem, first_item.id, populate_existing=True)
        assert po_item.received_qty == Decimal("0")

    @pytest.mark.parametrize("reason", ["", "   "])
    async def test_reason_required(self, db, world, service, reason):
        product = await create_product(db, world)
        po = await create_purchase_order(db, world, [(product, 10)])
        grn = await inspected(service, world.scope, receipt(po, line(po.items[0], 10)))

        with pytest.raises(ValidationError, match="rejection reason is required"):
            await service.reject_goods(world.scope, grn.id, reason)

    async def test_reason_length_limit(self, db, world, service):
        product = await create_product(db, world)
        po = await create_purchase_order(db, world, [(product, 10)])
        grn = await inspected(service, world.scope, receipt(po, line(po.items[0], 10)))

        with pytest.raises(ValidationError, match="at most 500"):
            await service.reject_goods(world.scope, grn.id, "x" * 501)

    async def test_accepted_receipt_cannot_be_rejected(self, db, world, service):
        product = await create_product(db, world)
        po = await create_purchase_order(db, world, [(product, 10)])
        grn = await inspected(service, world.scope, receipt(po, line(po.items[0], 10)))
        await service.accept_goods(world.scope, grn.id)

        with pytest.raises(ValidationError):
            await service.reject_goods(world.scope, grn.id, "too late")


class TestRejectionDisposition:

    @pytest.fixture
    async def partial_grn(self, db, world, service):
        product = await create_product(db, world)
        po = await create_purchase_order(db, world, [(product, 50), (product, 10)])
        grn = await service.create_goods_receipt(
            world.scope, receipt(po, line(po.items[0], 50), line(po.items[1], 10))
        )
        await service.receive_goods(world.scope, grn.id)
        await service.inspect_goods(world.scope, grn.id, InspectGoodsRequest(items=[
            InspectItemRequest(item_id=grn.items[0].id, accepted_qty=Decimal("30"), rejected_qty=Decimal("20")),
        ]))
        return await service.accept_goods(world.scope, grn.id)

    async def test_set_and_resolve(self, world, service, partial_grn):
        item_id = partial_grn.items[0].id

        grn = await service.update_rejection_disposition(
            world.scope, partial_grn.id, item_id, RejectionDisposition.RETURNED, "pickup on Friday"
        )
        item = grn.items[0]
        assert item.rejection_disposition == "RETURNED"
        assert item.disposition_notes == "pickup on Friday"
        assert not item.disposition_resolved

        grn = await service.resolve_disposition(world.scope, grn.id, item_id, "credit note CN-12")
        item = grn.items[0]
        assert item.disposition_resolved
        assert item.disposition_resolved_by == world.user_id
        assert item.disposition_resolved_notes == "credit note CN-12"

        with pytest.raises(ValidationError, match="already resolved"):
            await service.resolve_disposition(world.scope, grn.id, item_id)
        with pytest.raises(ValidationError, match="already resolved"):
            await service.update_rejection_disposition(
                world.scope, grn.id, item_id, RejectionDisposition.WRITTEN_OFF
            )

    async def test_disposition_can_change_before_resolution(self, world, service, partial_grn):
        item_id = partial_grn.items[0].id
        await service.update_rejection_disposition(
            world.scope, partial_grn.id, item_id, RejectionDisposition.PENDING_REPLACEMENT
        )

        grn = await service.update_rejection_disposition(
            world.scope, partial_grn.id, item_id, "CREDIT_REQUESTED"
        )

        assert grn.items[0].rejection_disposition == "CREDIT_REQUESTED"

    async def test_line_without_rejection(self, world, service, partial_grn):
        with pytest.raises(ValidationError, match="requires a rejected quantity"):
            await service.update_rejection_disposition(
                world.scope, partial_grn.id, partial_grn.items[1].id, RejectionDisposition.RETURNED
            )

    async def test_resolve_before_disposition_set(self, world, service, partial_grn):
        with pytest.raises(ValidationError, match="has not been set"):
            await service.resolve_disposition(world.scope, partial_grn.id, partial_grn.items[0].id)

    async def test_unknown_item(self, world, service, partial_grn):
        with pytest.raises(NotFoundError, match="goods receipt item not found"):
            await service.update_rejection_disposition(
                world.scope, partial_grn.id, uuid.uuid4(), RejectionDisposition.RETURNED
            )

    async def test_not_before_inspection(self, db, world, service):
        product = await create_product(db, world)
        po = await create_purchase_order(db, world, [(product, 10)])
        grn = await service.create_goods_receipt(
            world.scope, receipt(po, line(po.items[0], 10, rejected_qty=Decimal("2")))
        )

        with pytest.raises(ValidationError, match="after inspection"):
            await service.update_rejection_disposition(
                world.scope, grn.id, grn.items[0].id, RejectionDisposition.RETURNED
            )


class TestInvoiceStatus:

    @pytest.mark.parametrize(
        "accepted, invoiced, expected",
        [
            ("0", "0", "NONE"),
            ("10", "0", "NONE"),
            ("0", "5", "NONE"),
            ("10", "4", "PARTIAL"),
            ("10", "10", "FULL"),
            ("10", "12", "FULL"),
        ],
    )
    def test_invoice_status_for(self, accepted, invoiced, expected):
        assert invoice_status_for(Decimal(accepted), Decimal(invoiced)) == expected

    @pytest.fixture
    async def accepted_grn(self, db, world, service):
        product = await create_product(db, world)
        po = await create_purchase_order(db, world, [(product, 10)])
        grn = await inspected(service, world.scope, receipt(po, line(po.items[0], 10)))
        return await service.accept_goods(world.scope, grn.id)

    async def add_invoice(self, db, world, grn, quantity, linked=True, status="APPROVED", deleted=False):
        item = grn.items[0]
        invoice = PurchaseInvoice(
            tenant_id=world.tenant_id,
            company_id=world.company_id,
            invoice_number=f"SINV-{uuid.uuid4().hex[:6]}",
            invoice_date=date(2026, 10, 20),
            status=status,
            supplier_id=world.supplier_id,
            goods_receipt_id=None if linked else grn.id,
            deleted_at=datetime.now(timezone.utc) if deleted else None,
            items=[PurchaseInvoiceItem(
                goods_receipt_item_id=item.id if linked else None,
                product_id=item.product_id,
                quantity=Decimal(str(quantity)),
            )],
        )
        db.add(invoice)
        await db.flush()

    async def test_no_invoices(self, service, accepted_grn):
        response = await service.build_response(accepted_grn)

        assert response.invoice_status == "NONE"
        assert response.total_accepted_qty == Decimal("10")
        assert response.total_invoiced_qty == Decimal("0")

    async def test_partial_then_full(self, db, world, service, accepted_grn):
        await self.add_invoice(db, world, accepted_grn, 4)
        response = await service.build_response(accepted_grn)
        assert response.invoice_status == "PARTIAL"
        assert response.items[0].invoiced_qty == Decimal("4")

        await self.add_invoice(db, world, accepted_grn, 6)
        response = await service.build_response(accepted_grn)
        assert response.invoice_status == "FULL"
        assert response.total_invoiced_qty == Decimal("10")

    async def test_cancelled_and_deleted_invoices_ignored(self, db, world, service, accepted_grn):
        await self.add_invoice(db, world, accepted_grn, 10, status="CANCELLED")
        await self.add_invoice(db, world, accepted_grn, 10, status="REJECTED")
        await self.add_invoice(db, world, accepted_grn, 10, deleted=True)

        response = await service.build_response(accepted_grn)

        assert response.invoice_status == "NONE"

    async def test_header_linked_invoice(self, db, world, service, accepted_grn):
        await self.add_invoice(db, world, accepted_grn, 10, linked=False)

        response = await service.build_response(accepted_grn)

        assert response.invoice_status == "FULL"
        assert response.items[0].invoiced_qty == Decimal("10")


class TestUpdateAndDelete:

    async def test_update_pending_receipt(self, db, world, service):
        product = await create_product(db, world)
        po = await create_purchase_order(db, world, [(product, 50)])
        grn = await service.create_goods_receipt(world.scope, receipt(po, line(po.items[0], 50)))
        await DeliveryToleranceService(db).create_tolerance(world.scope, DeliveryToleranceCreate(
            level="COMPANY", under_delivery_tolerance=20, over_delivery_tolerance=0,
        ))

        grn = await service.update_goods_receipt(world.scope, grn.id, GoodsReceiptUpdate(
            supplier_do_number="DO-99",
            items=[GoodsReceiptItemUpdate(id=grn.items[0].id, received_qty=Decimal("40"), rejected_qty=Decimal("5"))],
        ))

        assert grn.supplier_do_number == "DO-99"
        assert grn.items[0].received_qty == Decimal("40")
        assert grn.items[0].accepted_qty == Decimal("35")
        assert grn.items[0].rejected_qty == Decimal("5")

    async def test_update_received_beyond_remaining(self, db, world, service):
        product = await create_product(db, world)
        po = await create_purchase_order(db, world, [(product, 50)])
        grn = await service.create_goods_receipt(world.scope, receipt(po, line(po.items[0], 50)))

        with pytest.raises(ValidationError, match="exceeds remaining qty"):
            await service.update_goods_receipt(world.scope, grn.id, GoodsReceiptUpdate(
                items=[GoodsReceiptItemUpdate(id=grn.items[0].id, received_qty=Decimal("60"))],
            ))

    async def test_update_received_outside_tolerance(self, db, world, service):
        product = await create_product(db, world, name="Widget")
        po = await create_purchase_order(db, world, [(product, 50)])
        grn = await service.create_goods_receipt(world.scope, receipt(po, line(po.items[0], 50)))

        with pytest.raises(ValidationError, match="delivery tolerance violated for product Widget"):
            await service.update_goods_receipt(world.scope, grn.id, GoodsReceiptUpdate(
                items=[GoodsReceiptItemUpdate(id=grn.items[0].id, received_qty=Decimal("40"))],
            ))

        grn = await service.get_goods_receipt(world.scope, grn.id)
        assert grn.items[0].received_qty == Decimal("50")

    async def test_update_cannot_clear_batch_number(self, db, world, service):
        product = await create_product(db, world, name="Paracetamol", is_batch_tracked=True)
        po = await create_purchase_order(db, world, [(product, 10)])
        grn = await service.create_goods_receipt(
            world.scope, receipt(po, line(po.items[0], 10, batch_number="B-1"))
        )

        with pytest.raises(ValidationError, match="batch number is required for batch-tracked product: Paracetamol"):
            await service.update_goods_receipt(world.scope, grn.id, GoodsReceiptUpdate(
                items=[GoodsReceiptItemUpdate(id=grn.items[0].id, batch_number="")],
            ))

        grn = await service.get_goods_receipt(world.scope, grn.id)
        assert grn.items[0].batch_number == "B-1"

    async def test_update_cannot_clear_expiry_of_perishable(self, db, world, service):
        product = await create_product(db, world, name="Milk", is_perishable=True)
        po = await create_purchase_order(db, world, [(product, 10)])
        grn = await service.create_goods_receipt(
            world.scope, receipt(po, line(po.items[0], 10, expiry_date="2026-11-30"))
        )

        with pytest.raises(ValidationError, match="expiry date is required for perishable product: Milk"):
            await service.update_goods_receipt(world.scope, grn.id, GoodsReceiptUpdate(
                items=[GoodsReceiptItemUpdate(id=grn.items[0].id, expiry_date="")],
            ))

    async def test_updated_batch_number_is_posted_on_acceptance(self, db, world, service):
        product = await create_product(db, world, is_batch_tracked=True)
        po = await create_purchase_order(db, world, [(product, 10)])
        grn = await service.create_goods_receipt(
            world.scope, receipt(po, line(po.items[0], 10, batch_number="B-1"))
        )

        grn = await service.update_goods_receipt(world.scope, grn.id, GoodsReceiptUpdate(
            items=[GoodsReceiptItemUpdate(id=grn.items[0].id, batch_number="B-2")],
        ))
        await service.receive_goods(world.scope, grn.id)
        await service.inspect_goods(world.scope, grn.id, InspectGoodsRequest())
        await service.accept_goods(world.scope, grn.id)

        batch = (await db.execute(
            select(ProductBatch).where(ProductBatch.product_id == product.id)
        )).scalar_one()
        assert batch.batch_number == "B-2"
        assert batch.quantity == Decimal("10")

    async def test_update_unknown_item(self, db, world, service):
        product = await create_product(db, world)
        po = await create_purchase_order(db, world, [(product, 50)])
        grn = await service.create_goods_receipt(world.scope, receipt(po, line(po.items[0], 50)))

        with pytest.raises(ValidationError, match="item not found"):
            await service.update_goods_receipt(world.scope, grn.id, GoodsReceiptUpdate(
                items=[GoodsReceiptItemUpdate(id=uuid.uuid4(), received_qty=Decimal("10"))],
            ))

    async def test_update_after_receive(self, db, world, service):
        product = await create_product(db, world)
        po = await create_purchase_order(db, world, [(product, 50)])
        grn = await service.create_goods_receipt(world.scope, receipt(po, line(po.items[0], 50)))
        await service.receive_goods(world.scope, grn.id)

        with pytest.raises(ValidationError, match="can only update"):
            await service.update_goods_receipt(world.scope, grn.id, GoodsReceiptUpdate(notes="late"))

    async def test_delete_pending_receipt(self, db, world, service):
        product = await create_product(db, world)
        po = await create_purchase_order(db, world, [(product, 50)])
        grn = await service.create_goods_receipt(world.scope, receipt(po, line(po.items[0], 50)))
        grn_id = grn.id

        await service.delete_goods_receipt(world.scope, grn_id)

        with pytest.raises(NotFoundError):
            await service.get_goods_receipt(world.scope, grn_id)

    async def test_delete_after_receive(self, db, world, service):
        product = await create_product(db, world)
        po = await create_purchase_order(db, world, [(product, 50)])
        grn = await service.create_goods_receipt(world.scope, receipt(po, line(po.items[0], 50)))
        await service.receive_goods(world.scope, grn.id)

        with pytest.raises(ValidationError, match="can only delete"):
            await service.delete_goods_receipt(world.scope, grn.id)


class TestListGoodsReceipts:

    @pytest.fixture
    async def receipts(self, db, world, service):
        product = await create_product(db, world)
        po_a = await create_purchase_order(db, world, [(product, 10)])
        po_b = await create_purchase_order(db, world, [(product, 10)])
        first = await service.create_goods_receipt(world.scope, receipt(po_a, line(po_a.items[0], 10)))
        second = await service.create_goods_receipt(world.scope, GoodsReceiptCreate(
            purchase_order_id=po_b.id, grn_date="2026-11-02", items=[line(po_b.items[0], 10)],
        ))
        await service.receive_goods(world.scope, second.id)
        return po_a, po_b, first, second

    async def test_filters(self, world, service, receipts):
        po_a, po_b, first, second = receipts

        items, total = await service.list_goods_receipts(world.scope)
        assert total == 2

        items, total = await service.list_goods_receipts(world.scope, status="received")
        assert [grn.id for grn in items] == [second.id]

        items, total = await service.list_goods_receipts(world.scope, purchase_order_id=po_a.id)
        assert [grn.id for grn in items] == [first.id]

        items, total = await service.list_goods_receipts(world.scope, date_from="2026-11-01")
        assert [grn.id for grn in items] == [second.id]

        items, total = await service.list_goods_receipts(world.scope, date_to="2026-10-31")
        assert [grn.id for grn in items] == [first.id]

    async def test_search_by_grn_or_po_number(self, world, service, receipts):
        po_a, po_b, first, second = receipts

        items, total = await service.list_goods_receipts(world.scope, search="202611")
        assert [grn.id for grn in items] == [second.id]

        items, total = await service.list_goods_receipts(world.scope, search=po_a.po_number)
        assert [grn.id for grn in items] == [first.id]

    async def test_sort_and_paginate(self, world, service, receipts):
        po_a, po_b, first, second = receipts

        items, total = await service.list_goods_receipts(
            world.scope, sort_by="grnNumber", sort_order="asc", page=1, page_size=1
        )
        assert total == 2
        assert [grn.grn_number for grn in items] == ["GRN-202610-0001"]

    async def test_invalid_date_filter(self, world, service):
        with pytest.raises(ValidationError, match="invalid date_from format"):
            await service.list_goods_receipts(world.scope, date_from="yesterday")
