"""
Goods Receipt (GRN) Service

Drives a receipt through its workflow against a confirmed purchase order:

    create (PENDING) -> receive -> inspect -> accept | reject

Acceptance is the only step with side effects outside the receipt. For
every accepted line it posts warehouse stock, accumulates the product batch
and increments the purchase order item's received quantity, then completes
the purchase order once everything has arrived. All of it runs in the
caller's transaction: a failing line rolls back the whole acceptance.
"""

import logging
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, update, func, and_, or_, case
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from receiving.core.enum_utils import get_enum_value
from receiving.core.exceptions import ValidationError, NotFoundError
from receiving.core.scope import RequestScope
from receiving.models.inventory import WarehouseStock, ProductBatch
from receiving.models.product import Product
from receiving.models.purchase import (
    PurchaseOrder,
    PurchaseOrderItem,
    PurchaseOrderStatus,
    GoodsReceipt,
    GoodsReceiptItem,
    GoodsReceiptStatus,
)
from receiving.models.purchase_invoice import (
    PurchaseInvoice,
    PurchaseInvoiceItem,
    NON_BILLING_INVOICE_STATUSES,
)
from receiving.schemas.goods_receipt import (
    GoodsReceiptCreate,
    GoodsReceiptUpdate,
    GoodsReceiptResponse,
    InspectGoodsRequest,
)
from receiving.services import grn_state_machine, po_state_machine
from receiving.services.audit_service import AuditService
from receiving.services.delivery_tolerance_service import (
    DeliveryToleranceService,
    EffectiveTolerance,
    ToleranceCheckResult,
    check_delivery_tolerance,
)
from receiving.services.document_sequence_service import DocumentSequenceService


logger = logging.getLogger(__name__)

ZERO = Decimal("0")
MAX_REJECTION_REASON_LENGTH = 500

SORT_COLUMNS = {
    "grnNumber": GoodsReceipt.grn_number,
    "grnDate": GoodsReceipt.grn_date,
    "status": GoodsReceipt.status,
    "createdAt": GoodsReceipt.created_at,
}


# =============================================================================
# HELPERS
# =============================================================================

def _parse_date(value: Optional[str], field: str) -> Optional[date]:
    """Parse a YYYY-MM-DD string; empty values mean 'not given'."""
    if value is None or value == "":
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except (TypeError, ValueError):
        raise ValidationError(f"invalid {field} format, expected YYYY-MM-DD")


def _parse_quantity(value: Any, field: str) -> Decimal:
    try:
        qty = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"invalid {field}")
    if not qty.is_finite() or qty < 0:
        raise ValidationError(f"invalid {field}")
    return qty


def _format_qty(qty: Decimal) -> str:
    """Render a quantity without the column's trailing zeros: 10.000 -> 10, 2.500 -> 2.5."""
    if qty == qty.to_integral_value():
        return str(qty.quantize(Decimal("1")))
    return str(qty.normalize())


def _check_line_quantities(received: Decimal, accepted: Decimal, rejected: Decimal) -> None:
    if accepted + rejected > received:
        raise ValidationError(
            f"accepted qty ({accepted}) plus rejected qty ({rejected}) "
            f"exceeds received qty ({received})"
        )


def _check_tracking_fields(product: Product, batch_number: Optional[str], expiry_date: Optional[date]) -> None:
    if product.is_batch_tracked and not batch_number:
        raise ValidationError(
            f"batch number is required for batch-tracked product: {product.name}"
        )
    if product.is_perishable and not expiry_date:
        raise ValidationError(
            f"expiry date is required for perishable product: {product.name}"
        )


def invoice_status_for(accepted: Decimal, invoiced: Decimal) -> str:
    """NONE, PARTIAL or FULL coverage of the accepted quantity by invoices."""
    if accepted <= 0 or invoiced <= 0:
        return "NONE"
    if invoiced >= accepted:
        return "FULL"
    return "PARTIAL"


def _grn_snapshot(grn: GoodsReceipt) -> Dict[str, Any]:
    return {
        "grn_number": grn.grn_number,
        "status": grn.status,
        "purchase_order_id": grn.purchase_order_id,
        "item_count": grn.item_count,
    }


class GoodsReceiptService:
    """Service for goods receipt workflow and acceptance posting."""

    def __init__(
        self,
        db: AsyncSession,
        tolerance_service: Optional[DeliveryToleranceService] = None,
        audit: Optional[AuditService] = None,
    ):
        self.db = db
        self.audit = audit or AuditService(db)
        self.tolerance_service = tolerance_service or DeliveryToleranceService(db, audit=self.audit)

    # ==================== TOLERANCE ====================

    async def validate_delivery_tolerance(
        self,
        scope: RequestScope,
        product_id: uuid.UUID,
        ordered_qty: Decimal,
        received_qty: Decimal,
    ) -> ToleranceCheckResult:
        """
        Check a received quantity against the product's effective tolerance.

        A resolver failure degrades to the DEFAULT tolerance (exact quantity)
        instead of blocking the receipt. The lookup runs in a SAVEPOINT so a
        failed query does not abort the request transaction.
        """
        try:
            async with self.db.begin_nested():
                policy = await self.tolerance_service.get_effective_tolerance(scope, product_id)
        except Exception as e:
            logger.warning(f"Failed to get effective tolerance for product {product_id}: {e}")
            policy = EffectiveTolerance.default(product_id)
        return check_delivery_tolerance(ordered_qty, received_qty, policy)

    # ==================== READ ====================

    def _load_options(self):
        return [
            selectinload(GoodsReceipt.items).selectinload(GoodsReceiptItem.product),
            selectinload(GoodsReceipt.items).selectinload(GoodsReceiptItem.purchase_order_item),
            selectinload(GoodsReceipt.purchase_order),
            selectinload(GoodsReceipt.warehouse),
            selectinload(GoodsReceipt.supplier),
        ]

    async def get_goods_receipt(self, scope: RequestScope, grn_id: uuid.UUID) -> GoodsReceipt:
        """Get GRN by ID with items, purchase order, warehouse and supplier."""
        stmt = (
            select(GoodsReceipt)
            .options(*self._load_options())
            .where(
                GoodsReceipt.id == grn_id,
                GoodsReceipt.company_id == scope.company_id,
            )
            .execution_options(populate_existing=True)
        )
        grn = (await self.db.execute(stmt)).scalar_one_or_none()
        if not grn:
            raise NotFoundError("goods receipt not found")
        return grn

    async def list_goods_receipts(
        self,
        scope: RequestScope,
        page: int = 1,
        page_size: int = 20,
        search: Optional[str] = None,
        status: Optional[str] = None,
        purchase_order_id: Optional[uuid.UUID] = None,
        supplier_id: Optional[uuid.UUID] = None,
        warehouse_id: Optional[uuid.UUID] = None,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        sort_by: str = "createdAt",
        sort_order: str = "desc",
    ) -> Tuple[List[GoodsReceipt], int]:
        """List GRNs of the company with filters and pagination."""
        filters = [GoodsReceipt.company_id == scope.company_id]
        if search:
            pattern = f"%{search}%"
            filters.append(or_(
                GoodsReceipt.grn_number.ilike(pattern),
                PurchaseOrder.po_number.ilike(pattern),
            ))
        if status:
            filters.append(GoodsReceipt.status == status.upper())
        if purchase_order_id:
            filters.append(GoodsReceipt.purchase_order_id == purchase_order_id)
        if supplier_id:
            filters.append(GoodsReceipt.supplier_id == supplier_id)
        if warehouse_id:
            filters.append(GoodsReceipt.warehouse_id == warehouse_id)
        start = _parse_date(date_from, "date_from")
        if start:
            filters.append(GoodsReceipt.grn_date >= start)
        end = _parse_date(date_to, "date_to")
        if end:
            filters.append(GoodsReceipt.grn_date <= end)

        count_stmt = (
            select(func.count(GoodsReceipt.id))
            .select_from(GoodsReceipt)
            .join(PurchaseOrder, PurchaseOrder.id == GoodsReceipt.purchase_order_id)
            .where(and_(*filters))
        )
        total = (await self.db.execute(count_stmt)).scalar() or 0

        sort_column = SORT_COLUMNS.get(sort_by, GoodsReceipt.created_at)
        order = sort_column.asc() if sort_order == "asc" else sort_column.desc()

        stmt = (
            select(GoodsReceipt)
            .join(PurchaseOrder, PurchaseOrder.id == GoodsReceipt.purchase_order_id)
            .options(*self._load_options())
            .where(and_(*filters))
            .order_by(order)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all()), total

    # ==================== CREATE / UPDATE / DELETE ====================

    async def _get_purchase_order(self, scope: RequestScope, po_id: uuid.UUID) -> PurchaseOrder:
        stmt = (
            select(PurchaseOrder)
            .options(selectinload(PurchaseOrder.items))
            .where(
                PurchaseOrder.id == po_id,
                PurchaseOrder.company_id == scope.company_id,
            )
            .execution_options(populate_existing=True)
        )
        po = (await self.db.execute(stmt)).scalar_one_or_none()
        if not po:
            raise NotFoundError("purchase order not found")
        return po

    async def _get_product(self, scope: RequestScope, product_id: uuid.UUID) -> Product:
        result = await self.db.execute(
            select(Product).where(
                Product.id == product_id,
                Product.company_id == scope.company_id,
            )
        )
        product = result.scalar_one_or_none()
        if not product:
            raise NotFoundError(f"product not found: {product_id}")
        return product

    async def _check_received_qty(
        self,
        scope: RequestScope,
        product: Product,
        po_item: PurchaseOrderItem,
        received: Decimal,
    ) -> None:
        """Received quantity must fit the PO item's remaining quantity and the delivery tolerance."""
        remaining = po_item.remaining_qty
        if received > remaining:
            raise ValidationError(
                f"received qty ({_format_qty(received)}) exceeds remaining qty ({_format_qty(remaining)}) for PO item"
            )

        tolerance = await self.validate_delivery_tolerance(scope, product.id, remaining, received)
        if not tolerance.is_valid:
            raise ValidationError(
                f"delivery tolerance violated for product {product.name}: {tolerance.message}"
            )

    async def create_goods_receipt(
        self,
        scope: RequestScope,
        data: GoodsReceiptCreate,
    ) -> GoodsReceipt:
        """
        Create a PENDING GRN from a confirmed purchase order.

        Every line is validated before anything is written, so a single bad
        line fails the whole receipt.

        Raises:
            ValidationError: Bad dates or quantities, PO not CONFIRMED, missing
                batch/expiry, quantity outside remaining or tolerance
            NotFoundError: Purchase order or product does not exist in the company
        """
        grn_date = _parse_date(data.grn_date, "grn_date")
        if grn_date is None:
            raise ValidationError("grn_date is required")

        po = await self._get_purchase_order(scope, data.purchase_order_id)
        if not po_state_machine.can_receive_goods(po.status):
            raise ValidationError(
                "purchase order must be in CONFIRMED status to create goods receipt"
            )

        if not data.items:
            raise ValidationError("at least one item is required")

        po_items = {item.id: item for item in po.items}
        seen_po_items = set()
        lines = []

        for item_data in data.items:
            po_item = po_items.get(item_data.purchase_order_item_id)
            if po_item is None:
                raise ValidationError(
                    f"purchase order item not found: {item_data.purchase_order_item_id}"
                )
            if po_item.id in seen_po_items:
                raise ValidationError(
                    f"purchase order item {po_item.id} appears more than once"
                )
            seen_po_items.add(po_item.id)

            if po_item.product_id != item_data.product_id:
                raise ValidationError("product ID does not match purchase order item")

            product = await self._get_product(scope, item_data.product_id)
            expiry_date = _parse_date(item_data.expiry_date, "expiry_date")
            _check_tracking_fields(product, item_data.batch_number, expiry_date)

            received = _parse_quantity(item_data.received_qty, "received_qty")
            await self._check_received_qty(scope, product, po_item, received)

            rejected = ZERO
            if item_data.rejected_qty is not None:
                rejected = _parse_quantity(item_data.rejected_qty, "rejected_qty")
            if item_data.accepted_qty is not None:
                accepted = _parse_quantity(item_data.accepted_qty, "accepted_qty")
            else:
                accepted = max(received - rejected, ZERO)
            _check_line_quantities(received, accepted, rejected)

            lines.append(GoodsReceiptItem(
                purchase_order_item_id=po_item.id,
                product_id=po_item.product_id,
                line_number=len(lines) + 1,
                batch_number=item_data.batch_number or None,
                manufacture_date=_parse_date(item_data.manufacture_date, "manufacture_date"),
                expiry_date=expiry_date,
                ordered_qty=po_item.quantity,
                received_qty=received,
                accepted_qty=accepted,
                rejected_qty=rejected,
                rejection_reason=item_data.rejection_reason,
                quality_note=item_data.quality_note,
                notes=item_data.notes,
            ))

        grn_number = await DocumentSequenceService(self.db).get_next_number(scope, "GRN", on=grn_date)

        grn = GoodsReceipt(
            tenant_id=scope.tenant_id,
            company_id=scope.company_id,
            grn_number=grn_number,
            grn_date=grn_date,
            status=GoodsReceiptStatus.PENDING.value,
            purchase_order_id=po.id,
            warehouse_id=po.warehouse_id,
            supplier_id=po.supplier_id,
            supplier_invoice=data.supplier_invoice,
            supplier_do_number=data.supplier_do_number,
            notes=data.notes,
            item_count=len(lines),
            created_by=scope.user_id,
            items=lines,
        )
        self.db.add(grn)
        await self.db.flush()

        await self.audit.log_goods_receipt(
            scope, "CREATE", grn.id, grn.grn_number, new_values=_grn_snapshot(grn)
        )
        logger.info(f"Created goods receipt {grn.grn_number} for PO {po.po_number}")

        return await self.get_goods_receipt(scope, grn.id)

    async def update_goods_receipt(
        self,
        scope: RequestScope,
        grn_id: uuid.UUID,
        data: GoodsReceiptUpdate,
    ) -> GoodsReceipt:
        """
        Update header fields and existing lines of a PENDING GRN.

        Changed lines are held to the same rules as on create: batch and
        expiry requirements, remaining quantity and delivery tolerance.
        """
        grn = await self.get_goods_receipt(scope, grn_id)
        if not grn_state_machine.can_edit(grn.status):
            grn_state_machine.require_status(grn.status, "update")
        old_values = _grn_snapshot(grn)

        if data.grn_date is not None:
            grn.grn_date = _parse_date(data.grn_date, "grn_date") or grn.grn_date
        if data.supplier_invoice is not None:
            grn.supplier_invoice = data.supplier_invoice
        if data.supplier_do_number is not None:
            grn.supplier_do_number = data.supplier_do_number
        if data.notes is not None:
            grn.notes = data.notes

        items_by_id = {item.id: item for item in grn.items}
        for item_data in data.items or []:
            item = items_by_id.get(item_data.id)
            if item is None:
                raise ValidationError(f"item not found: {item_data.id}")

            batch_number = item.batch_number
            if item_data.batch_number is not None:
                batch_number = item_data.batch_number or None
            expiry_date = item.expiry_date
            if item_data.expiry_date is not None:
                expiry_date = _parse_date(item_data.expiry_date, "expiry_date")
            _check_tracking_fields(item.product, batch_number, expiry_date)

            received = item.received_qty
            if item_data.received_qty is not None:
                received = _parse_quantity(item_data.received_qty, "received_qty")
                await self._check_received_qty(scope, item.product, item.purchase_order_item, received)
            rejected = item.rejected_qty
            if item_data.rejected_qty is not None:
                rejected = _parse_quantity(item_data.rejected_qty, "rejected_qty")
            if item_data.accepted_qty is not None:
                accepted = _parse_quantity(item_data.accepted_qty, "accepted_qty")
            elif item_data.received_qty is not None:
                accepted = max(received - rejected, ZERO)
            else:
                accepted = item.accepted_qty
            _check_line_quantities(received, accepted, rejected)

            item.received_qty = received
            item.accepted_qty = accepted
            item.rejected_qty = rejected
            item.batch_number = batch_number
            item.expiry_date = expiry_date
            if item_data.manufacture_date is not None:
                item.manufacture_date = _parse_date(item_data.manufacture_date, "manufacture_date")
            if item_data.rejection_reason is not None:
                item.rejection_reason = item_data.rejection_reason
            if item_data.quality_note is not None:
                item.quality_note = item_data.quality_note
            if item_data.notes is not None:
                item.notes = item_data.notes

        await self.db.flush()

        await self.audit.log_goods_receipt(
            scope, "UPDATE", grn.id, grn.grn_number,
            old_values=old_values, new_values=_grn_snapshot(grn)
        )
        return await self.get_goods_receipt(scope, grn.id)

    async def delete_goods_receipt(self, scope: RequestScope, grn_id: uuid.UUID) -> None:
        """Delete a PENDING GRN together with its lines."""
        grn = await self.get_goods_receipt(scope, grn_id)
        if not grn_state_machine.can_delete(grn.status):
            grn_state_machine.require_status(grn.status, "delete")
        old_values = _grn_snapshot(grn)
        grn_number = grn.grn_number

        await self.db.delete(grn)
        await self.db.flush()

        await self.audit.log_goods_receipt(scope, "DELETE", grn_id, grn_number, old_values=old_values)
        logger.info(f"Deleted goods receipt {grn_number}")

    # ==================== WORKFLOW ====================

    async def receive_goods(
        self,
        scope: RequestScope,
        grn_id: uuid.UUID,
        notes: Optional[str] = None,
    ) -> GoodsReceipt:
        """PENDING -> RECEIVED."""
        grn = await self.get_goods_receipt(scope, grn_id)
        grn_state_machine.require_status(grn.status, "receive")

        grn_state_machine.transition_grn(grn, GoodsReceiptStatus.RECEIVED, scope.user_id)
        if notes:
            grn.receive_notes = notes
        await self.db.flush()

        await self.audit.log_goods_receipt(
            scope, "RECEIVE", grn.id, grn.grn_number,
            old_values={"status": GoodsReceiptStatus.PENDING.value},
            new_values={"status": grn.status},
        )
        logger.info(f"Goods receipt {grn.grn_number} received")
        return await self.get_goods_receipt(scope, grn.id)

    async def inspect_goods(
        self,
        scope: RequestScope,
        grn_id: uuid.UUID,
        data: InspectGoodsRequest,
    ) -> GoodsReceipt:
        """
        RECEIVED -> INSPECTED.

        Optionally records per-line accepted/rejected quantities and quality
        annotations. Lines not mentioned keep their quantities.
        """
        grn = await self.get_goods_receipt(scope, grn_id)
        grn_state_machine.require_status(grn.status, "inspect")

        items_by_id = {item.id: item for item in grn.items}
        for result in data.items:
            item = items_by_id.get(result.item_id)
            if item is None:
                raise ValidationError(f"item not found: {result.item_id}")

            accepted = item.accepted_qty
            rejected = item.rejected_qty
            if result.accepted_qty is not None:
                accepted = _parse_quantity(result.accepted_qty, "accepted_qty")
            if result.rejected_qty is not None:
                rejected = _parse_quantity(result.rejected_qty, "rejected_qty")
            _check_line_quantities(item.received_qty, accepted, rejected)

            item.accepted_qty = accepted
            item.rejected_qty = rejected
            if result.rejection_reason is not None:
                item.rejection_reason = result.rejection_reason
            if result.quality_note is not None:
                item.quality_note = result.quality_note

        grn_state_machine.transition_grn(grn, GoodsReceiptStatus.INSPECTED, scope.user_id)
        if data.notes:
            grn.inspection_notes = data.notes
        await self.db.flush()

        await self.audit.log_goods_receipt(
            scope, "INSPECT", grn.id, grn.grn_number,
            old_values={"status": GoodsReceiptStatus.RECEIVED.value},
            new_values={"status": grn.status},
        )
        logger.info(f"Goods receipt {grn.grn_number} inspected")
        return await self.get_goods_receipt(scope, grn.id)

    async def accept_goods(
        self,
        scope: RequestScope,
        grn_id: uuid.UUID,
        notes: Optional[str] = None,
    ) -> GoodsReceipt:
        """
        INSPECTED -> ACCEPTED, or PARTIAL when any line has a rejected quantity.

        Posting order per accepted line: warehouse stock, product batch,
        purchase order item received quantity. The purchase order completion
        check runs after all lines.
        """
        grn = await self.get_goods_receipt(scope, grn_id)
        grn_state_machine.require_status(grn.status, "accept")

        now = datetime.now(timezone.utc)
        for item in grn.items:
            accepted = item.accepted_qty or ZERO
            if accepted <= 0:
                continue

            product = await self.db.get(Product, item.product_id)
            if product is None:
                raise NotFoundError(f"product not found: {item.product_id}")

            stock_id = await self._post_warehouse_stock(scope, grn.warehouse_id, product.id, accepted, now)

            if product.is_batch_tracked and item.batch_number:
                await self._post_product_batch(scope, grn, item, stock_id, accepted, now)

            await self._increment_po_item_received(item.purchase_order_item_id, accepted)

        await self._complete_purchase_order_if_received(grn.purchase_order_id)

        has_rejections = any((item.rejected_qty or ZERO) > 0 for item in grn.items)
        target = GoodsReceiptStatus.PARTIAL if has_rejections else GoodsReceiptStatus.ACCEPTED
        grn_state_machine.transition_grn(grn, target, scope.user_id)
        if notes:
            grn.acceptance_notes = notes
        await self.db.flush()

        await self.audit.log_goods_receipt(
            scope, "ACCEPT", grn.id, grn.grn_number,
            old_values={"status": GoodsReceiptStatus.INSPECTED.value},
            new_values={"status": grn.status},
        )
        logger.info(f"Goods receipt {grn.grn_number} accepted as {grn.status}")
        return await self.get_goods_receipt(scope, grn.id)

    async def reject_goods(
        self,
        scope: RequestScope,
        grn_id: uuid.UUID,
        reason: str,
    ) -> GoodsReceipt:
        """INSPECTED -> REJECTED. Every line is rejected in full; no stock is posted."""
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("rejection reason is required")
        if len(reason) > MAX_REJECTION_REASON_LENGTH:
            raise ValidationError(
                f"rejection reason must be at most {MAX_REJECTION_REASON_LENGTH} characters"
            )

        grn = await self.get_goods_receipt(scope, grn_id)
        grn_state_machine.require_status(grn.status, "reject")

        for item in grn.items:
            item.rejected_qty = item.received_qty
            item.accepted_qty = ZERO
            item.rejection_reason = reason

        grn_state_machine.transition_grn(grn, GoodsReceiptStatus.REJECTED, scope.user_id)
        grn.rejection_notes = reason
        await self.db.flush()

        await self.audit.log_goods_receipt(
            scope, "REJECT", grn.id, grn.grn_number,
            old_values={"status": GoodsReceiptStatus.INSPECTED.value},
            new_values={"status": grn.status, "reason": reason},
        )
        logger.info(f"Goods receipt {grn.grn_number} rejected")
        return await self.get_goods_receipt(scope, grn.id)

    # ==================== ACCEPTANCE POSTING ====================

    def _dialect_insert(self):
        if self.db.get_bind().dialect.name == "postgresql":
            return postgresql.insert
        return sqlite.insert

    async def _post_warehouse_stock(
        self,
        scope: RequestScope,
        warehouse_id: uuid.UUID,
        product_id: uuid.UUID,
        quantity: Decimal,
        now: datetime,
    ) -> uuid.UUID:
        """Add quantity on hand with a single INSERT .. ON CONFLICT DO UPDATE."""
        table = WarehouseStock.__table__
        stmt = self._dialect_insert()(WarehouseStock).values(
            tenant_id=scope.tenant_id,
            warehouse_id=warehouse_id,
            product_id=product_id,
            quantity=quantity,
            last_receipt_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["warehouse_id", "product_id"],
            set_={
                "quantity": table.c.quantity + stmt.excluded.quantity,
                "last_receipt_at": stmt.excluded.last_receipt_at,
                "updated_at": now,
            },
        )
        await self.db.execute(stmt)

        result = await self.db.execute(
            select(WarehouseStock.id).where(
                WarehouseStock.warehouse_id == warehouse_id,
                WarehouseStock.product_id == product_id,
            )
        )
        return result.scalar_one()

    async def _post_product_batch(
        self,
        scope: RequestScope,
        grn: GoodsReceipt,
        item: GoodsReceiptItem,
        stock_id: uuid.UUID,
        quantity: Decimal,
        now: datetime,
    ) -> None:
        """Accumulate the batch quantity; expiry only ever moves later."""
        table = ProductBatch.__table__
        stmt = self._dialect_insert()(ProductBatch).values(
            tenant_id=scope.tenant_id,
            product_id=item.product_id,
            batch_number=item.batch_number,
            warehouse_stock_id=stock_id,
            manufacture_date=item.manufacture_date,
            expiry_date=item.expiry_date,
            receipt_date=grn.grn_date,
            quantity=quantity,
            goods_receipt_id=grn.id,
        )
        incoming_expiry = stmt.excluded.expiry_date
        stmt = stmt.on_conflict_do_update(
            index_elements=["product_id", "batch_number"],
            set_={
                "quantity": table.c.quantity + stmt.excluded.quantity,
                "expiry_date": case(
                    (
                        and_(
                            incoming_expiry.is_not(None),
                            or_(table.c.expiry_date.is_(None), incoming_expiry > table.c.expiry_date),
                        ),
                        incoming_expiry,
                    ),
                    else_=table.c.expiry_date,
                ),
                "updated_at": now,
            },
        )
        await self.db.execute(stmt)

    async def _increment_po_item_received(self, po_item_id: uuid.UUID, quantity: Decimal) -> None:
        """
        received_qty += quantity in one guarded UPDATE.

        Raises:
            ValidationError: If the increment would exceed the ordered quantity
        """
        stmt = (
            update(PurchaseOrderItem)
            .where(
                PurchaseOrderItem.id == po_item_id,
                PurchaseOrderItem.received_qty + quantity <= PurchaseOrderItem.quantity,
            )
            .values(received_qty=PurchaseOrderItem.received_qty + quantity)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        if result.rowcount == 0:
            raise ValidationError(
                f"accepting {quantity} would exceed ordered quantity of purchase order item {po_item_id}"
            )

    async def _complete_purchase_order_if_received(self, po_id: uuid.UUID) -> None:
        result = await self.db.execute(
            select(PurchaseOrder)
            .options(selectinload(PurchaseOrder.items))
            .where(PurchaseOrder.id == po_id)
            .execution_options(populate_existing=True)
        )
        po = result.scalar_one()
        if po.status != PurchaseOrderStatus.CONFIRMED:
            return
        if po.items and all(item.received_qty >= item.quantity for item in po.items):
            po_state_machine.transition_po(po, PurchaseOrderStatus.COMPLETED)
            logger.info(f"Purchase order {po.po_number} fully received, marked COMPLETED")

    # ==================== REJECTION DISPOSITION ====================

    def _find_item(self, grn: GoodsReceipt, item_id: uuid.UUID) -> GoodsReceiptItem:
        for item in grn.items:
            if item.id == item_id:
                return item
        raise NotFoundError("goods receipt item not found")

    async def update_rejection_disposition(
        self,
        scope: RequestScope,
        grn_id: uuid.UUID,
        item_id: uuid.UUID,
        disposition: str,
        notes: Optional[str] = None,
    ) -> GoodsReceipt:
        """Set what happens to a line's rejected quantity."""
        grn = await self.get_goods_receipt(scope, grn_id)
        item = self._find_item(grn, item_id)

        if not grn_state_machine.can_set_disposition(grn.status):
            raise ValidationError(
                f"rejection disposition can only be set after inspection (current status: {grn.status})"
            )
        if (item.rejected_qty or ZERO) <= 0:
            raise ValidationError("rejection disposition requires a rejected quantity")
        if item.disposition_resolved:
            raise ValidationError("rejection disposition is already resolved")

        old_values = {"rejection_disposition": item.rejection_disposition}
        item.rejection_disposition = get_enum_value(disposition)
        item.disposition_notes = notes
        await self.db.flush()

        await self.audit.log_goods_receipt(
            scope, "DISPOSITION_UPDATE", grn.id, grn.grn_number,
            old_values=old_values,
            new_values={"item_id": item.id, "rejection_disposition": item.rejection_disposition},
        )
        return await self.get_goods_receipt(scope, grn.id)

    async def resolve_disposition(
        self,
        scope: RequestScope,
        grn_id: uuid.UUID,
        item_id: uuid.UUID,
        notes: Optional[str] = None,
    ) -> GoodsReceipt:
        """Mark a line's disposition as done. Can happen once."""
        grn = await self.get_goods_receipt(scope, grn_id)
        item = self._find_item(grn, item_id)

        if not item.rejection_disposition:
            raise ValidationError("rejection disposition has not been set")
        if item.disposition_resolved:
            raise ValidationError("rejection disposition is already resolved")

        item.disposition_resolved_at = datetime.now(timezone.utc)
        item.disposition_resolved_by = scope.user_id
        item.disposition_resolved_notes = notes
        await self.db.flush()

        await self.audit.log_goods_receipt(
            scope, "DISPOSITION_RESOLVE", grn.id, grn.grn_number,
            new_values={"item_id": item.id, "rejection_disposition": item.rejection_disposition},
        )
        return await self.get_goods_receipt(scope, grn.id)

    # ==================== RESPONSE ====================

    async def _invoiced_quantities(
        self,
        grn: GoodsReceipt,
    ) -> Tuple[Dict[uuid.UUID, Decimal], Decimal, Dict[uuid.UUID, Decimal]]:
        """
        Invoiced quantities from billing invoices (not deleted, rejected or cancelled).

        Returns:
            (per linked receipt line, total on invoices linked to the receipt
            header, per product for unlinked lines on those invoices)
        """
        billing = and_(
            PurchaseInvoice.deleted_at.is_(None),
            PurchaseInvoice.status.notin_(NON_BILLING_INVOICE_STATUSES),
        )

        item_ids = [item.id for item in grn.items]
        by_item: Dict[uuid.UUID, Decimal] = {}
        if item_ids:
            result = await self.db.execute(
                select(
                    PurchaseInvoiceItem.goods_receipt_item_id,
                    func.sum(PurchaseInvoiceItem.quantity),
                )
                .join(PurchaseInvoice, PurchaseInvoice.id == PurchaseInvoiceItem.purchase_invoice_id)
                .where(PurchaseInvoiceItem.goods_receipt_item_id.in_(item_ids), billing)
                .group_by(PurchaseInvoiceItem.goods_receipt_item_id)
            )
            by_item = {row[0]: Decimal(str(row[1] or 0)) for row in result.all()}

        header_total = (await self.db.execute(
            select(func.coalesce(func.sum(PurchaseInvoiceItem.quantity), 0))
            .join(PurchaseInvoice, PurchaseInvoice.id == PurchaseInvoiceItem.purchase_invoice_id)
            .where(PurchaseInvoice.goods_receipt_id == grn.id, billing)
        )).scalar()

        result = await self.db.execute(
            select(PurchaseInvoiceItem.product_id, func.sum(PurchaseInvoiceItem.quantity))
            .join(PurchaseInvoice, PurchaseInvoice.id == PurchaseInvoiceItem.purchase_invoice_id)
            .where(
                PurchaseInvoice.goods_receipt_id == grn.id,
                PurchaseInvoiceItem.goods_receipt_item_id.is_(None),
                billing,
            )
            .group_by(PurchaseInvoiceItem.product_id)
        )
        by_product = {row[0]: Decimal(str(row[1] or 0)) for row in result.all()}

        return by_item, Decimal(str(header_total or 0)), by_product

    async def build_response(self, grn: GoodsReceipt) -> GoodsReceiptResponse:
        """Serialize a GRN with per-line invoiced quantities and invoice status."""
        response = GoodsReceiptResponse.model_validate(grn)
        by_item, header_total, by_product = await self._invoiced_quantities(grn)

        for line in response.items:
            line.invoiced_qty = by_item.get(line.id, by_product.get(line.product_id, ZERO))

        total_accepted = sum((item.accepted_qty or ZERO for item in grn.items), ZERO)
        total_invoiced = max(sum(by_item.values(), ZERO), header_total)

        response.total_accepted_qty = total_accepted
        response.total_invoiced_qty = total_invoiced
        response.invoice_status = invoice_status_for(total_accepted, total_invoiced)
        return response
