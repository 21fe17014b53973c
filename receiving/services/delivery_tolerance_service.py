"""
Delivery tolerance resolution and administration.

Tolerances are configured per company at three levels and resolved
PRODUCT > CATEGORY > COMPANY > DEFAULT for a given product. The check
itself (`check_delivery_tolerance`) is pure arithmetic so the goods
receipt service and the tests can use it without a database.
"""
import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, func, and_
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from receiving.core.exceptions import ValidationError, NotFoundError, ConflictError
from receiving.core.scope import RequestScope
from receiving.models.delivery_tolerance import DeliveryTolerance, ToleranceLevel
from receiving.models.product import Product
from receiving.schemas.delivery_tolerance import (
    DeliveryToleranceCreate,
    DeliveryToleranceUpdate,
    DeliveryToleranceResponse,
)
from receiving.services.audit_service import AuditService


logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")
DEFAULT_SOURCE = "DEFAULT"

SORT_COLUMNS = {
    "level": DeliveryTolerance.level,
    "createdAt": DeliveryTolerance.created_at,
    "updatedAt": DeliveryTolerance.updated_at,
}


# =============================================================================
# RESULT OBJECTS
# =============================================================================

@dataclass
class EffectiveTolerance:
    """Tolerance that applies to one product after hierarchy resolution."""
    product_id: Optional[uuid.UUID]
    product_code: Optional[str]
    product_name: Optional[str]
    under_delivery_tolerance: Decimal
    over_delivery_tolerance: Decimal
    unlimited_over_delivery: bool
    resolved_from: str
    tolerance_id: Optional[uuid.UUID] = None

    @classmethod
    def default(cls, product_id: Optional[uuid.UUID] = None) -> "EffectiveTolerance":
        """0% under, 0% over: the received quantity must match exactly."""
        return cls(
            product_id=product_id,
            product_code=None,
            product_name=None,
            under_delivery_tolerance=Decimal("0"),
            over_delivery_tolerance=Decimal("0"),
            unlimited_over_delivery=False,
            resolved_from=DEFAULT_SOURCE,
        )


@dataclass
class ToleranceCheckResult:
    """Outcome of checking one received quantity against its tolerance."""
    is_valid: bool
    min_allowed_qty: Decimal
    max_allowed_qty: Optional[Decimal]  # None = unbounded (unlimited over-delivery)
    deviation_percent: Decimal
    violation_type: Optional[str]  # "UNDER" | "OVER"
    message: Optional[str]
    under_tolerance: Decimal
    over_tolerance: Decimal
    unlimited_over: bool
    resolved_from: str


def check_delivery_tolerance(
    ordered_qty: Decimal,
    received_qty: Decimal,
    policy: EffectiveTolerance,
) -> ToleranceCheckResult:
    """
    Check a received quantity against a tolerance policy.

    Args:
        ordered_qty: Quantity the tolerance is relative to
        received_qty: Quantity delivered
        policy: Resolved tolerance percentages

    Returns:
        ToleranceCheckResult with the allowed range and any violation
    """
    ordered_qty = Decimal(ordered_qty)
    received_qty = Decimal(received_qty)
    under = Decimal(policy.under_delivery_tolerance)
    over = Decimal(policy.over_delivery_tolerance)
    unlimited = bool(policy.unlimited_over_delivery)

    min_allowed = ordered_qty * (HUNDRED - under) / HUNDRED
    max_allowed = None if unlimited else ordered_qty * (HUNDRED + over) / HUNDRED

    deviation = Decimal("0")
    if ordered_qty > 0:
        deviation = (received_qty - ordered_qty) / ordered_qty * HUNDRED

    violation_type = None
    message = None
    if received_qty < min_allowed:
        violation_type = "UNDER"
        message = (
            f"received quantity ({received_qty}) is below the lower tolerance limit "
            f"({min_allowed.quantize(Decimal('0.01'))}). Under-delivery tolerance: "
            f"{under}%, from: {policy.resolved_from}"
        )
    elif max_allowed is not None and received_qty > max_allowed:
        violation_type = "OVER"
        message = (
            f"received quantity ({received_qty}) exceeds the upper tolerance limit "
            f"({max_allowed.quantize(Decimal('0.01'))}). Over-delivery tolerance: "
            f"{over}%, from: {policy.resolved_from}"
        )

    return ToleranceCheckResult(
        is_valid=violation_type is None,
        min_allowed_qty=min_allowed,
        max_allowed_qty=max_allowed,
        deviation_percent=deviation,
        violation_type=violation_type,
        message=message,
        under_tolerance=under,
        over_tolerance=over,
        unlimited_over=unlimited,
        resolved_from=policy.resolved_from,
    )


def build_tolerance_response(tolerance: DeliveryTolerance) -> DeliveryToleranceResponse:
    """Serialize a tolerance row; the empty category placeholder becomes null."""
    response = DeliveryToleranceResponse.model_validate(tolerance)
    response.category_name = tolerance.category_name or None
    return response


def _parse_percentage(value: Any, field: str) -> Decimal:
    try:
        percent = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"invalid {field}: {value}")
    if not percent.is_finite() or percent < 0 or percent > HUNDRED:
        raise ValidationError(f"{field} must be between 0 and 100")
    return percent


def _snapshot(tolerance: DeliveryTolerance) -> Dict[str, Any]:
    return {
        "level": tolerance.level,
        "category_name": tolerance.category_name or None,
        "product_id": tolerance.product_id,
        "under_delivery_tolerance": tolerance.under_delivery_tolerance,
        "over_delivery_tolerance": tolerance.over_delivery_tolerance,
        "unlimited_over_delivery": tolerance.unlimited_over_delivery,
        "is_active": tolerance.is_active,
    }


class DeliveryToleranceService:
    """Service for delivery tolerance settings and their resolution."""

    def __init__(self, db: AsyncSession, audit: Optional[AuditService] = None):
        self.db = db
        self.audit = audit or AuditService(db)

    # ==================== RESOLUTION ====================

    async def _find_active(self, company_id: uuid.UUID, *conditions) -> Optional[DeliveryTolerance]:
        stmt = (
            select(DeliveryTolerance)
            .where(
                DeliveryTolerance.company_id == company_id,
                DeliveryTolerance.is_active.is_(True),
                *conditions
            )
            .order_by(DeliveryTolerance.updated_at.desc())
            .limit(1)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_effective_tolerance(
        self,
        scope: RequestScope,
        product_id: uuid.UUID,
    ) -> EffectiveTolerance:
        """
        Resolve the tolerance that applies to a product.

        Order: PRODUCT row, CATEGORY row matching the product's category,
        COMPANY row, then DEFAULT (0% / 0%). Inactive rows are ignored.

        Raises:
            NotFoundError: If the product does not exist in the company
        """
        product = await self._get_product(scope, product_id)

        tolerance = await self._find_active(
            scope.company_id,
            DeliveryTolerance.level == ToleranceLevel.PRODUCT.value,
            DeliveryTolerance.product_id == product.id,
        )
        if tolerance is None and product.category:
            tolerance = await self._find_active(
                scope.company_id,
                DeliveryTolerance.level == ToleranceLevel.CATEGORY.value,
                DeliveryTolerance.category_name == product.category,
            )
        if tolerance is None:
            tolerance = await self._find_active(
                scope.company_id,
                DeliveryTolerance.level == ToleranceLevel.COMPANY.value,
            )

        if tolerance is None:
            effective = EffectiveTolerance.default(product.id)
        else:
            effective = EffectiveTolerance(
                product_id=product.id,
                product_code=None,
                product_name=None,
                under_delivery_tolerance=tolerance.under_delivery_tolerance,
                over_delivery_tolerance=tolerance.over_delivery_tolerance,
                unlimited_over_delivery=tolerance.unlimited_over_delivery,
                resolved_from=tolerance.level,
                tolerance_id=tolerance.id,
            )
        effective.product_code = product.code
        effective.product_name = product.name
        return effective

    # ==================== CRUD ====================

    async def _get_product(self, scope: RequestScope, product_id: uuid.UUID) -> Product:
        stmt = select(Product).where(
            Product.id == product_id,
            Product.company_id == scope.company_id,
        )
        product = (await self.db.execute(stmt)).scalar_one_or_none()
        if not product:
            raise NotFoundError(f"product not found: {product_id}")
        return product

    async def get_tolerance(self, scope: RequestScope, tolerance_id: uuid.UUID) -> DeliveryTolerance:
        """Get a tolerance setting by ID, with its product loaded."""
        stmt = (
            select(DeliveryTolerance)
            .options(selectinload(DeliveryTolerance.product))
            .where(
                DeliveryTolerance.id == tolerance_id,
                DeliveryTolerance.company_id == scope.company_id,
            )
            .execution_options(populate_existing=True)
        )
        tolerance = (await self.db.execute(stmt)).scalar_one_or_none()
        if not tolerance:
            raise NotFoundError(f"delivery tolerance not found: {tolerance_id}")
        return tolerance

    async def list_tolerances(
        self,
        scope: RequestScope,
        page: int = 1,
        page_size: int = 20,
        level: Optional[str] = None,
        category_name: Optional[str] = None,
        product_id: Optional[uuid.UUID] = None,
        is_active: Optional[bool] = None,
        sort_by: str = "createdAt",
        sort_order: str = "desc",
    ) -> Tuple[List[DeliveryTolerance], int]:
        """List tolerance settings of the company with filters and pagination."""
        filters = [DeliveryTolerance.company_id == scope.company_id]
        if level:
            filters.append(DeliveryTolerance.level == level.upper())
        if category_name:
            filters.append(DeliveryTolerance.category_name == category_name)
        if product_id:
            filters.append(DeliveryTolerance.product_id == product_id)
        if is_active is not None:
            filters.append(DeliveryTolerance.is_active == is_active)

        count_stmt = select(func.count(DeliveryTolerance.id)).where(and_(*filters))
        total = (await self.db.execute(count_stmt)).scalar() or 0

        sort_column = SORT_COLUMNS.get(sort_by, DeliveryTolerance.created_at)
        order = sort_column.asc() if sort_order == "asc" else sort_column.desc()

        stmt = (
            select(DeliveryTolerance)
            .options(selectinload(DeliveryTolerance.product))
            .where(and_(*filters))
            .order_by(order)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all()), total

    async def create_tolerance(
        self,
        scope: RequestScope,
        data: DeliveryToleranceCreate,
    ) -> DeliveryTolerance:
        """
        Create a tolerance setting.

        Raises:
            ValidationError: Percentages out of range or level/reference mismatch
            NotFoundError: PRODUCT level with an unknown product
            ConflictError: A setting for the same level and reference exists
        """
        under = _parse_percentage(data.under_delivery_tolerance, "under_delivery_tolerance")
        over = _parse_percentage(data.over_delivery_tolerance, "over_delivery_tolerance")

        level = ToleranceLevel(data.level)
        category_name = (data.category_name or "").strip()
        product_id = data.product_id

        if level == ToleranceLevel.COMPANY:
            if category_name or product_id:
                raise ValidationError("COMPANY level tolerance cannot reference a category or product")
        elif level == ToleranceLevel.CATEGORY:
            if not category_name:
                raise ValidationError("category_name is required for CATEGORY level tolerance")
            if product_id:
                raise ValidationError("CATEGORY level tolerance cannot reference a product")
        elif level == ToleranceLevel.PRODUCT:
            if not product_id:
                raise ValidationError("product_id is required for PRODUCT level tolerance")
            if category_name:
                raise ValidationError("PRODUCT level tolerance cannot reference a category")
            await self._get_product(scope, product_id)

        # product_id is NULL for two of the three levels, so the unique
        # constraint alone does not catch duplicates
        duplicate_stmt = select(DeliveryTolerance.id).where(
            DeliveryTolerance.company_id == scope.company_id,
            DeliveryTolerance.level == level.value,
            DeliveryTolerance.category_name == category_name,
            DeliveryTolerance.product_id.is_(None) if product_id is None
            else DeliveryTolerance.product_id == product_id,
        )
        if (await self.db.execute(duplicate_stmt)).first():
            raise ConflictError(f"a {level.value} level delivery tolerance already exists for this scope")

        tolerance = DeliveryTolerance(
            tenant_id=scope.tenant_id,
            company_id=scope.company_id,
            level=level.value,
            category_name=category_name,
            product_id=product_id,
            under_delivery_tolerance=under,
            over_delivery_tolerance=over,
            unlimited_over_delivery=data.unlimited_over_delivery,
            is_active=True if data.is_active is None else data.is_active,
            notes=data.notes,
            created_by=scope.user_id,
            updated_by=scope.user_id,
        )
        self.db.add(tolerance)
        await self.db.flush()

        await self.audit.log_delivery_tolerance(
            scope, "CREATE", tolerance.id, new_values=_snapshot(tolerance)
        )
        logger.info(f"Created {level.value} delivery tolerance {tolerance.id} for company {scope.company_id}")

        return await self.get_tolerance(scope, tolerance.id)

    async def update_tolerance(
        self,
        scope: RequestScope,
        tolerance_id: uuid.UUID,
        data: DeliveryToleranceUpdate,
    ) -> DeliveryTolerance:
        """Partially update percentages, flags and notes of a tolerance setting."""
        tolerance = await self.get_tolerance(scope, tolerance_id)
        old_values = _snapshot(tolerance)

        update_data = data.model_dump(exclude_unset=True)
        for field in ("under_delivery_tolerance", "over_delivery_tolerance"):
            if update_data.get(field) is not None:
                update_data[field] = _parse_percentage(update_data[field], field)

        for key, value in update_data.items():
            if value is None and key != "notes":
                continue
            setattr(tolerance, key, value)
        tolerance.updated_by = scope.user_id

        await self.db.flush()

        await self.audit.log_delivery_tolerance(
            scope, "UPDATE", tolerance.id, old_values=old_values, new_values=_snapshot(tolerance)
        )
        return await self.get_tolerance(scope, tolerance.id)

    async def delete_tolerance(self, scope: RequestScope, tolerance_id: uuid.UUID) -> None:
        """Delete a tolerance setting."""
        tolerance = await self.get_tolerance(scope, tolerance_id)
        old_values = _snapshot(tolerance)

        await self.db.delete(tolerance)
        await self.db.flush()

        await self.audit.log_delivery_tolerance(scope, "DELETE", tolerance_id, old_values=old_values)
