import logging
import uuid
from typing import Optional, Dict, Any

from sqlalchemy.ext.asyncio import AsyncSession

from receiving.core.scope import RequestScope
from receiving.models.audit_log import AuditLog


logger = logging.getLogger(__name__)


class AuditService:
    """
    Best-effort audit sink for receipts and tolerance settings.

    Each entry is written inside a SAVEPOINT so a failing insert is rolled
    back on its own and never takes the business transaction with it.
    Failures are logged as warnings and swallowed.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def log(
        self,
        scope: RequestScope,
        action: str,
        entity_type: str,
        entity_id: Optional[uuid.UUID] = None,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
        description: Optional[str] = None,
    ) -> Optional[AuditLog]:
        """
        Create an audit log entry.

        Args:
            scope: Tenant/company/user performing the action
            action: The action performed (CREATE, RECEIVE, ACCEPT, etc.)
            entity_type: Type of entity (GOODS_RECEIPT, DELIVERY_TOLERANCE)
            entity_id: ID of the affected entity
            old_values: Previous values (for updates)
            new_values: New values (for creates/updates)
            description: Human-readable description

        Returns:
            The created AuditLog entry, or None when writing it failed
        """
        audit_log = AuditLog(
            tenant_id=scope.tenant_id,
            company_id=scope.company_id,
            user_id=scope.user_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            old_values=old_values,
            new_values=new_values,
            description=description,
            ip_address=scope.ip_address,
            user_agent=scope.user_agent,
        )
        try:
            async with self.db.begin_nested():
                self.db.add(audit_log)
                await self.db.flush()
        except Exception as e:
            logger.warning(f"Failed to write audit log for {entity_type} {entity_id} ({action}): {e}")
            return None
        return audit_log

    async def log_goods_receipt(
        self,
        scope: RequestScope,
        action: str,
        goods_receipt_id: uuid.UUID,
        grn_number: str,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditLog]:
        """Log a goods receipt lifecycle event."""
        return await self.log(
            scope,
            action=action,
            entity_type="GOODS_RECEIPT",
            entity_id=goods_receipt_id,
            old_values=old_values,
            new_values=new_values,
            description=f"{action.replace('_', ' ').title()} goods receipt {grn_number}",
        )

    async def log_delivery_tolerance(
        self,
        scope: RequestScope,
        action: str,
        tolerance_id: uuid.UUID,
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditLog]:
        """Log a delivery tolerance change."""
        return await self.log(
            scope,
            action=action,
            entity_type="DELIVERY_TOLERANCE",
            entity_id=tolerance_id,
            old_values=old_values,
            new_values=new_values,
            description=f"{action.title()} delivery tolerance",
        )
