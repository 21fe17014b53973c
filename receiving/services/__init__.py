# Services module
from receiving.services.audit_service import AuditService
from receiving.services.document_sequence_service import DocumentSequenceService
from receiving.services.delivery_tolerance_service import DeliveryToleranceService
from receiving.services.goods_receipt_service import GoodsReceiptService

__all__ = [
    "AuditService",
    "DocumentSequenceService",
    "DeliveryToleranceService",
    "GoodsReceiptService",
]
