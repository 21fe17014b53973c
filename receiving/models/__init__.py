from receiving.models.company import Company
from receiving.models.supplier import Supplier
from receiving.models.warehouse import Warehouse
from receiving.models.product import Product
from receiving.models.purchase import (
    PurchaseOrderStatus,
    GoodsReceiptStatus,
    RejectionDisposition,
    PurchaseOrder,
    PurchaseOrderItem,
    GoodsReceipt,
    GoodsReceiptItem,
)
from receiving.models.inventory import (
    BatchStatus,
    BatchQualityStatus,
    WarehouseStock,
    ProductBatch,
)
from receiving.models.delivery_tolerance import ToleranceLevel, DeliveryTolerance
from receiving.models.purchase_invoice import (
    PurchaseInvoiceStatus,
    PurchaseInvoice,
    PurchaseInvoiceItem,
)
from receiving.models.audit_log import AuditLog
from receiving.models.document_sequence import DocumentSequence

__all__ = [
    "Company",
    "Supplier",
    "Warehouse",
    "Product",
    "PurchaseOrderStatus",
    "GoodsReceiptStatus",
    "RejectionDisposition",
    "PurchaseOrder",
    "PurchaseOrderItem",
    "GoodsReceipt",
    "GoodsReceiptItem",
    "BatchStatus",
    "BatchQualityStatus",
    "WarehouseStock",
    "ProductBatch",
    "ToleranceLevel",
    "DeliveryTolerance",
    "PurchaseInvoiceStatus",
    "PurchaseInvoice",
    "PurchaseInvoiceItem",
    "AuditLog",
    "DocumentSequence",
]
