"""
Order Fulfillment & Returns Models
"""

from .inventory import Product, Batch, BatchStatus, Item, ItemStatus, ItemEvent
from .order import Order, OrderStatus, OrderLine
from .package import Package, PackageStatus, PackageAllocation
from .transport import Transport, TransportType, TransportStatus, TransportStatusEntry
from .returns import ReturnRequest, ReturnStatus, ReturnReason, ReturnDisposition, ReturnLine
from .audit import AuditLog

__all__ = [
    # Inventory models
    'Product', 'Batch', 'BatchStatus',
    'Item', 'ItemStatus', 'ItemEvent',

    # Order models
    'Order', 'OrderStatus', 'OrderLine',

    # Package models
    'Package', 'PackageStatus', 'PackageAllocation',

    # Transport models
    'Transport', 'TransportType', 'TransportStatus', 'TransportStatusEntry',

    # Return models
    'ReturnRequest', 'ReturnStatus', 'ReturnReason', 'ReturnDisposition', 'ReturnLine',

    # Audit
    'AuditLog',
]
