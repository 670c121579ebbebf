"""
Order Fulfillment & Returns Services
"""

from .workflow import (
    validate_package_workflow, validate_transport_workflow, validate_return_workflow
)
from .audit import record_audit
from .ledger import ItemLedger
from .allocation_service import AllocationService
from .packing_service import PackingService
from .order_status import OrderStatusAggregator, derive_order_status
from .order_service import OrderService
from .transport_service import TransportService
from .return_service import ReturnService

__all__ = [
    # Workflow validators
    'validate_package_workflow', 'validate_transport_workflow', 'validate_return_workflow',

    # Services
    'record_audit', 'ItemLedger', 'AllocationService', 'PackingService',
    'OrderStatusAggregator', 'derive_order_status', 'OrderService',
    'TransportService', 'ReturnService',
]
