"""
Order status aggregation.

Derives an order's status from the statuses of all its packages. Derived
statuses only move forward; re-running the aggregation is always safe.
"""

import logging
from django.db import transaction

from ..exceptions import NotFound
from ..models import Order, OrderStatus, PackageStatus
from .audit import record_audit
from .workflow import OrderWorkflow, PackageWorkflow

logger = logging.getLogger(__name__)


def derive_order_status(package_statuses) -> str:
    """
    Compute the status implied by a collection of package statuses.

    Returns:
        The implied OrderStatus, or None if the packages imply nothing yet
    """
    statuses = list(package_statuses)
    if not statuses:
        return None

    if all(status == PackageStatus.RETURNED for status in statuses):
        return OrderStatus.RETURNED
    if all(status in PackageWorkflow.TERMINAL_STATES for status in statuses):
        return OrderStatus.DELIVERED
    if any(PackageWorkflow.reached(status, PackageStatus.DISPATCHED) for status in statuses):
        return OrderStatus.DISPATCHED
    if all(PackageWorkflow.reached(status, PackageStatus.READY_FOR_DISPATCH) for status in statuses):
        return OrderStatus.PACKAGED
    return None


class OrderStatusAggregator:
    """Keeps an order's status in step with its packages."""

    @staticmethod
    def refresh(order_id, updated_by=None, reason: str = "") -> Order:
        """
        Re-derive and, if it moves forward, apply the order status.

        Args:
            order_id: Order UUID
            updated_by: Id of the user whose action triggered the refresh
            reason: Short note stored in the audit record

        Returns:
            The (possibly updated) Order
        """
        with transaction.atomic():
            try:
                order = Order.objects.select_for_update().get(id=order_id)
            except Order.DoesNotExist:
                raise NotFound("Order", order_id)

            if order.status == OrderStatus.CANCELLED:
                return order

            target = derive_order_status(order.packages.values_list('status', flat=True))
            if target is None or not OrderWorkflow.is_advance(order.status, target):
                return order

            old_status = order.status
            updated = Order.objects.filter(id=order.id, status=old_status).update(status=target)
            if not updated:
                # A concurrent refresh already moved the order
                order.refresh_from_db()
                return order
            order.status = target

        record_audit(
            user_id=updated_by,
            action='order_status_derived',
            entity_type='Order',
            entity_id=order.id,
            value={'old_status': old_status, 'new_status': target},
            details=reason,
        )

        logger.info(f"Order {order.order_number} moved from {old_status} to {target}")
        return order
