"""
Order Service for the fulfillment pipeline.

Handles order intake and the processing step that turns an order into a
package of allocated items.
"""

import logging
from typing import Dict, Any
from django.conf import settings
from django.db import transaction

from ..models import Order, OrderLine, OrderStatus, Product
from ..exceptions import InvalidStateTransition, NotFound, ValidationException
from .allocation_service import AllocationService
from .audit import record_audit
from .packing_service import PackingService
from .workflow import OrderWorkflow

logger = logging.getLogger(__name__)


class OrderService:
    """Service class for order operations."""

    @staticmethod
    def create_order(order_data: Dict[str, Any], created_by=None) -> Order:
        """
        Create a new order with lines.

        Args:
            order_data: Order data including lines, warehouse_id, customer_id
            created_by: Id of the user creating the order

        Returns:
            Created Order instance

        Raises:
            ValidationException: If order data is invalid
        """
        lines_data = order_data.get('lines', [])
        if not lines_data:
            raise ValidationException("Order must contain at least one line")

        with transaction.atomic():
            order = Order.objects.create(
                customer_id=order_data.get('customer_id', ''),
                warehouse_id=order_data.get('warehouse_id') or settings.FULFILLMENT_DEFAULT_WAREHOUSE,
                notes=order_data.get('notes', ''),
            )

            for position, line_data in enumerate(lines_data):
                try:
                    product = Product.objects.get(id=line_data['product_id'])
                except Product.DoesNotExist:
                    raise NotFound("Product", line_data['product_id'])

                if int(line_data['quantity']) <= 0:
                    raise ValidationException("Quantity must be positive", {'product_id': str(product.id)})

                OrderLine.objects.create(
                    order=order,
                    product=product,
                    quantity=int(line_data['quantity']),
                    unit_price=line_data.get('unit_price', product.unit_price),
                    position=position,
                )

        record_audit(
            user_id=created_by,
            action='order_created',
            entity_type='Order',
            entity_id=order.id,
            value={'order_number': order.order_number, 'line_count': len(lines_data)},
        )

        logger.info(f"Order {order.order_number} created with {len(lines_data)} lines")
        return order

    @staticmethod
    def process_order(order_id: str, processed_by, notes: str = "") -> Dict[str, Any]:
        """
        Allocate items for an order and create its package.

        Allocation and package creation share one transaction: either the
        items are allocated and packaged, or nothing changes.

        Args:
            order_id: Order UUID
            processed_by: Id of the user processing the order
            notes: Optional package notes

        Returns:
            ``{'order': Order, 'package': Package}``

        Raises:
            NotFound: If the order does not exist
            InvalidStateTransition: If the order is not pending or confirmed
            InsufficientStock: If any line cannot be satisfied
        """
        with transaction.atomic():
            try:
                order = Order.objects.select_for_update().get(id=order_id)
            except Order.DoesNotExist:
                raise NotFound("Order", order_id)

            if not OrderWorkflow.can_transition_to(order.status, OrderStatus.PROCESSING):
                raise InvalidStateTransition(
                    current_status=order.status,
                    attempted_status=OrderStatus.PROCESSING,
                    entity_type="Order",
                    message=f"Order {order.order_number} is {order.status}; only pending or confirmed orders can be processed"
                )

            allocations = AllocationService.allocate(str(order.id), processed_by)
            package = PackingService.create_package(order, allocations, processed_by, notes)

            old_status = order.status
            Order.objects.filter(id=order.id, status=old_status).update(status=OrderStatus.PROCESSING)
            order.refresh_from_db()

        record_audit(
            user_id=processed_by,
            action='order_processed',
            entity_type='Order',
            entity_id=order.id,
            value={
                'old_status': old_status,
                'new_status': OrderStatus.PROCESSING,
                'package_number': package.package_number,
            },
            details=notes,
        )

        logger.info(f"Order {order.order_number} processed into package {package.package_number}")
        return {'order': order, 'package': package}

    @staticmethod
    def get_order_summary(order_id: str) -> Dict[str, Any]:
        """
        Get fulfillment summary for an order.

        Args:
            order_id: Order UUID

        Returns:
            Order summary with package statuses
        """
        try:
            order = Order.objects.prefetch_related('lines__product', 'packages').get(id=order_id)
        except Order.DoesNotExist:
            raise NotFound("Order", order_id)

        return {
            'order_id': order.id,
            'order_number': order.order_number,
            'status': order.status,
            'total_amount': order.total_amount,
            'lines': [
                {'product_sku': line.product.sku, 'quantity': line.quantity}
                for line in order.lines.all()
            ],
            'packages': [
                {
                    'package_id': package.id,
                    'package_number': package.package_number,
                    'status': package.status,
                }
                for package in order.packages.all()
            ],
        }
