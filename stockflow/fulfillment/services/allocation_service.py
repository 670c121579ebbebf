"""
Allocation Service for the fulfillment pipeline.

Selects in-stock items for order lines (FIFO by expiry, then received date)
and reserves them in the item ledger.
"""

import logging
from typing import List, Dict, Any
from django.db import transaction
from django.db.models import F, Q
from django.utils import timezone

from ..models import Order, Product, Batch, BatchStatus, Item, ItemStatus
from ..exceptions import InsufficientStock, InvalidStateTransition, ValidationException, NotFound
from .ledger import ItemLedger
from .audit import record_audit

logger = logging.getLogger(__name__)


class AllocationService:
    """Service class for batch and item allocation."""

    @staticmethod
    def allocate(order_id: str, allocated_by) -> List[Dict[str, Any]]:
        """
        Allocate in-stock items for every line of an order.

        Args:
            order_id: Order UUID
            allocated_by: Id of the user performing allocation

        Returns:
            Allocation list consumed by the packing service

        Raises:
            NotFound: If the order does not exist
            InsufficientStock: If any line cannot be satisfied
        """
        try:
            order = Order.objects.prefetch_related('lines').get(id=order_id)
        except Order.DoesNotExist:
            raise NotFound("Order", order_id)

        lines = [
            {'product_id': line.product_id, 'quantity': line.quantity}
            for line in order.lines.all()
        ]
        return AllocationService.allocate_lines(
            lines, allocated_by, reference=order.order_number,
            warehouse_id=order.warehouse_id, order_id=order.id
        )

    @staticmethod
    def allocate_lines(lines: List[Dict[str, Any]], allocated_by, reference: str = "",
                       warehouse_id: str = None, order_id=None) -> List[Dict[str, Any]]:
        """
        Allocate items for an ordered list of ``{product_id, quantity}``.

        The whole list is planned before any item is touched, so a shortfall on
        any line leaves every item unchanged.
        """
        if not lines:
            raise ValidationException("At least one order line is required")

        with transaction.atomic():
            plan = AllocationService.plan_allocation(lines, warehouse_id=warehouse_id)

            all_item_ids = [item_id for entry in plan for item_id in entry['item_ids']]
            try:
                ItemLedger.transition(
                    all_item_ids,
                    ItemStatus.ALLOCATED,
                    notes=f"Allocated for order {reference}" if reference else "Allocated",
                    location="Processing",
                    from_statuses=[ItemStatus.IN_STOCK],
                )
            except (InvalidStateTransition, NotFound):
                # Another request reserved some of the planned items first
                logger.warning("Allocation for %s lost a race; rolling back", reference or "order")
                product_id = AllocationService._contested_product(plan, all_item_ids)
                raise InsufficientStock(
                    AllocationService._sku(product_id),
                    sum(entry['quantity'] for entry in plan if entry['product_id'] == product_id),
                    AllocationService._available(product_id, warehouse_id)
                )

            AllocationService._mark_depleted_batches({entry['batch_id'] for entry in plan})

        record_audit(
            user_id=allocated_by,
            action='items_allocated',
            entity_type='Order',
            entity_id=order_id or reference,
            value={
                'allocations': [
                    {
                        'product_id': entry['product_id'],
                        'batch_id': entry['batch_id'],
                        'quantity': entry['quantity'],
                    } for entry in plan
                ],
                'item_count': len(all_item_ids),
            },
            details=f"Allocated {len(all_item_ids)} items",
        )

        logger.info(f"Allocated {len(all_item_ids)} items in {len(plan)} entries for {reference or 'order'}")
        return plan

    @staticmethod
    def plan_allocation(lines: List[Dict[str, Any]], warehouse_id: str = None) -> List[Dict[str, Any]]:
        """
        Choose items for each line without changing anything.

        Args:
            lines: Ordered ``[{product_id, quantity}, ...]``
            warehouse_id: Restrict to batches held in this warehouse

        Returns:
            ``[{product_id, batch_id, quantity, item_ids}, ...]`` in line order

        Raises:
            InsufficientStock: Naming the first line that cannot be satisfied
        """
        plan = []
        taken = set()

        for line in lines:
            product_id = line['product_id']
            requested = int(line['quantity'])
            if requested <= 0:
                raise ValidationException("Quantity must be positive", {'product_id': str(product_id)})

            remaining = requested
            line_entries = []

            for batch in AllocationService.candidate_batches(product_id, warehouse_id):
                if remaining <= 0:
                    break

                item_ids = list(
                    Item.objects.filter(batch=batch, status=ItemStatus.IN_STOCK)
                    .exclude(id__in=taken)
                    .order_by('created_at', 'serial_number')
                    .values_list('id', flat=True)[:remaining]
                )
                if not item_ids:
                    continue

                taken.update(item_ids)
                line_entries.append({
                    'product_id': product_id,
                    'batch_id': batch.id,
                    'quantity': len(item_ids),
                    'item_ids': item_ids,
                })
                remaining -= len(item_ids)

            if remaining > 0:
                raise InsufficientStock(
                    AllocationService._sku(product_id), requested, requested - remaining
                )

            plan.extend(line_entries)

        return plan

    @staticmethod
    def candidate_batches(product_id, warehouse_id: str = None):
        """
        Open batches of a product, soonest expiry first.

        Batches without an expiry date come after dated ones; ties are broken
        by the earliest received date.
        """
        today = timezone.now().date()
        batches = Batch.objects.filter(
            product_id=product_id,
            status=BatchStatus.ACTIVE,
        ).filter(Q(exp_date__isnull=True) | Q(exp_date__gte=today))

        if warehouse_id:
            batches = batches.filter(warehouse_id=warehouse_id)

        return batches.order_by(F('exp_date').asc(nulls_last=True), 'received_at')

    @staticmethod
    def _mark_depleted_batches(batch_ids) -> None:
        for batch_id in batch_ids:
            if not Item.objects.filter(batch_id=batch_id, status=ItemStatus.IN_STOCK).exists():
                Batch.objects.filter(id=batch_id, status=BatchStatus.ACTIVE).update(status=BatchStatus.DEPLETED)

    @staticmethod
    def _available(product_id, warehouse_id: str = None) -> int:
        items = Item.objects.filter(product_id=product_id, status=ItemStatus.IN_STOCK)
        if warehouse_id:
            items = items.filter(batch__warehouse_id=warehouse_id)
        return items.count()

    @staticmethod
    def _sku(product_id) -> str:
        sku = Product.objects.filter(id=product_id).values_list('sku', flat=True).first()
        return sku or str(product_id)

    @staticmethod
    def _contested_product(plan: List[Dict[str, Any]], item_ids):
        """Product of the first planned entry whose items are no longer in stock."""
        taken = {
            str(item_id) for item_id in Item.objects.filter(id__in=item_ids)
            .exclude(status=ItemStatus.IN_STOCK).values_list('id', flat=True)
        }
        for entry in plan:
            if any(str(item_id) in taken for item_id in entry['item_ids']):
                return entry['product_id']
        return plan[0]['product_id']
