"""
Return Service for the fulfillment pipeline.

Drives a return through initiated, pickup_scheduled, picked_up, received and
processed, and re-integrates the returned items into inventory.
"""

import logging
from typing import List, Dict, Any
from django.db import transaction
from django.utils import timezone

from ..models import (
    Batch, ItemStatus, Package, PackageStatus,
    ReturnRequest, ReturnStatus, ReturnReason, ReturnDisposition, ReturnLine,
    TransportStatus, TransportType
)
from ..exceptions import InvalidReturnItems, InvalidStateTransition, NotFound, ValidationException
from .audit import record_audit
from .ledger import ItemLedger
from .order_status import OrderStatusAggregator
from .restock import must_hold, release_held_restocks, restock_items
from .transport_service import TransportService
from .workflow import validate_return_workflow

logger = logging.getLogger(__name__)

RETURNABLE_PACKAGE_STATES = [PackageStatus.IN_TRANSIT, PackageStatus.DELIVERED]


class ReturnService:
    """Service class for return operations."""

    @staticmethod
    def initiate(package_id: str, returned_items: List[Dict[str, Any]], reason: str,
                 initiated_by, notes: str = "") -> ReturnRequest:
        """
        Open a return against a shipped package.

        Each entry of ``returned_items`` is ``{product_id, batch_id, quantity,
        item_ids?}`` and must match what the package shipped. Without
        ``item_ids`` the first items of the entry not yet claimed by another
        return are taken.

        Args:
            package_id: Package UUID
            returned_items: Returned lines
            reason: One of ReturnReason
            initiated_by: Id of the user opening the return
            notes: Optional notes

        Returns:
            Created ReturnRequest in ``initiated``

        Raises:
            NotFound: If the package does not exist
            InvalidStateTransition: If the package is not in transit or delivered
            InvalidReturnItems: If the items do not match the package
        """
        if reason not in ReturnReason.values:
            raise ValidationException("Invalid return reason", {'reason': reason})
        if not returned_items:
            raise InvalidReturnItems("At least one returned item is required")

        with transaction.atomic():
            try:
                package = Package.objects.select_for_update().select_related('order').get(id=package_id)
            except Package.DoesNotExist:
                raise NotFound("Package", package_id)

            if package.status not in RETURNABLE_PACKAGE_STATES:
                raise InvalidStateTransition(
                    current_status=package.status,
                    attempted_status=PackageStatus.RETURNED,
                    message=(
                        f"Package {package.package_number} is {package.status}; "
                        f"returns are only accepted for in-transit or delivered packages"
                    )
                )

            lines = ReturnService._match_lines(package, returned_items)

            return_request = ReturnRequest.objects.create(
                package=package,
                order=package.order,
                warehouse_id=package.order.warehouse_id,
                reason=reason,
                initiated_by=str(initiated_by or ''),
                notes=notes or '',
            )
            for line in lines:
                return_line = ReturnLine.objects.create(
                    return_request=return_request,
                    product_id=line['product_id'],
                    batch_id=line['batch_id'],
                    quantity=line['quantity'],
                )
                return_line.items.set(line['item_ids'])

        record_audit(
            user_id=initiated_by,
            action='return_initiated',
            entity_type='Return',
            entity_id=return_request.id,
            value={
                'return_number': return_request.return_number,
                'package_id': package.id,
                'reason': reason,
                'lines': [
                    {'product_id': line['product_id'], 'batch_id': line['batch_id'], 'quantity': line['quantity']}
                    for line in lines
                ],
            },
            details=notes,
        )

        logger.info(f"Return {return_request.return_number} initiated for package {package.package_number}")
        return return_request

    @staticmethod
    def _match_lines(package: Package, returned_items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Resolve requested lines against the package allocations and prior returns."""
        pools = {}
        for allocation in package.allocations.prefetch_related('items').order_by('position'):
            key = (str(allocation.product_id), str(allocation.batch_id))
            pool = pools.setdefault(key, {
                'product_id': allocation.product_id,
                'batch_id': allocation.batch_id,
                'items': {},
            })
            for item in sorted(allocation.items.all(), key=lambda item: item.serial_number):
                pool['items'][str(item.id)] = item.id

        claimed = {
            str(item_id) for item_id in ReturnLine.objects.filter(
                return_request__package=package
            ).values_list('items', flat=True) if item_id is not None
        }

        lines = []
        for entry in returned_items:
            key = (str(entry.get('product_id')), str(entry.get('batch_id')))
            pool = pools.get(key)
            if pool is None:
                raise InvalidReturnItems(
                    f"Product {key[0]} from batch {key[1]} was not shipped in package {package.package_number}",
                    {'product_id': key[0], 'batch_id': key[1]}
                )

            try:
                quantity = int(entry.get('quantity'))
            except (TypeError, ValueError):
                quantity = 0
            if quantity <= 0:
                raise InvalidReturnItems("Returned quantity must be positive", {'product_id': key[0]})

            returnable = [item_id for item_id in pool['items'] if item_id not in claimed]
            requested_ids = entry.get('item_ids')

            if requested_ids:
                requested_ids = [str(item_id) for item_id in dict.fromkeys(map(str, requested_ids))]
                if len(requested_ids) != quantity:
                    raise InvalidReturnItems(
                        "Number of item ids must equal the returned quantity",
                        {'product_id': key[0], 'quantity': quantity, 'item_count': len(requested_ids)}
                    )
                foreign = [item_id for item_id in requested_ids if item_id not in pool['items']]
                if foreign:
                    raise InvalidReturnItems(
                        f"Item {foreign[0]} was not shipped in package {package.package_number} for this product and batch",
                        {'item_id': foreign[0]}
                    )
                taken = [item_id for item_id in requested_ids if item_id in claimed]
                if taken:
                    raise InvalidReturnItems(
                        f"Item {taken[0]} is already part of another return",
                        {'item_id': taken[0]}
                    )
                chosen = requested_ids
            else:
                if quantity > len(returnable):
                    raise InvalidReturnItems(
                        f"Returned quantity {quantity} exceeds the {len(returnable)} returnable items "
                        f"of product {key[0]} in package {package.package_number}",
                        {'product_id': key[0], 'requested_quantity': quantity, 'returnable_quantity': len(returnable)}
                    )
                chosen = returnable[:quantity]

            claimed.update(chosen)
            lines.append({
                'product_id': pool['product_id'],
                'batch_id': pool['batch_id'],
                'quantity': quantity,
                'item_ids': [pool['items'][item_id] for item_id in chosen],
            })

        return lines

    @staticmethod
    def schedule_pickup(return_id: str, transporter_id: str, scheduled_by, notes: str = "") -> ReturnRequest:
        """
        Schedule the reverse pickup of a return.

        Raises:
            NotFound: If the return does not exist
            InvalidStateTransition: If the return is not ``initiated``
        """
        with transaction.atomic():
            return_request = ReturnService._lock(return_id)
            old_status = return_request.status
            validate_return_workflow(old_status, ReturnStatus.PICKUP_SCHEDULED)

            transport = TransportService.create_reverse(return_request, transporter_id, scheduled_by, notes)
            ReturnService._move(return_request, ReturnStatus.PICKUP_SCHEDULED)

        record_audit(
            user_id=scheduled_by,
            action='return_pickup_scheduled',
            entity_type='Return',
            entity_id=return_request.id,
            value={
                'old_status': old_status,
                'new_status': ReturnStatus.PICKUP_SCHEDULED,
                'transport_id': transport.id,
                'transporter_id': transport.transporter_id,
            },
            details=notes,
        )

        logger.info(f"Pickup scheduled for return {return_request.return_number} with {transporter_id}")
        return return_request

    @staticmethod
    def mark_picked_up(return_id: str, updated_by, notes: str = "") -> ReturnRequest:
        """
        Record that the transporter collected the returned items.

        The items move to ``returned`` and the reverse transport to ``in_transit``.
        """
        with transaction.atomic():
            return_request = ReturnService._lock(return_id)
            old_status = return_request.status
            validate_return_workflow(old_status, ReturnStatus.PICKED_UP)

            ReturnService._move(return_request, ReturnStatus.PICKED_UP)
            ItemLedger.transition(
                return_request.item_ids,
                ItemStatus.RETURNED,
                notes=notes or f"Picked up for return {return_request.return_number}",
                location="Reverse pickup",
                from_statuses=[ItemStatus.DISPATCHED, ItemStatus.DELIVERED],
            )

            transport = ReturnService._reverse_transport(return_request)
            if transport is not None and transport.status == TransportStatus.DISPATCHED:
                TransportService.update_status(str(transport.id), TransportStatus.IN_TRANSIT, updated_by, notes)

        record_audit(
            user_id=updated_by,
            action='return_picked_up',
            entity_type='Return',
            entity_id=return_request.id,
            value={
                'old_status': old_status,
                'new_status': ReturnStatus.PICKED_UP,
                'item_count': len(return_request.item_ids),
            },
            details=notes,
        )

        logger.info(f"Return {return_request.return_number} picked up")
        return return_request

    @staticmethod
    def mark_received(return_id: str, received_by, notes: str = "") -> ReturnRequest:
        """
        Record that the returned items arrived back at the warehouse.

        Completes the reverse transport if it is still in transit.
        """
        with transaction.atomic():
            return_request = ReturnService._lock(return_id)
            old_status = return_request.status
            validate_return_workflow(old_status, ReturnStatus.RECEIVED)

            ReturnService._move(return_request, ReturnStatus.RECEIVED, received_date=timezone.now())

            transport = ReturnService._reverse_transport(return_request)
            if transport is not None and transport.status == TransportStatus.IN_TRANSIT:
                TransportService.update_status(str(transport.id), TransportStatus.DELIVERED, received_by, notes)

        record_audit(
            user_id=received_by,
            action='return_received',
            entity_type='Return',
            entity_id=return_request.id,
            value={'old_status': old_status, 'new_status': ReturnStatus.RECEIVED},
            details=notes,
        )

        logger.info(f"Return {return_request.return_number} received")
        return return_request

    @staticmethod
    def process(return_id: str, disposition: str, processed_by, notes: str = "") -> ReturnRequest:
        """
        Apply the final disposition to a picked-up or received return.

        Restocked items go back to ``in_stock`` in their batch, reactivating a
        depleted batch; items of an expired batch stay ``restocked``, and so do
        items of a package still in transit until it is delivered or returned.
        Damaged items become ``damaged``. Once every item of the package is covered by
        a processed return the package becomes ``returned``.

        Args:
            return_id: Return UUID
            disposition: ``restocked`` or ``damaged``
            processed_by: Id of the processing user
            notes: Optional notes

        Returns:
            Processed ReturnRequest

        Raises:
            NotFound: If the return does not exist
            ValidationException: If the disposition is unknown
            InvalidStateTransition: If the return is not picked up or received
        """
        if disposition not in ReturnDisposition.values:
            raise ValidationException("Invalid disposition", {'disposition': disposition})

        with transaction.atomic():
            return_request = ReturnService._lock(return_id)
            old_status = return_request.status
            validate_return_workflow(old_status, ReturnStatus.PROCESSED)

            ReturnService._move(
                return_request,
                ReturnStatus.PROCESSED,
                disposition=disposition,
                processed_by=str(processed_by or ''),
                processed_date=timezone.now(),
            )

            outcome = ReturnService._apply_disposition(return_request, disposition, notes)
            package = ReturnService._close_package(return_request.package_id)
            if package is not None:
                outcome["released"] = release_held_restocks(package)

        record_audit(
            user_id=processed_by,
            action='return_processed',
            entity_type='Return',
            entity_id=return_request.id,
            value={
                'old_status': old_status,
                'new_status': ReturnStatus.PROCESSED,
                'disposition': disposition,
                'items': outcome,
            },
            details=notes,
        )

        if package is not None:
            record_audit(
                user_id=processed_by,
                action='package_returned',
                entity_type='Package',
                entity_id=package.id,
                value={'new_status': PackageStatus.RETURNED, 'return_id': return_request.id},
                details=f"All items of package {package.package_number} returned",
            )
            OrderStatusAggregator.refresh(
                package.order_id, processed_by, f"Package {package.package_number} returned"
            )

        logger.info(f"Return {return_request.return_number} processed as {disposition}")
        return return_request

    @staticmethod
    def _apply_disposition(return_request: ReturnRequest, disposition: str, notes: str) -> Dict[str, int]:
        outcome = {"in_stock": 0, "restocked": 0, "damaged": 0}
        package = Package.objects.get(id=return_request.package_id)
        hold = must_hold(package)

        for line in return_request.lines.select_related('batch').prefetch_related('items'):
            item_ids = [item.id for item in line.items.all()]

            if disposition == ReturnDisposition.DAMAGED:
                ItemLedger.transition(
                    item_ids, ItemStatus.DAMAGED,
                    notes=notes or f"Damaged on return {return_request.return_number}",
                    location="Returns", from_statuses=[ItemStatus.RETURNED],
                )
                outcome["damaged"] += len(item_ids)
                continue

            batch = Batch.objects.select_for_update().get(id=line.batch_id)
            if batch.is_expired:
                ItemLedger.transition(
                    item_ids, ItemStatus.RESTOCKED,
                    notes=notes or f"Batch {batch.batch_number} expired; held as restocked",
                    location="Returns", from_statuses=[ItemStatus.RETURNED],
                )
                outcome["restocked"] += len(item_ids)
                continue

            if hold:
                ItemLedger.transition(
                    item_ids, ItemStatus.RESTOCKED, action='restock_held',
                    notes=notes or f"Held until package {package.package_number} is delivered or returned",
                    location="Returns", from_statuses=[ItemStatus.RETURNED],
                )
                outcome["restocked"] += len(item_ids)
                continue

            restock_items(
                item_ids, batch,
                notes or f"Restocked from return {return_request.return_number}",
                ItemStatus.RETURNED,
            )
            outcome["in_stock"] += len(item_ids)

        return outcome

    @staticmethod
    def _close_package(package_id):
        """Move the package to ``returned`` when processed returns cover all its items."""
        package = Package.objects.select_for_update().get(id=package_id)
        if package.status not in RETURNABLE_PACKAGE_STATES:
            return None

        returned_ids = set(
            ReturnLine.objects.filter(
                return_request__package=package,
                return_request__status=ReturnStatus.PROCESSED
            ).values_list('items', flat=True)
        )
        if not set(package.item_ids) <= returned_ids:
            return None

        updated = Package.objects.filter(
            id=package.id, status=package.status
        ).update(status=PackageStatus.RETURNED, updated_at=timezone.now())
        if not updated:
            return None
        package.status = PackageStatus.RETURNED
        return package

    @staticmethod
    def _lock(return_id) -> ReturnRequest:
        """Lock the return's package, then the return itself."""
        package_id = ReturnRequest.objects.filter(id=return_id).values_list('package_id', flat=True).first()
        if package_id is None:
            raise NotFound("Return", return_id)

        Package.objects.select_for_update().get(id=package_id)
        return ReturnRequest.objects.select_for_update().get(id=return_id)

    @staticmethod
    def _reverse_transport(return_request: ReturnRequest):
        return return_request.transports.filter(
            transport_type=TransportType.REVERSE, is_active=True
        ).first()

    @staticmethod
    def _move(return_request: ReturnRequest, new_status: str, **fields) -> None:
        """Guarded return status write; a lost race re-reads and raises."""
        updated = ReturnRequest.objects.filter(
            id=return_request.id, status=return_request.status
        ).update(status=new_status, updated_at=timezone.now(), **fields)
        if not updated:
            return_request.refresh_from_db()
            raise InvalidStateTransition(
                current_status=return_request.status,
                attempted_status=new_status,
                entity_type="Return"
            )
        return_request.refresh_from_db()
