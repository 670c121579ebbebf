"""
Packing Service for the fulfillment pipeline.

Handles package creation from allocations and the packing transition.
"""

import logging
from decimal import Decimal
from typing import List, Dict, Any
from django.db import transaction
from django.utils import timezone

from ..models import (
    Order, Product, Package, PackageAllocation, PackageStatus, ItemStatus
)
from ..exceptions import AlreadyPacked, NotFound, ValidationException
from .audit import record_audit
from .ledger import ItemLedger
from .order_status import OrderStatusAggregator
from .workflow import validate_package_workflow

logger = logging.getLogger(__name__)


class PackingService:
    """Service class for package operations."""

    @staticmethod
    def create_package(order: Order, allocations: List[Dict[str, Any]], created_by, notes: str = "") -> Package:
        """
        Create a package in status ``created`` from an allocation list.

        Totals are computed here from product unit values and never change
        afterwards.

        Args:
            order: Order the package belongs to
            allocations: ``[{product_id, batch_id, quantity, item_ids}, ...]``
            created_by: Id of the user creating the package
            notes: Optional package notes

        Returns:
            Created Package instance

        Raises:
            ValidationException: If an entry's quantity does not match its items
        """
        if not allocations:
            raise ValidationException("Cannot create a package without allocations")

        products = Product.objects.in_bulk({entry['product_id'] for entry in allocations})

        total_weight = Decimal('0.000')
        total_volume = Decimal('0.000')
        total_value = Decimal('0.00')
        for entry in allocations:
            if entry['quantity'] != len(entry['item_ids']):
                raise ValidationException(
                    "Allocation quantity must equal the number of referenced items",
                    {'batch_id': str(entry['batch_id'])}
                )
            product = products[entry['product_id']]
            total_weight += product.unit_weight * entry['quantity']
            total_volume += product.unit_volume * entry['quantity']
            total_value += product.unit_price * entry['quantity']

        with transaction.atomic():
            package = Package.objects.create(
                order=order,
                total_weight=total_weight,
                total_volume=total_volume,
                total_value=total_value,
                created_by=str(created_by or ''),
                notes=notes or '',
            )

            for position, entry in enumerate(allocations):
                allocation = PackageAllocation.objects.create(
                    package=package,
                    product_id=entry['product_id'],
                    batch_id=entry['batch_id'],
                    quantity=entry['quantity'],
                    position=position,
                )
                allocation.items.set(entry['item_ids'])

        record_audit(
            user_id=created_by,
            action='package_created',
            entity_type='Package',
            entity_id=package.id,
            value={
                'package_number': package.package_number,
                'order_id': order.id,
                'total_weight': total_weight,
                'total_volume': total_volume,
                'total_value': total_value,
            },
            details=f"Package {package.package_number} created with {len(allocations)} allocations",
        )

        logger.info(f"Package {package.package_number} created for order {order.order_number}")
        return package

    @staticmethod
    def pack(package_id: str, packed_by, notes: str = "") -> Package:
        """
        Pack a package: ``created`` to ``ready_for_dispatch``.

        Args:
            package_id: Package UUID
            packed_by: Id of the packer
            notes: Optional notes stored on the package and item history

        Returns:
            Packed Package instance

        Raises:
            NotFound: If the package does not exist
            AlreadyPacked: If the package is already ready for dispatch
            InvalidStateTransition: If the package is in any other non-created status
        """
        with transaction.atomic():
            try:
                package = Package.objects.select_for_update().get(id=package_id)
            except Package.DoesNotExist:
                raise NotFound("Package", package_id)

            PackingService._check_packable(package)

            packed_at = timezone.now()
            fields = {
                'status': PackageStatus.READY_FOR_DISPATCH,
                'packed_by': str(packed_by or ''),
                'packed_at': packed_at,
                'updated_at': packed_at,
            }
            if notes:
                fields['notes'] = notes

            # Guarded write: only one concurrent pack can see status=created
            updated = Package.objects.filter(
                id=package.id, status=PackageStatus.CREATED
            ).update(**fields)
            if not updated:
                package.refresh_from_db()
                PackingService._check_packable(package)
                raise AlreadyPacked(package.package_number)

            ItemLedger.transition(
                package.item_ids,
                ItemStatus.PACKED,
                notes=notes or f"Packed into {package.package_number}",
                from_statuses=[ItemStatus.ALLOCATED],
            )

            package.refresh_from_db()

        record_audit(
            user_id=packed_by,
            action='package_packed',
            entity_type='Package',
            entity_id=package.id,
            value={
                'old_status': PackageStatus.CREATED,
                'new_status': PackageStatus.READY_FOR_DISPATCH,
                'item_count': package.total_quantity,
            },
            details=notes,
        )

        # Runs only after the package transition above has committed
        OrderStatusAggregator.refresh(package.order_id, packed_by, f"Package {package.package_number} packed")

        logger.info(f"Package {package.package_number} packed by {packed_by}")
        return package

    @staticmethod
    def pack_order(order_id: str, packed_by, notes: str = "") -> List[Package]:
        """
        Pack every ``created`` package of an order.

        Raises:
            NotFound: If the order does not exist or has no packages
            AlreadyPacked: If no package is left in ``created``
        """
        if not Order.objects.filter(id=order_id).exists():
            raise NotFound("Order", order_id)

        packages = list(Package.objects.filter(order_id=order_id).order_by('created_at'))
        if not packages:
            raise NotFound("Package", f"order {order_id}")

        pending = [package for package in packages if package.status == PackageStatus.CREATED]
        if not pending:
            PackingService._check_packable(packages[0])

        return [PackingService.pack(str(package.id), packed_by, notes) for package in pending]

    @staticmethod
    def _check_packable(package: Package) -> None:
        if package.status == PackageStatus.READY_FOR_DISPATCH:
            raise AlreadyPacked(package.package_number)
        if package.status != PackageStatus.CREATED:
            validate_package_workflow(package.status, PackageStatus.READY_FOR_DISPATCH)

    @staticmethod
    def get_package_summary(package_id: str) -> Dict[str, Any]:
        """
        Get package summary with allocations and item statuses.

        Args:
            package_id: Package UUID

        Returns:
            Package summary
        """
        try:
            package = Package.objects.prefetch_related(
                'allocations__product', 'allocations__batch', 'allocations__items'
            ).get(id=package_id)
        except Package.DoesNotExist:
            raise NotFound("Package", package_id)

        summary = {
            'package_id': package.id,
            'package_number': package.package_number,
            'status': package.status,
            'total_weight': package.total_weight,
            'total_volume': package.total_volume,
            'total_value': package.total_value,
            'allocations': []
        }

        for allocation in package.allocations.all():
            summary['allocations'].append({
                'product_sku': allocation.product.sku,
                'batch_number': allocation.batch.batch_number,
                'quantity': allocation.quantity,
                'items': [
                    {'item_id': item.id, 'serial_number': item.serial_number, 'status': item.status}
                    for item in allocation.items.all()
                ]
            })

        return summary
