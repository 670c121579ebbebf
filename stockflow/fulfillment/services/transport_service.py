"""
Transport Service for the fulfillment pipeline.

Handles transporter assignment for packed packages, reverse pickups for
returns, and the status updates reported by transporters.
"""

import logging
from typing import Optional
from django.db import transaction
from django.utils import timezone

from ..models import (
    Package, PackageStatus, Item, ItemStatus, ReturnLine, ReturnRequest, ReturnStatus,
    Transport, TransportStatus, TransportStatusEntry, TransportType
)
from ..exceptions import InvalidStateTransition, NotFound, TerminalPackageState
from .audit import record_audit
from .ledger import ItemLedger
from .order_status import OrderStatusAggregator
from .restock import release_held_restocks
from .workflow import PackageWorkflow, validate_package_workflow, validate_transport_workflow

logger = logging.getLogger(__name__)

PICKED_UP_RETURN_STATES = [ReturnStatus.PICKED_UP, ReturnStatus.RECEIVED, ReturnStatus.PROCESSED]


class TransportService:
    """Service class for transport operations."""

    @staticmethod
    def assign(package_id: str, transporter_id: str, assigned_by, notes: str = "") -> Transport:
        """
        Assign a transporter to a packed package.

        Any active forward transport of the package is superseded. The package
        and its items only move to ``dispatched`` on the first assignment.

        Args:
            package_id: Package UUID
            transporter_id: Id of the transporter taking the package
            assigned_by: Id of the user making the assignment
            notes: Optional assignment notes

        Returns:
            Created Transport instance

        Raises:
            NotFound: If the package does not exist
            TerminalPackageState: If the package is delivered or returned
            InvalidStateTransition: If the package has not been packed yet
        """
        with transaction.atomic():
            try:
                package = Package.objects.select_for_update().get(id=package_id)
            except Package.DoesNotExist:
                raise NotFound("Package", package_id)

            if package.status in PackageWorkflow.TERMINAL_STATES:
                raise TerminalPackageState(package.package_number, package.status)
            if package.status == PackageStatus.CREATED:
                raise InvalidStateTransition(
                    current_status=package.status,
                    attempted_status=PackageStatus.DISPATCHED,
                    message=f"Package {package.package_number} must be packed before a transporter is assigned"
                )

            now = timezone.now()
            superseded = Transport.objects.filter(
                package=package,
                transport_type=TransportType.FORWARD,
                is_active=True
            ).update(is_active=False, superseded_at=now, updated_at=now)

            transport = Transport.objects.create(
                package=package,
                transporter_id=str(transporter_id),
                transport_type=TransportType.FORWARD,
                assigned_by=str(assigned_by or ''),
                status=TransportStatus.DISPATCHED,
                notes=notes or '',
                dispatched_at=now,
            )
            TransportStatusEntry.objects.create(
                transport=transport,
                status=TransportStatus.DISPATCHED,
                notes=notes or f"Assigned to transporter {transporter_id}",
                updated_by=str(assigned_by or ''),
                timestamp=now,
            )

            first_dispatch = not PackageWorkflow.reached(package.status, PackageStatus.DISPATCHED)
            if first_dispatch:
                TransportService._move_package(package, PackageStatus.DISPATCHED)
                ItemLedger.transition(
                    package.item_ids,
                    ItemStatus.DISPATCHED,
                    notes=f"Dispatched with transporter {transporter_id}",
                    location="Outbound",
                    from_statuses=[ItemStatus.PACKED],
                )

        record_audit(
            user_id=assigned_by,
            action='transport_assigned',
            entity_type='Package',
            entity_id=package.id,
            value={
                'transport_id': transport.id,
                'transporter_id': transport.transporter_id,
                'superseded': superseded,
                'package_status': PackageStatus.DISPATCHED if first_dispatch else package.status,
            },
            details=notes,
        )

        if first_dispatch:
            OrderStatusAggregator.refresh(
                package.order_id, assigned_by, f"Package {package.package_number} dispatched"
            )

        logger.info(f"Transporter {transporter_id} assigned to package {package.package_number}")
        return transport

    @staticmethod
    def create_reverse(return_request: ReturnRequest, transporter_id: str, assigned_by,
                       notes: str = "") -> Transport:
        """
        Create the reverse transport that picks up a return.

        Must be called inside the caller's transaction; the return row is
        expected to be locked already.
        """
        now = timezone.now()
        Transport.objects.filter(
            return_request=return_request,
            transport_type=TransportType.REVERSE,
            is_active=True
        ).update(is_active=False, superseded_at=now, updated_at=now)

        transport = Transport.objects.create(
            package_id=return_request.package_id,
            return_request=return_request,
            transporter_id=str(transporter_id),
            transport_type=TransportType.REVERSE,
            assigned_by=str(assigned_by or ''),
            status=TransportStatus.DISPATCHED,
            notes=notes or '',
            dispatched_at=now,
        )
        TransportStatusEntry.objects.create(
            transport=transport,
            status=TransportStatus.DISPATCHED,
            notes=notes or f"Pickup scheduled for return {return_request.return_number}",
            updated_by=str(assigned_by or ''),
            timestamp=now,
        )
        return transport

    @staticmethod
    def update_status(transport_id: str, new_status: str, updated_by, notes: str = "") -> Transport:
        """
        Apply a transporter status update.

        Forward legs carry the package along; a reverse leg reaching
        ``delivered`` marks its picked-up return as received.

        Args:
            transport_id: Transport UUID
            new_status: ``in_transit`` or ``delivered``
            updated_by: Id of the reporting user
            notes: Optional notes stored in the status history

        Returns:
            Updated Transport instance

        Raises:
            NotFound: If the transport does not exist
            InvalidStateTransition: If the transition is not allowed or the
                transport has been superseded
        """
        with transaction.atomic():
            # Package before transport, the same order assign() takes
            package_id = Transport.objects.filter(id=transport_id).values_list('package_id', flat=True).first()
            if package_id is None:
                raise NotFound("Transport", transport_id)
            locked_package = Package.objects.select_for_update().get(id=package_id)
            transport = Transport.objects.select_for_update().get(id=transport_id)

            old_status = TransportService._apply_status(transport, new_status, updated_by, notes)

            package = None
            if transport.is_forward:
                package = TransportService._carry_package(locked_package, new_status)
            elif new_status == TransportStatus.DELIVERED:
                TransportService._receive_return(transport.return_request_id, updated_by, notes)

        record_audit(
            user_id=updated_by,
            action='transport_status_updated',
            entity_type='Transport',
            entity_id=transport.id,
            value={
                'old_status': old_status,
                'new_status': new_status,
                'transport_type': transport.transport_type,
                'package_id': transport.package_id,
            },
            details=notes,
        )

        if package is not None:
            OrderStatusAggregator.refresh(
                package.order_id, updated_by, f"Package {package.package_number} {new_status}"
            )

        logger.info(f"Transport {transport.id} moved from {old_status} to {new_status}")
        return transport

    @staticmethod
    def update_package_status(package_id: str, new_status: str, updated_by, notes: str = "") -> Transport:
        """
        Apply a status update through the package's active forward transport.

        Raises:
            NotFound: If the package or its active transport does not exist
        """
        if not Package.objects.filter(id=package_id).exists():
            raise NotFound("Package", package_id)

        transport = TransportService.active_transport(package_id)
        if transport is None:
            raise NotFound("Transport", f"active forward transport of package {package_id}")

        return TransportService.update_status(str(transport.id), new_status, updated_by, notes)

    @staticmethod
    def active_transport(package_id: str, transport_type: str = TransportType.FORWARD) -> Optional[Transport]:
        return Transport.objects.filter(
            package_id=package_id, transport_type=transport_type, is_active=True
        ).first()

    @staticmethod
    def _apply_status(transport: Transport, new_status: str, updated_by, notes: str) -> str:
        """Guarded transport status write plus its history entry; returns the old status."""
        if not transport.is_active:
            raise InvalidStateTransition(
                current_status=transport.status,
                attempted_status=new_status,
                entity_type="Transport",
                message=f"Transport {transport.id} has been superseded and cannot be updated"
            )
        validate_transport_workflow(transport.status, new_status)

        old_status = transport.status
        now = timezone.now()
        fields = {'status': new_status, 'updated_at': now}
        if new_status == TransportStatus.DELIVERED:
            fields['delivered_at'] = now

        updated = Transport.objects.filter(
            id=transport.id, status=old_status, is_active=True
        ).update(**fields)
        if not updated:
            transport.refresh_from_db()
            raise InvalidStateTransition(
                current_status=transport.status,
                attempted_status=new_status,
                entity_type="Transport"
            )

        TransportStatusEntry.objects.create(
            transport=transport,
            status=new_status,
            notes=notes or '',
            updated_by=str(updated_by or ''),
            timestamp=now,
        )
        transport.refresh_from_db()
        return old_status

    @staticmethod
    def _carry_package(package: Package, transport_status: str) -> Package:
        """Move a locked package along with its forward transport."""
        target = PackageStatus(transport_status)
        if PackageWorkflow.reached(package.status, target):
            # A replacement transporter repeating a leg the package already made
            return package

        validate_package_workflow(package.status, target)
        TransportService._move_package(package, target)

        if target == PackageStatus.DELIVERED:
            # Items picked up by a return while in transit stay with the return
            picked_up = set(
                ReturnLine.objects.filter(
                    return_request__package_id=package.id,
                    return_request__status__in=PICKED_UP_RETURN_STATES,
                ).values_list('items', flat=True)
            )
            item_ids = [item_id for item_id in package.item_ids if item_id not in picked_up]
            dispatched_ids = set(
                Item.objects.filter(id__in=item_ids, status=ItemStatus.DISPATCHED)
                .values_list('id', flat=True)
            )
            ItemLedger.transition(
                [item_id for item_id in item_ids if item_id in dispatched_ids],
                ItemStatus.DELIVERED,
                notes=f"Delivered with package {package.package_number}",
                location="Customer",
                from_statuses=[ItemStatus.DISPATCHED],
            )
            release_held_restocks(package)
        return package

    @staticmethod
    def _move_package(package: Package, new_status: str) -> None:
        updated = Package.objects.filter(
            id=package.id, status=package.status
        ).update(status=new_status, updated_at=timezone.now())
        if not updated:
            package.refresh_from_db()
            raise InvalidStateTransition(package.status, new_status)
        package.status = new_status

    @staticmethod
    def _receive_return(return_id, received_by, notes: str) -> None:
        if return_id is None:
            return

        return_request = ReturnRequest.objects.select_for_update().get(id=return_id)
        if return_request.status != ReturnStatus.PICKED_UP:
            return

        updated = ReturnRequest.objects.filter(
            id=return_request.id, status=ReturnStatus.PICKED_UP
        ).update(status=ReturnStatus.RECEIVED, received_date=timezone.now(), updated_at=timezone.now())
        if updated:
            record_audit(
                user_id=received_by,
                action='return_received',
                entity_type='Return',
                entity_id=return_request.id,
                value={'old_status': ReturnStatus.PICKED_UP, 'new_status': ReturnStatus.RECEIVED},
                details=notes or "Reverse transport delivered to warehouse",
            )
