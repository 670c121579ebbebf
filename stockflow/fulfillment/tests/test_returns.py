"""
Tests for the return workflow.
"""

from datetime import timedelta
from unittest import mock

from django.db.models import QuerySet
from django.utils import timezone

from ..models import (
    Batch, BatchStatus, ItemEvent, ItemStatus, OrderStatus, PackageStatus,
    ReturnReason, ReturnStatus, ReturnDisposition, Transport, TransportStatus, TransportType
)
from ..services import OrderService, PackingService, ReturnService, TransportService
from ..exceptions import (
    InsufficientStock, InvalidReturnItems, InvalidStateTransition, NotFound, ValidationException
)
from .base import FulfillmentTestCase


class ReturnTestCase(FulfillmentTestCase):

    def _line(self, package, quantity, item_ids=None):
        allocation = package.allocations.first()
        line = {
            'product_id': str(allocation.product_id),
            'batch_id': str(allocation.batch_id),
            'quantity': quantity,
        }
        if item_ids is not None:
            line['item_ids'] = [str(item_id) for item_id in item_ids]
        return line

    def _initiate(self, package, quantity, reason=ReturnReason.DAMAGED, item_ids=None):
        return ReturnService.initiate(
            str(package.id), [self._line(package, quantity, item_ids)], reason, self.actor
        )

    def _picked_up_return(self, package, quantity):
        return_request = self._initiate(package, quantity)
        ReturnService.schedule_pickup(str(return_request.id), 'T-REV', self.actor)
        return ReturnService.mark_picked_up(str(return_request.id), self.actor)


class ReturnInitiationTest(ReturnTestCase):
    """Test return initiation and item validation."""

    def test_initiate_for_delivered_package(self):
        """Test a return is created with order and warehouse derived from the package."""
        package = self._delivered_package(quantity=5)

        return_request = self._initiate(package, 2)

        self.assertEqual(return_request.status, ReturnStatus.INITIATED)
        self.assertEqual(return_request.order_id, package.order_id)
        self.assertEqual(return_request.warehouse_id, package.order.warehouse_id)
        self.assertTrue(return_request.return_number.startswith('RET-'))
        self.assertEqual(len(return_request.item_ids), 2)
        self.assertTrue(set(return_request.item_ids) <= set(package.item_ids))

    def test_quantity_beyond_shipped_rejected(self):
        """Test returning more than was shipped fails; exactly the shipped quantity succeeds."""
        package = self._delivered_package(quantity=5)

        with self.assertRaises(InvalidReturnItems):
            self._initiate(package, 6)

        return_request = self._initiate(package, 5)
        self.assertEqual(len(return_request.item_ids), 5)

    def test_items_claimed_by_earlier_return_count(self):
        """Test quantities already claimed by another return are not returnable again."""
        package = self._delivered_package(quantity=5)
        self._initiate(package, 3)

        with self.assertRaises(InvalidReturnItems):
            self._initiate(package, 3)

        second = self._initiate(package, 2)
        self.assertEqual(len(second.item_ids), 2)

    def test_explicit_item_ids(self):
        """Test explicit item ids must belong to the package entry and be unclaimed."""
        package = self._delivered_package(quantity=5)
        chosen = package.item_ids[:2]

        return_request = self._initiate(package, 2, item_ids=chosen)
        self.assertEqual(set(return_request.item_ids), set(chosen))

        with self.assertRaises(InvalidReturnItems):
            self._initiate(package, 1, item_ids=chosen[:1])

    def test_foreign_item_rejected(self):
        """Test an item from another package cannot be returned."""
        package = self._delivered_package(quantity=2)
        other_batch = self._create_batch(self.product, 1)
        foreign_id = other_batch.items.get().id

        with self.assertRaises(InvalidReturnItems):
            self._initiate(package, 1, item_ids=[foreign_id])

    def test_item_count_must_match_quantity(self):
        """Test item ids and quantity must agree."""
        package = self._delivered_package(quantity=3)

        with self.assertRaises(InvalidReturnItems):
            self._initiate(package, 2, item_ids=package.item_ids[:1])

    def test_unshipped_product_rejected(self):
        """Test a product/batch pair that the package never shipped."""
        package = self._delivered_package(quantity=2)
        other = self._create_product('P2')
        batch = self._create_batch(other, 1)

        with self.assertRaises(InvalidReturnItems):
            ReturnService.initiate(str(package.id), [{
                'product_id': str(other.id), 'batch_id': str(batch.id), 'quantity': 1
            }], ReturnReason.WRONG_ITEM, self.actor)

    def test_package_must_be_in_transit_or_delivered(self):
        """Test returns against a package that has not left in transit."""
        package = self._dispatched_package()

        with self.assertRaises(InvalidStateTransition):
            self._initiate(package, 1)

    def test_in_transit_package_accepted(self):
        """Test returns are accepted for in-transit packages."""
        package = self._dispatched_package()
        TransportService.update_package_status(str(package.id), TransportStatus.IN_TRANSIT, self.actor)

        return_request = self._initiate(package, 1)
        self.assertEqual(return_request.status, ReturnStatus.INITIATED)

    def test_invalid_reason(self):
        """Test unknown return reasons are rejected."""
        package = self._delivered_package(quantity=1)

        with self.assertRaises(ValidationException):
            ReturnService.initiate(str(package.id), [self._line(package, 1)], 'changed_mind', self.actor)

    def test_unknown_package(self):
        """Test initiating a return for a missing package."""
        with self.assertRaises(NotFound):
            ReturnService.initiate(
                '00000000-0000-0000-0000-000000000000',
                [{'product_id': 'x', 'batch_id': 'y', 'quantity': 1}],
                ReturnReason.DEFECTIVE, self.actor
            )


class ReturnWorkflowTest(ReturnTestCase):
    """Test return status transitions and reverse transport."""

    def test_schedule_pickup_creates_reverse_transport(self):
        """Test scheduling a pickup creates an active reverse transport."""
        package = self._delivered_package()
        return_request = self._initiate(package, 2)

        return_request = ReturnService.schedule_pickup(str(return_request.id), 'T-REV', self.actor)

        self.assertEqual(return_request.status, ReturnStatus.PICKUP_SCHEDULED)
        transport = Transport.objects.get(return_request=return_request, is_active=True)
        self.assertEqual(transport.transport_type, TransportType.REVERSE)
        self.assertEqual(transport.status, TransportStatus.DISPATCHED)
        self.assertEqual(transport.transporter_id, 'T-REV')

    def test_picked_up_returns_items(self):
        """Test pickup moves items to returned and the reverse transport in transit."""
        package = self._delivered_package()

        return_request = self._picked_up_return(package, 2)

        self.assertEqual(return_request.status, ReturnStatus.PICKED_UP)
        self.assertEqual(set(self._item_statuses(return_request.item_ids)), {ItemStatus.RETURNED})
        remaining = set(package.item_ids) - set(return_request.item_ids)
        self.assertEqual(set(self._item_statuses(remaining)), {ItemStatus.DELIVERED})

        transport = Transport.objects.get(return_request=return_request, is_active=True)
        self.assertEqual(transport.status, TransportStatus.IN_TRANSIT)

    def test_reverse_delivery_receives_return(self):
        """Test a reverse transport reaching the warehouse marks the return received."""
        package = self._delivered_package()
        return_request = self._picked_up_return(package, 1)
        transport = Transport.objects.get(return_request=return_request, is_active=True)

        TransportService.update_status(str(transport.id), TransportStatus.DELIVERED, self.actor)

        return_request.refresh_from_db()
        self.assertEqual(return_request.status, ReturnStatus.RECEIVED)
        self.assertIsNotNone(return_request.received_date)
        # The forward package is untouched by the reverse leg
        package.refresh_from_db()
        self.assertEqual(package.status, PackageStatus.DELIVERED)

    def test_mark_received_completes_reverse_transport(self):
        """Test marking received also closes the reverse transport."""
        package = self._delivered_package()
        return_request = self._picked_up_return(package, 1)

        return_request = ReturnService.mark_received(str(return_request.id), self.actor)

        self.assertEqual(return_request.status, ReturnStatus.RECEIVED)
        transport = Transport.objects.get(return_request=return_request, is_active=True)
        self.assertEqual(transport.status, TransportStatus.DELIVERED)

    def test_out_of_order_calls_rejected(self):
        """Test each step only runs from its predecessor."""
        package = self._delivered_package()
        return_request = self._initiate(package, 1)

        with self.assertRaises(InvalidStateTransition) as ctx:
            ReturnService.mark_picked_up(str(return_request.id), self.actor)
        self.assertEqual(ctx.exception.current_status, ReturnStatus.INITIATED)
        self.assertEqual(ctx.exception.attempted_status, ReturnStatus.PICKED_UP)

        with self.assertRaises(InvalidStateTransition):
            ReturnService.mark_received(str(return_request.id), self.actor)
        with self.assertRaises(InvalidStateTransition):
            ReturnService.process(str(return_request.id), ReturnDisposition.RESTOCKED, self.actor)

        ReturnService.schedule_pickup(str(return_request.id), 'T-REV', self.actor)
        with self.assertRaises(InvalidStateTransition):
            ReturnService.schedule_pickup(str(return_request.id), 'T-REV', self.actor)

    def test_processed_is_final(self):
        """Test a processed return cannot be processed again."""
        package = self._delivered_package()
        return_request = self._picked_up_return(package, 1)
        ReturnService.process(str(return_request.id), ReturnDisposition.DAMAGED, self.actor)

        with self.assertRaises(InvalidStateTransition):
            ReturnService.process(str(return_request.id), ReturnDisposition.DAMAGED, self.actor)

    def test_package_locked_before_return(self):
        """Test return steps lock the package before the return."""
        package = self._delivered_package()
        return_request = self._picked_up_return(package, 1)
        select_for_update = QuerySet.select_for_update
        locked = []

        def record(queryset, *args, **kwargs):
            locked.append(queryset.model.__name__)
            return select_for_update(queryset, *args, **kwargs)

        with mock.patch.object(QuerySet, 'select_for_update', autospec=True, side_effect=record):
            ReturnService.mark_received(str(return_request.id), self.actor)

        self.assertEqual(locked[:2], ['Package', 'ReturnRequest'])

    def test_invalid_disposition(self):
        """Test unknown dispositions are rejected before any change."""
        package = self._delivered_package()
        return_request = self._picked_up_return(package, 1)

        with self.assertRaises(ValidationException):
            ReturnService.process(str(return_request.id), 'resold', self.actor)
        return_request.refresh_from_db()
        self.assertEqual(return_request.status, ReturnStatus.PICKED_UP)


class ReturnDispositionTest(ReturnTestCase):
    """Test item dispositions on processing."""

    def test_damaged_disposition(self):
        """Test damaged items become damaged."""
        package = self._delivered_package()
        return_request = self._picked_up_return(package, 2)

        return_request = ReturnService.process(str(return_request.id), ReturnDisposition.DAMAGED, self.actor)

        self.assertEqual(return_request.status, ReturnStatus.PROCESSED)
        self.assertEqual(return_request.disposition, ReturnDisposition.DAMAGED)
        self.assertEqual(return_request.processed_by, self.actor)
        self.assertIsNotNone(return_request.processed_date)
        self.assertEqual(set(self._item_statuses(return_request.item_ids)), {ItemStatus.DAMAGED})

    def test_restock_reactivates_depleted_batch(self):
        """Test restocked items go back in stock and reopen their batch."""
        package = self._delivered_package(quantity=5)
        batch = Batch.objects.get(id=package.allocations.first().batch_id)
        self.assertEqual(batch.status, BatchStatus.DEPLETED)

        return_request = self._picked_up_return(package, 2)
        ReturnService.process(str(return_request.id), ReturnDisposition.RESTOCKED, self.actor)

        self.assertEqual(set(self._item_statuses(return_request.item_ids)), {ItemStatus.IN_STOCK})
        for item_id in return_request.item_ids:
            self.assertEqual(ItemEvent.objects.filter(item_id=item_id, action='restocked').count(), 1)
        batch.refresh_from_db()
        self.assertEqual(batch.status, BatchStatus.ACTIVE)

        # Restocked items can be allocated again
        order = self._create_order((self.product, 2))
        package = OrderService.process_order(str(order.id), self.actor)['package']
        self.assertEqual(set(package.item_ids), set(return_request.item_ids))

    def test_restock_into_expired_batch(self):
        """Test items of an expired batch stay restocked instead of in stock."""
        package = self._delivered_package(quantity=3)
        batch_id = package.allocations.first().batch_id
        return_request = self._picked_up_return(package, 1)
        Batch.objects.filter(id=batch_id).update(exp_date=timezone.now().date() - timedelta(days=1))

        ReturnService.process(str(return_request.id), ReturnDisposition.RESTOCKED, self.actor)

        self.assertEqual(set(self._item_statuses(return_request.item_ids)), {ItemStatus.RESTOCKED})
        self.assertEqual(Batch.objects.get(id=batch_id).status, BatchStatus.DEPLETED)

    def test_partial_return_keeps_package_delivered(self):
        """Test a package stays delivered until every item is returned."""
        package = self._delivered_package(quantity=5)
        return_request = self._picked_up_return(package, 2)

        ReturnService.process(str(return_request.id), ReturnDisposition.DAMAGED, self.actor)

        package.refresh_from_db()
        self.assertEqual(package.status, PackageStatus.DELIVERED)
        self.assertEqual(package.order.status, OrderStatus.DELIVERED)

    def test_full_return_closes_package_and_order(self):
        """Test processed returns covering every item return the package and order."""
        package = self._delivered_package(quantity=4)
        first = self._picked_up_return(package, 1)
        second = self._picked_up_return(package, 3)

        ReturnService.process(str(first.id), ReturnDisposition.DAMAGED, self.actor)
        package.refresh_from_db()
        self.assertEqual(package.status, PackageStatus.DELIVERED)

        ReturnService.process(str(second.id), ReturnDisposition.RESTOCKED, self.actor)
        package.refresh_from_db()
        self.assertEqual(package.status, PackageStatus.RETURNED)
        self.assertEqual(package.order.status, OrderStatus.RETURNED)


class InTransitRestockTest(ReturnTestCase):
    """Test restocking items picked up from a package still in transit."""

    def _in_transit_package(self, quantity):
        package = self._dispatched_package(quantity)
        TransportService.update_package_status(str(package.id), TransportStatus.IN_TRANSIT, self.actor)
        package.refresh_from_db()
        return package

    def test_restock_held_until_package_delivered(self):
        """Test restocked items only return to stock once their package is delivered."""
        package = self._in_transit_package(5)
        batch_id = package.allocations.first().batch_id
        return_request = self._picked_up_return(package, 2)

        ReturnService.process(str(return_request.id), ReturnDisposition.RESTOCKED, self.actor)

        self.assertEqual(set(self._item_statuses(return_request.item_ids)), {ItemStatus.RESTOCKED})
        self.assertEqual(Batch.objects.get(id=batch_id).status, BatchStatus.DEPLETED)
        with self.assertRaises(InsufficientStock):
            OrderService.process_order(str(self._create_order((self.product, 2)).id), self.actor)

        TransportService.update_package_status(str(package.id), TransportStatus.DELIVERED, self.actor)

        kept = set(package.item_ids) - set(return_request.item_ids)
        self.assertEqual(set(self._item_statuses(kept)), {ItemStatus.DELIVERED})
        self.assertEqual(set(self._item_statuses(return_request.item_ids)), {ItemStatus.IN_STOCK})
        self.assertEqual(Batch.objects.get(id=batch_id).status, BatchStatus.ACTIVE)
        for item_id in return_request.item_ids:
            self.assertEqual(ItemEvent.objects.filter(item_id=item_id, action='restocked').count(), 1)

        second = OrderService.process_order(
            str(self._create_order((self.product, 2)).id), self.actor
        )['package']
        self.assertEqual(set(second.item_ids), set(return_request.item_ids))

        # Moving the second package along leaves the delivered one alone
        PackingService.pack(str(second.id), self.actor)
        TransportService.assign(str(second.id), 'T2', self.actor)
        self.assertEqual(set(self._item_statuses(second.item_ids)), {ItemStatus.DISPATCHED})
        self.assertEqual(set(self._item_statuses(kept)), {ItemStatus.DELIVERED})
        package.refresh_from_db()
        self.assertEqual(package.status, PackageStatus.DELIVERED)

    def test_delivery_skips_picked_up_items(self):
        """Test delivering the package leaves items already picked up by a return."""
        package = self._in_transit_package(4)
        return_request = self._picked_up_return(package, 1)

        TransportService.update_package_status(str(package.id), TransportStatus.DELIVERED, self.actor)

        self.assertEqual(set(self._item_statuses(return_request.item_ids)), {ItemStatus.RETURNED})
        kept = set(package.item_ids) - set(return_request.item_ids)
        self.assertEqual(set(self._item_statuses(kept)), {ItemStatus.DELIVERED})

        # Processing after delivery restocks straight away
        ReturnService.process(str(return_request.id), ReturnDisposition.RESTOCKED, self.actor)
        self.assertEqual(set(self._item_statuses(return_request.item_ids)), {ItemStatus.IN_STOCK})

    def test_full_return_in_transit_releases_items(self):
        """Test returning every item of an in-transit package puts them back in stock."""
        package = self._in_transit_package(3)
        return_request = self._picked_up_return(package, 3)

        ReturnService.process(str(return_request.id), ReturnDisposition.RESTOCKED, self.actor)

        package.refresh_from_db()
        self.assertEqual(package.status, PackageStatus.RETURNED)
        self.assertEqual(package.order.status, OrderStatus.RETURNED)
        self.assertEqual(set(self._item_statuses(package.item_ids)), {ItemStatus.IN_STOCK})
