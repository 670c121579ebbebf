"""
Tests for the fulfillment HTTP API.
"""

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient

from ..models import ItemStatus, OrderStatus, PackageStatus, ReturnStatus, Transport, TransportStatus
from ..permissions import ADMIN_GROUP, STAFF_GROUP, TRANSPORTER_GROUP
from ..services import ReturnService, TransportService
from .base import FulfillmentTestCase

MISSING_ID = '00000000-0000-0000-0000-000000000000'


class APITestCase(FulfillmentTestCase):

    def setUp(self):
        super().setUp()
        User = get_user_model()

        self.staff = User.objects.create_user(username='clerk', password='clerkpass123')
        self.staff.groups.add(Group.objects.create(name=STAFF_GROUP))

        self.admin = User.objects.create_user(username='manager', password='managerpass123')
        self.admin.groups.add(Group.objects.create(name=ADMIN_GROUP))

        transporters = Group.objects.create(name=TRANSPORTER_GROUP)
        self.driver = User.objects.create_user(username='driver', password='driverpass123')
        self.driver.groups.add(transporters)
        self.other_driver = User.objects.create_user(username='other-driver', password='driverpass123')
        self.other_driver.groups.add(transporters)

        self.client = APIClient()
        self.client.force_authenticate(user=self.staff)


class PackageAPITest(APITestCase):
    """Test the package workflow endpoints."""

    def test_pack_then_already_packed(self):
        """Test packing through the API, then the second call conflicts."""
        package = self._processed_package(quantity=3)
        url = reverse('fulfillment-package-update-status', args=[package.id])

        response = self.client.post(url, {'status': 'ready_for_dispatch', 'notes': 'boxed'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['package']['status'], PackageStatus.READY_FOR_DISPATCH)
        self.assertEqual(response.data['package']['packed_by'], str(self.staff.pk))

        response = self.client.post(url, {'status': 'ready_for_dispatch'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'ALREADY_PACKED')

    def test_unknown_package(self):
        """Test a missing package returns 404."""
        url = reverse('fulfillment-package-update-status', args=[MISSING_ID])

        response = self.client.post(url, {'status': 'ready_for_dispatch'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['code'], 'NOT_FOUND')

    def test_invalid_status_value(self):
        """Test statuses outside the accepted set fail validation."""
        package = self._processed_package(quantity=1)
        url = reverse('fulfillment-package-update-status', args=[package.id])

        response = self.client.post(url, {'status': 'returned'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['message'], 'Validation failed')
        self.assertIn('status', response.data['errors'])

    def test_assign_transport_and_follow_package(self):
        """Test assignment and package-level in_transit/delivered updates."""
        package = self._packed_package(quantity=2)

        response = self.client.post(
            reverse('fulfillment-package-assign-transport', args=[package.id]),
            {'transporterId': 'T1'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['transport']['transporter_id'], 'T1')
        self.assertEqual(response.data['package']['status'], PackageStatus.DISPATCHED)

        url = reverse('fulfillment-package-update-status', args=[package.id])
        response = self.client.post(url, {'status': 'delivered'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'INVALID_TRANSITION')

        for new_status in ('in_transit', 'delivered'):
            response = self.client.post(url, {'status': new_status}, format='json')
            self.assertEqual(response.status_code, status.HTTP_200_OK)
            self.assertEqual(response.data['package']['status'], new_status)

    def test_assign_requires_transporter(self):
        """Test blank transporter ids are rejected."""
        package = self._packed_package(quantity=1)

        response = self.client.post(
            reverse('fulfillment-package-assign-transport', args=[package.id]),
            {'transporterId': '  '}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(Transport.objects.exists())

    def test_unauthenticated_request(self):
        """Test anonymous requests are refused."""
        package = self._processed_package(quantity=1)
        client = APIClient()

        response = client.post(
            reverse('fulfillment-package-update-status', args=[package.id]),
            {'status': 'ready_for_dispatch'}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_transporter_cannot_pack(self):
        """Test transporters have no access to warehouse endpoints."""
        package = self._processed_package(quantity=1)
        self.client.force_authenticate(user=self.driver)

        response = self.client.post(
            reverse('fulfillment-package-update-status', args=[package.id]),
            {'status': 'ready_for_dispatch'}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_list_and_filter(self):
        """Test package listing filtered by status."""
        self._processed_package(quantity=1)
        packed = self._packed_package(quantity=1)

        response = self.client.get(reverse('package-list'), {'status': PackageStatus.READY_FOR_DISPATCH})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 1)
        self.assertEqual(response.data['results'][0]['id'], str(packed.id))


class TransportAPITest(APITestCase):
    """Test transporter status updates over HTTP."""

    def _assigned_to_driver(self):
        package = self._packed_package(quantity=2)
        return TransportService.assign(str(package.id), str(self.driver.pk), self.actor)

    def test_transporter_updates_own_transport(self):
        """Test the assigned transporter can move their transport."""
        transport = self._assigned_to_driver()
        self.client.force_authenticate(user=self.driver)

        response = self.client.patch(
            reverse('fulfillment-transport-update-status', args=[transport.id]),
            {'status': 'in_transit', 'notes': 'on the road'}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['transport']['status'], TransportStatus.IN_TRANSIT)
        transport.package.refresh_from_db()
        self.assertEqual(transport.package.status, PackageStatus.IN_TRANSIT)

    def test_other_transporter_forbidden(self):
        """Test a transporter cannot update someone else's transport."""
        transport = self._assigned_to_driver()
        self.client.force_authenticate(user=self.other_driver)

        response = self.client.patch(
            reverse('fulfillment-transport-update-status', args=[transport.id]),
            {'status': 'in_transit'}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        transport.refresh_from_db()
        self.assertEqual(transport.status, TransportStatus.DISPATCHED)

    def test_transporter_lists_own_transports(self):
        """Test transporters only see their own transports."""
        self._assigned_to_driver()
        self.client.force_authenticate(user=self.other_driver)

        response = self.client.get(reverse('transport-list'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['count'], 0)

    def test_skipping_in_transit_rejected(self):
        """Test delivered straight from dispatched is a 400."""
        transport = self._assigned_to_driver()

        response = self.client.patch(
            reverse('fulfillment-transport-update-status', args=[transport.id]),
            {'status': 'delivered'}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['details']['current_status'], TransportStatus.DISPATCHED)

    def test_unknown_transport(self):
        """Test a missing transport returns 404."""
        response = self.client.patch(
            reverse('fulfillment-transport-update-status', args=[MISSING_ID]),
            {'status': 'in_transit'}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class ReturnAPITest(APITestCase):
    """Test the return endpoints."""

    def _initiate_payload(self, package, quantity):
        allocation = package.allocations.first()
        return {
            'packageId': str(package.id),
            'returnedItems': [{
                'productId': str(allocation.product_id),
                'batchId': str(allocation.batch_id),
                'quantity': quantity,
            }],
            'reason': 'damaged',
        }

    def test_full_return_cycle(self):
        """Test initiate, pickup, receive and process through the API."""
        package = self._delivered_package(quantity=3)

        response = self.client.post(
            reverse('fulfillment-return-initiate'), self._initiate_payload(package, 2), format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        return_id = response.data['return']['id']
        self.assertEqual(response.data['return']['status'], ReturnStatus.INITIATED)
        self.assertEqual(len(response.data['return']['lines'][0]['items']), 2)

        response = self.client.post(
            reverse('fulfillment-return-schedule-pickup', args=[return_id]),
            {'transporterId': 'T-REV'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['return']['status'], ReturnStatus.PICKUP_SCHEDULED)

        for name, expected in (
            ('fulfillment-return-picked-up', ReturnStatus.PICKED_UP),
            ('fulfillment-return-received', ReturnStatus.RECEIVED),
        ):
            response = self.client.post(reverse(name, args=[return_id]), {}, format='json')
            self.assertEqual(response.status_code, status.HTTP_200_OK)
            self.assertEqual(response.data['return']['status'], expected)

        self.client.force_authenticate(user=self.admin)
        response = self.client.post(
            reverse('fulfillment-return-process', args=[return_id]),
            {'disposition': 'damaged'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['return']['status'], ReturnStatus.PROCESSED)
        self.assertEqual(response.data['return']['processed_by'], str(self.admin.pk))

        item_ids = response.data['return']['lines'][0]['items']
        self.assertEqual(set(self._item_statuses(item_ids)), {ItemStatus.DAMAGED})

    def test_process_requires_admin(self):
        """Test warehouse staff cannot apply the final disposition."""
        package = self._delivered_package(quantity=1)
        return_request = ReturnService.initiate(
            str(package.id),
            [{
                'product_id': str(package.allocations.first().product_id),
                'batch_id': str(package.allocations.first().batch_id),
                'quantity': 1,
            }],
            'defective', self.actor
        )
        ReturnService.schedule_pickup(str(return_request.id), 'T-REV', self.actor)
        ReturnService.mark_picked_up(str(return_request.id), self.actor)

        response = self.client.post(
            reverse('fulfillment-return-process', args=[return_request.id]),
            {'disposition': 'restocked'}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        return_request.refresh_from_db()
        self.assertEqual(return_request.status, ReturnStatus.PICKED_UP)

    def test_over_return_rejected(self):
        """Test returning more than shipped is a 400 with a typed code."""
        package = self._delivered_package(quantity=2)

        response = self.client.post(
            reverse('fulfillment-return-initiate'), self._initiate_payload(package, 3), format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'INVALID_RETURN_ITEMS')

    def test_return_for_unshipped_package(self):
        """Test returns against a packed package are invalid transitions."""
        package = self._packed_package(quantity=1)

        response = self.client.post(
            reverse('fulfillment-return-initiate'), self._initiate_payload(package, 1), format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'INVALID_TRANSITION')

    def test_initiate_validation(self):
        """Test malformed initiate payloads."""
        response = self.client.post(
            reverse('fulfillment-return-initiate'),
            {'packageId': 'not-a-uuid', 'returnedItems': [], 'reason': 'bored'},
            format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        for field in ('packageId', 'returnedItems', 'reason'):
            self.assertIn(field, response.data['errors'])


class OrderAPITest(APITestCase):
    """Test order processing endpoints."""

    def test_process_order(self):
        """Test processing an order creates its package."""
        self._create_batch(self.product, 3, exp_in_days=30)
        order = self._create_order((self.product, 2))

        response = self.client.post(reverse('order-process', args=[order.id]), {}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['order']['status'], OrderStatus.PROCESSING)
        self.assertEqual(response.data['package']['total_quantity'], 2)

    def test_insufficient_stock(self):
        """Test a shortfall maps to 400 with stock details."""
        self._create_batch(self.product, 1, exp_in_days=30)
        order = self._create_order((self.product, 2))

        response = self.client.post(reverse('order-process', args=[order.id]), {}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'INSUFFICIENT_STOCK')
        self.assertEqual(response.data['details']['shortfall'], 1)


class AuthAPITest(APITestCase):
    """Test JWT authentication."""

    def test_token_flow(self):
        """Test obtaining a token and using it on the API."""
        client = APIClient()

        response = client.post(
            reverse('token_obtain_pair'),
            {'username': 'clerk', 'password': 'clerkpass123'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn('refresh', response.data)

        client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")
        response = client.get(reverse('package-list'))
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_bad_credentials(self):
        """Test wrong passwords get no token."""
        response = APIClient().post(
            reverse('token_obtain_pair'),
            {'username': 'clerk', 'password': 'wrong'}, format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
