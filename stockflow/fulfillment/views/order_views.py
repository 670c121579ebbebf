"""
Order views for the fulfillment API.
"""

from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from ..models import Order
from ..services import OrderService
from ..serializers.order_serializers import (
    OrderListSerializer, OrderDetailSerializer, OrderProcessSerializer
)
from ..serializers.package_serializers import PackageSerializer
from ..permissions import IsWarehouseStaff
from .base import actor_id, error_response, validation_error_response


class OrderViewSet(viewsets.ReadOnlyModelViewSet):
    """
    ViewSet for orders.

    Orders are created upstream; this API lists them and turns them into
    packages.
    """

    queryset = Order.objects.prefetch_related('lines__product', 'packages')
    permission_classes = [IsWarehouseStaff]
    filterset_fields = ['status', 'warehouse_id', 'customer_id']

    def get_serializer_class(self):
        """Return appropriate serializer based on action."""
        if self.action == 'list':
            return OrderListSerializer
        return OrderDetailSerializer

    @action(detail=True, methods=['post'])
    def process(self, request, pk=None):
        """Allocate stock for the order and create its package."""
        serializer = OrderProcessSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_error_response(serializer.errors)

        try:
            result = OrderService.process_order(str(pk), actor_id(request), serializer.validated_data['notes'])
        except Exception as e:
            return error_response(e)

        return Response({
            'message': 'Order processed successfully',
            'order': OrderDetailSerializer(result['order']).data,
            'package': PackageSerializer(result['package']).data
        })

    @action(detail=True, methods=['get'])
    def summary(self, request, pk=None):
        """Get order fulfillment summary."""
        try:
            summary = OrderService.get_order_summary(str(pk))
        except Exception as e:
            return error_response(e)

        return Response({
            'message': 'Order summary',
            'order': summary
        })
