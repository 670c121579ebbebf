"""
Return views for the fulfillment API.
"""

from rest_framework import viewsets, status
from rest_framework.decorators import action
from rest_framework.response import Response

from ..models import ReturnRequest
from ..services import ReturnService
from ..serializers.return_serializers import (
    ReturnSerializer, ReturnInitiateSerializer, SchedulePickupSerializer,
    ReturnNotesSerializer, ReturnProcessSerializer
)
from ..permissions import IsAdminRole, IsWarehouseStaff
from .base import actor_id, error_response, validation_error_response


class ReturnViewSet(viewsets.ReadOnlyModelViewSet):
    """
    ViewSet for returns.

    Provides read-only listing plus the return workflow actions.
    """

    queryset = ReturnRequest.objects.select_related('package', 'order').prefetch_related(
        'lines__product', 'lines__batch', 'lines__items'
    )
    serializer_class = ReturnSerializer
    permission_classes = [IsWarehouseStaff]
    filterset_fields = ['status', 'reason', 'package', 'order', 'warehouse_id']

    def get_permissions(self):
        """Final dispositions are restricted to admins."""
        if self.action == 'process':
            return [IsAdminRole()]
        return super().get_permissions()

    def _respond(self, return_request, message, status_code=status.HTTP_200_OK):
        return_request = self.get_queryset().get(id=return_request.id)
        return Response({
            'message': message,
            'return': ReturnSerializer(return_request).data
        }, status=status_code)

    @action(detail=False, methods=['post'])
    def initiate(self, request):
        """Open a return against a shipped package."""
        serializer = ReturnInitiateSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_error_response(serializer.errors)

        data = serializer.validated_data
        returned_items = [
            {
                'product_id': entry['productId'],
                'batch_id': entry['batchId'],
                'quantity': entry['quantity'],
                'item_ids': entry.get('itemIds') or None,
            }
            for entry in data['returnedItems']
        ]

        try:
            return_request = ReturnService.initiate(
                str(data['packageId']), returned_items, data['reason'], actor_id(request), data['notes']
            )
        except Exception as e:
            return error_response(e)

        return self._respond(return_request, 'Return initiated successfully', status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'], url_path='schedule-pickup')
    def schedule_pickup(self, request, pk=None):
        """Schedule the reverse pickup."""
        serializer = SchedulePickupSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_error_response(serializer.errors)

        try:
            return_request = ReturnService.schedule_pickup(
                str(pk),
                serializer.validated_data['transporterId'],
                actor_id(request),
                serializer.validated_data['notes']
            )
        except Exception as e:
            return error_response(e)

        return self._respond(return_request, 'Pickup scheduled successfully')

    @action(detail=True, methods=['post'], url_path='picked-up')
    def picked_up(self, request, pk=None):
        """Record the pickup of the returned items."""
        serializer = ReturnNotesSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_error_response(serializer.errors)

        try:
            return_request = ReturnService.mark_picked_up(
                str(pk), actor_id(request), serializer.validated_data['notes']
            )
        except Exception as e:
            return error_response(e)

        return self._respond(return_request, 'Return marked as picked up')

    @action(detail=True, methods=['post'])
    def received(self, request, pk=None):
        """Record the arrival of the returned items at the warehouse."""
        serializer = ReturnNotesSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_error_response(serializer.errors)

        try:
            return_request = ReturnService.mark_received(
                str(pk), actor_id(request), serializer.validated_data['notes']
            )
        except Exception as e:
            return error_response(e)

        return self._respond(return_request, 'Return marked as received')

    @action(detail=True, methods=['post'])
    def process(self, request, pk=None):
        """Apply the final disposition (admin only)."""
        serializer = ReturnProcessSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_error_response(serializer.errors)

        try:
            return_request = ReturnService.process(
                str(pk),
                serializer.validated_data['disposition'],
                actor_id(request),
                serializer.validated_data['notes']
            )
        except Exception as e:
            return error_response(e)

        return self._respond(return_request, 'Return processed successfully')
