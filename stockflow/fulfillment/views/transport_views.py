"""
Transport views for the fulfillment API.
"""

from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from ..exceptions import NotFound
from ..models import Transport
from ..services import TransportService
from ..serializers.transport_serializers import TransportSerializer, TransportStatusUpdateSerializer
from ..permissions import IsTransporterOrStaff, IsWarehouseStaff, transporter_identity
from .base import actor_id, error_response, validation_error_response


class TransportViewSet(viewsets.ReadOnlyModelViewSet):
    """
    ViewSet for transports.

    Warehouse staff see every transport; transporters see their own.
    """

    serializer_class = TransportSerializer
    permission_classes = [IsTransporterOrStaff]
    filterset_fields = ['status', 'transport_type', 'is_active', 'package', 'transporter_id']

    def get_queryset(self):
        """Filter queryset based on user role."""
        queryset = Transport.objects.select_related('package').prefetch_related('status_history')
        if IsWarehouseStaff().has_permission(self.request, self):
            return queryset
        return queryset.filter(transporter_id=transporter_identity(self.request.user))

    @action(detail=True, methods=['patch'], url_path='status')
    def update_status(self, request, pk=None):
        """Apply a transporter status update (in_transit, delivered)."""
        serializer = TransportStatusUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_error_response(serializer.errors)

        try:
            transport = Transport.objects.get(id=pk)
        except Transport.DoesNotExist:
            return error_response(NotFound("Transport", pk))

        # Transporters may only update the transports assigned to them
        self.check_object_permissions(request, transport)

        try:
            transport = TransportService.update_status(
                str(transport.id),
                serializer.validated_data['status'],
                actor_id(request),
                serializer.validated_data['notes']
            )
        except Exception as e:
            return error_response(e)

        return Response({
            'message': 'Transport status updated successfully',
            'transport': TransportSerializer(transport).data
        })
