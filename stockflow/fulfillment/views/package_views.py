"""
Package views for the fulfillment API.
"""

from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from ..models import Package, PackageStatus
from ..services import PackingService, TransportService
from ..serializers.package_serializers import (
    PackageListSerializer, PackageSerializer,
    PackageStatusSerializer, AssignTransportSerializer
)
from ..serializers.transport_serializers import TransportSerializer
from ..permissions import IsWarehouseStaff
from .base import actor_id, error_response, validation_error_response


class PackageViewSet(viewsets.ReadOnlyModelViewSet):
    """
    ViewSet for packages.

    Listing and detail are read-only; packing and transporter assignment
    are workflow actions.
    """

    queryset = Package.objects.select_related('order').prefetch_related(
        'allocations__product', 'allocations__batch', 'allocations__items'
    )
    permission_classes = [IsWarehouseStaff]
    filterset_fields = ['status', 'order']

    def get_serializer_class(self):
        """Return appropriate serializer based on action."""
        if self.action == 'list':
            return PackageListSerializer
        return PackageSerializer

    @action(detail=True, methods=['post'], url_path='status')
    def update_status(self, request, pk=None):
        """
        Move a package forward.

        ``ready_for_dispatch`` packs the package; ``in_transit`` and
        ``delivered`` are applied through its active forward transport.
        """
        serializer = PackageStatusSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_error_response(serializer.errors)

        new_status = serializer.validated_data['status']
        notes = serializer.validated_data['notes']

        try:
            if new_status == PackageStatus.READY_FOR_DISPATCH:
                package = PackingService.pack(str(pk), actor_id(request), notes)
            else:
                transport = TransportService.update_package_status(str(pk), new_status, actor_id(request), notes)
                package = transport.package
                package.refresh_from_db()
        except Exception as e:
            return error_response(e)

        return Response({
            'message': 'Package status updated successfully',
            'package': PackageSerializer(package).data
        })

    @action(detail=True, methods=['post'], url_path='assign-transport')
    def assign_transport(self, request, pk=None):
        """Assign a transporter to a packed package."""
        serializer = AssignTransportSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_error_response(serializer.errors)

        try:
            transport = TransportService.assign(
                str(pk),
                serializer.validated_data['transporterId'],
                actor_id(request),
                serializer.validated_data['notes']
            )
        except Exception as e:
            return error_response(e)

        package = transport.package
        package.refresh_from_db()
        return Response({
            'message': 'Transporter assigned successfully',
            'transport': TransportSerializer(transport).data,
            'package': PackageSerializer(package).data
        })
