"""
Audit log views for the fulfillment API.
"""

from rest_framework import viewsets

from ..models import AuditLog
from ..serializers.audit_serializers import AuditLogSerializer
from ..permissions import IsWarehouseStaff


class AuditLogViewSet(viewsets.ReadOnlyModelViewSet):
    """Read-only access to the audit trail."""

    queryset = AuditLog.objects.all()
    serializer_class = AuditLogSerializer
    permission_classes = [IsWarehouseStaff]
    filterset_fields = ['entity_type', 'entity_id', 'action', 'user_id']
