"""
Audit log serializers for the fulfillment API.
"""

from rest_framework import serializers

from ..models import AuditLog


class AuditLogSerializer(serializers.ModelSerializer):
    """Serializer for AuditLog model."""

    class Meta:
        model = AuditLog
        fields = ['id', 'user_id', 'action', 'entity_type', 'entity_id', 'value', 'timestamp', 'details']
        read_only_fields = fields
