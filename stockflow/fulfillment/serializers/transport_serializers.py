"""
Transport serializers for the fulfillment API.
"""

from rest_framework import serializers

from ..models import Transport, TransportStatus, TransportStatusEntry


class TransportStatusEntrySerializer(serializers.ModelSerializer):
    """Serializer for TransportStatusEntry model."""

    class Meta:
        model = TransportStatusEntry
        fields = ['status', 'notes', 'updated_by', 'timestamp']
        read_only_fields = fields


class TransportSerializer(serializers.ModelSerializer):
    """Serializer for transport details."""

    package_number = serializers.CharField(source='package.package_number', read_only=True)
    status_history = TransportStatusEntrySerializer(many=True, read_only=True)

    class Meta:
        model = Transport
        fields = [
            'id', 'package', 'package_number', 'return_request', 'transporter_id',
            'transport_type', 'assigned_by', 'status', 'is_active', 'superseded_at',
            'notes', 'status_history', 'dispatched_at', 'delivered_at',
            'created_at', 'updated_at'
        ]
        read_only_fields = fields


class TransportStatusUpdateSerializer(serializers.Serializer):
    """Serializer for transporter status updates."""

    status = serializers.ChoiceField(choices=[TransportStatus.IN_TRANSIT, TransportStatus.DELIVERED])
    notes = serializers.CharField(required=False, allow_blank=True, default='')
