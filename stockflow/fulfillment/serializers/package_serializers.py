"""
Package serializers for the fulfillment API.
"""

from rest_framework import serializers

from ..models import Package, PackageAllocation, PackageStatus


class PackageAllocationSerializer(serializers.ModelSerializer):
    """Serializer for PackageAllocation model."""

    product_sku = serializers.CharField(source='product.sku', read_only=True)
    batch_number = serializers.CharField(source='batch.batch_number', read_only=True)
    items = serializers.PrimaryKeyRelatedField(many=True, read_only=True)

    class Meta:
        model = PackageAllocation
        fields = [
            'id', 'product', 'product_sku', 'batch', 'batch_number',
            'quantity', 'items', 'position'
        ]
        read_only_fields = fields


class PackageListSerializer(serializers.ModelSerializer):
    """Serializer for package listing."""

    order_number = serializers.CharField(source='order.order_number', read_only=True)

    class Meta:
        model = Package
        fields = [
            'id', 'package_number', 'order', 'order_number', 'status',
            'total_weight', 'total_volume', 'total_value', 'created_at'
        ]


class PackageSerializer(serializers.ModelSerializer):
    """Serializer for package details."""

    order_number = serializers.CharField(source='order.order_number', read_only=True)
    allocations = PackageAllocationSerializer(many=True, read_only=True)
    total_quantity = serializers.SerializerMethodField()

    class Meta:
        model = Package
        fields = [
            'id', 'package_number', 'order', 'order_number', 'status',
            'allocations', 'total_quantity', 'total_weight', 'total_volume',
            'total_value', 'created_by', 'packed_by', 'packed_at', 'notes',
            'created_at', 'updated_at'
        ]
        read_only_fields = fields

    def get_total_quantity(self, obj):
        return obj.total_quantity


class PackageStatusSerializer(serializers.Serializer):
    """Serializer for package status updates."""

    status = serializers.ChoiceField(choices=[
        PackageStatus.READY_FOR_DISPATCH,
        PackageStatus.IN_TRANSIT,
        PackageStatus.DELIVERED,
    ])
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class AssignTransportSerializer(serializers.Serializer):
    """Serializer for assigning a transporter to a package."""

    transporterId = serializers.CharField(max_length=64)
    notes = serializers.CharField(required=False, allow_blank=True, default='')

    def validate_transporterId(self, value):
        """Validate transporter id."""
        if not value.strip():
            raise serializers.ValidationError("Transporter must be specified")
        return value.strip()
