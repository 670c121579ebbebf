"""
Return serializers for the fulfillment API.
"""

from rest_framework import serializers

from ..models import ReturnRequest, ReturnLine, ReturnReason, ReturnDisposition


class ReturnLineSerializer(serializers.ModelSerializer):
    """Serializer for ReturnLine model."""

    product_sku = serializers.CharField(source='product.sku', read_only=True)
    batch_number = serializers.CharField(source='batch.batch_number', read_only=True)
    items = serializers.PrimaryKeyRelatedField(many=True, read_only=True)

    class Meta:
        model = ReturnLine
        fields = ['id', 'product', 'product_sku', 'batch', 'batch_number', 'quantity', 'items']
        read_only_fields = fields


class ReturnSerializer(serializers.ModelSerializer):
    """Serializer for return details."""

    package_number = serializers.CharField(source='package.package_number', read_only=True)
    order_number = serializers.CharField(source='order.order_number', read_only=True)
    lines = ReturnLineSerializer(many=True, read_only=True)

    class Meta:
        model = ReturnRequest
        fields = [
            'id', 'return_number', 'package', 'package_number', 'order', 'order_number',
            'warehouse_id', 'reason', 'status', 'disposition', 'lines',
            'initiated_by', 'processed_by', 'return_date', 'received_date',
            'processed_date', 'notes', 'created_at', 'updated_at'
        ]
        read_only_fields = fields


class ReturnedItemSerializer(serializers.Serializer):
    """One returned line: product and batch as shipped, with optional item ids."""

    productId = serializers.UUIDField()
    batchId = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1)
    itemIds = serializers.ListField(child=serializers.UUIDField(), required=False, allow_empty=True)

    def validate(self, data):
        """Validate item ids against quantity."""
        item_ids = data.get('itemIds')
        if item_ids and len(set(item_ids)) != data['quantity']:
            raise serializers.ValidationError("itemIds must list exactly `quantity` distinct items")
        return data


class ReturnInitiateSerializer(serializers.Serializer):
    """Serializer for opening a return."""

    packageId = serializers.UUIDField()
    returnedItems = ReturnedItemSerializer(many=True, allow_empty=False)
    reason = serializers.ChoiceField(choices=ReturnReason.choices)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class SchedulePickupSerializer(serializers.Serializer):
    """Serializer for scheduling a reverse pickup."""

    transporterId = serializers.CharField(max_length=64)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class ReturnNotesSerializer(serializers.Serializer):
    """Serializer for return steps that only carry notes."""

    notes = serializers.CharField(required=False, allow_blank=True, default='')


class ReturnProcessSerializer(serializers.Serializer):
    """Serializer for the final return disposition."""

    disposition = serializers.ChoiceField(choices=ReturnDisposition.choices)
    notes = serializers.CharField(required=False, allow_blank=True, default='')
