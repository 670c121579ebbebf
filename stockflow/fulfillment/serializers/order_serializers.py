"""
Order serializers for the fulfillment API.
"""

from rest_framework import serializers

from ..models import Order, OrderLine


class OrderLineSerializer(serializers.ModelSerializer):
    """Serializer for OrderLine model."""

    product_sku = serializers.CharField(source='product.sku', read_only=True)
    product_name = serializers.CharField(source='product.name', read_only=True)
    line_total = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)

    class Meta:
        model = OrderLine
        fields = [
            'id', 'product', 'product_sku', 'product_name',
            'quantity', 'unit_price', 'line_total', 'position'
        ]
        read_only_fields = fields


class OrderListSerializer(serializers.ModelSerializer):
    """Serializer for order listing."""

    package_count = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            'id', 'order_number', 'customer_id', 'warehouse_id', 'status',
            'package_count', 'created_at'
        ]

    def get_package_count(self, obj):
        return obj.packages.count()


class OrderDetailSerializer(serializers.ModelSerializer):
    """Serializer for order details."""

    lines = OrderLineSerializer(many=True, read_only=True)
    total_amount = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)
    packages = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            'id', 'order_number', 'customer_id', 'warehouse_id', 'status',
            'notes', 'total_amount', 'lines', 'packages', 'created_at', 'updated_at'
        ]
        read_only_fields = fields

    def get_packages(self, obj):
        return [
            {'id': str(package.id), 'package_number': package.package_number, 'status': package.status}
            for package in obj.packages.all()
        ]


class OrderProcessSerializer(serializers.Serializer):
    """Serializer for the order processing action."""

    notes = serializers.CharField(required=False, allow_blank=True, default='')
