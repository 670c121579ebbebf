"""
Django admin configuration for Order Fulfillment & Returns.
"""

from django.contrib import admin
from .models import (
    Product, Batch, Item, ItemEvent, Order, OrderLine, Package, PackageAllocation,
    Transport, TransportStatusEntry, ReturnRequest, ReturnLine, AuditLog
)


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['sku', 'name', 'unit_weight', 'unit_volume', 'unit_price']
    search_fields = ['sku', 'name']
    readonly_fields = ['id', 'created_at']


@admin.register(Batch)
class BatchAdmin(admin.ModelAdmin):
    list_display = ['batch_number', 'product', 'warehouse_id', 'exp_date', 'received_at', 'status']
    list_filter = ['status', 'warehouse_id']
    search_fields = ['batch_number', 'product__sku']
    readonly_fields = ['id']


class ItemEventInline(admin.TabularInline):
    model = ItemEvent
    extra = 0
    can_delete = False
    readonly_fields = ['action', 'location', 'notes', 'timestamp']


@admin.register(Item)
class ItemAdmin(admin.ModelAdmin):
    list_display = ['serial_number', 'product', 'batch', 'status', 'updated_at']
    list_filter = ['status']
    search_fields = ['serial_number', 'product__sku', 'batch__batch_number']
    readonly_fields = ['id', 'status', 'created_at', 'updated_at']
    inlines = [ItemEventInline]


class OrderLineInline(admin.TabularInline):
    model = OrderLine
    extra = 0


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ['order_number', 'customer_id', 'warehouse_id', 'status', 'created_at']
    list_filter = ['status', 'created_at']
    search_fields = ['order_number', 'customer_id']
    readonly_fields = ['id', 'order_number', 'status', 'created_at', 'updated_at']
    inlines = [OrderLineInline]


class PackageAllocationInline(admin.TabularInline):
    model = PackageAllocation
    extra = 0
    readonly_fields = ['product', 'batch', 'quantity', 'position']


@admin.register(Package)
class PackageAdmin(admin.ModelAdmin):
    list_display = ['package_number', 'order', 'status', 'total_weight', 'total_value', 'packed_at']
    list_filter = ['status', 'created_at']
    search_fields = ['package_number', 'order__order_number']
    readonly_fields = [
        'id', 'package_number', 'status', 'total_weight', 'total_volume', 'total_value',
        'packed_by', 'packed_at', 'created_at', 'updated_at'
    ]
    inlines = [PackageAllocationInline]


class TransportStatusEntryInline(admin.TabularInline):
    model = TransportStatusEntry
    extra = 0
    can_delete = False
    readonly_fields = ['status', 'notes', 'updated_by', 'timestamp']


@admin.register(Transport)
class TransportAdmin(admin.ModelAdmin):
    list_display = ['id', 'package', 'transport_type', 'transporter_id', 'status', 'is_active', 'dispatched_at']
    list_filter = ['transport_type', 'status', 'is_active']
    search_fields = ['transporter_id', 'package__package_number']
    readonly_fields = ['id', 'status', 'is_active', 'superseded_at', 'created_at', 'updated_at']
    inlines = [TransportStatusEntryInline]


class ReturnLineInline(admin.TabularInline):
    model = ReturnLine
    extra = 0
    readonly_fields = ['product', 'batch', 'quantity']


@admin.register(ReturnRequest)
class ReturnRequestAdmin(admin.ModelAdmin):
    list_display = ['return_number', 'package', 'reason', 'status', 'disposition', 'return_date']
    list_filter = ['status', 'reason', 'disposition']
    search_fields = ['return_number', 'package__package_number', 'order__order_number']
    readonly_fields = ['id', 'return_number', 'status', 'received_date', 'processed_date', 'created_at', 'updated_at']
    inlines = [ReturnLineInline]


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ['entity_type', 'entity_id', 'action', 'user_id', 'timestamp']
    list_filter = ['entity_type', 'action', 'timestamp']
    search_fields = ['entity_id', 'user_id', 'details']
    readonly_fields = ['id', 'user_id', 'action', 'entity_type', 'entity_id', 'value', 'timestamp', 'details']

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
