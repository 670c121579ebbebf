"""
Order models consumed by the fulfillment pipeline.
"""

import uuid
from decimal import Decimal
from django.db import models
from django.utils import timezone

from ..utils import generate_reference


class OrderStatus(models.TextChoices):
    """Order status enumeration with workflow states."""
    PENDING = 'pending', 'Pending'
    CONFIRMED = 'confirmed', 'Confirmed'
    PROCESSING = 'processing', 'Processing'
    PACKAGED = 'packaged', 'Packaged'
    DISPATCHED = 'dispatched', 'Dispatched'
    DELIVERED = 'delivered', 'Delivered'
    RETURNED = 'returned', 'Returned'
    CANCELLED = 'cancelled', 'Cancelled'


class Order(models.Model):
    """
    Customer order.

    The order is owned by the sales side of the system; the pipeline only
    advances its status from the state of its packages.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order_number = models.CharField(
        max_length=50,
        unique=True,
        help_text="Unique order identifier (auto-generated)"
    )
    customer_id = models.CharField(max_length=64, blank=True)
    warehouse_id = models.CharField(
        max_length=64,
        blank=True,
        help_text="Warehouse fulfilling this order"
    )

    status = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
        help_text="Current order status in the fulfillment workflow"
    )

    notes = models.TextField(blank=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status']),
            models.Index(fields=['order_number']),
        ]

    def __str__(self):
        return f"Order {self.order_number} ({self.status})"

    def save(self, *args, **kwargs):
        """Override save to auto-generate order number if not provided."""
        if not self.order_number:
            self.order_number = generate_reference('ORD')
        super().save(*args, **kwargs)

    @property
    def total_amount(self):
        return sum((line.line_total for line in self.lines.all()), Decimal('0.00'))


class OrderLine(models.Model):
    """A requested product quantity on an order."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name='lines'
    )
    product = models.ForeignKey(
        'Product',
        on_delete=models.PROTECT,
        related_name='order_lines'
    )
    quantity = models.PositiveIntegerField()
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    position = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ['order', 'position']

    def __str__(self):
        return f"{self.quantity} x {self.product.sku} on {self.order.order_number}"

    @property
    def line_total(self):
        return self.unit_price * self.quantity
