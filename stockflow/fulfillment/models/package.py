"""
Package models for the fulfillment pipeline.
"""

import uuid
from decimal import Decimal
from django.db import models
from django.utils import timezone

from ..utils import generate_reference


class PackageStatus(models.TextChoices):
    """Package lifecycle states."""
    CREATED = 'created', 'Created'
    READY_FOR_DISPATCH = 'ready_for_dispatch', 'Ready for Dispatch'
    DISPATCHED = 'dispatched', 'Dispatched'
    IN_TRANSIT = 'in_transit', 'In Transit'
    DELIVERED = 'delivered', 'Delivered'
    RETURNED = 'returned', 'Returned'


class Package(models.Model):
    """
    Shippable grouping of allocated items for one order.

    Totals are computed from product unit values when the package is
    created and are not changed afterwards.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    package_number = models.CharField(
        max_length=50,
        unique=True,
        help_text="Unique package identifier (PKG-<timestamp>-<random>)"
    )
    order = models.ForeignKey(
        'Order',
        on_delete=models.PROTECT,
        related_name='packages'
    )

    status = models.CharField(
        max_length=20,
        choices=PackageStatus.choices,
        default=PackageStatus.CREATED
    )

    # Computed totals
    total_weight = models.DecimalField(max_digits=14, decimal_places=3, default=Decimal('0.000'))
    total_volume = models.DecimalField(max_digits=16, decimal_places=3, default=Decimal('0.000'))
    total_value = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))

    created_by = models.CharField(max_length=64, blank=True)
    packed_by = models.CharField(max_length=64, blank=True)
    packed_at = models.DateTimeField(null=True, blank=True)

    notes = models.TextField(blank=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['order', 'status']),
            models.Index(fields=['status']),
        ]

    def __str__(self):
        return f"Package {self.package_number} - {self.status}"

    def save(self, *args, **kwargs):
        if not self.package_number:
            self.package_number = generate_reference('PKG')
        super().save(*args, **kwargs)

    @property
    def item_ids(self):
        """Ids of every item referenced by this package's allocations."""
        ids = []
        for allocation in self.allocations.all():
            ids.extend(item.id for item in allocation.items.all())
        return ids

    @property
    def total_quantity(self):
        return sum(allocation.quantity for allocation in self.allocations.all())


class PackageAllocation(models.Model):
    """
    One allocation entry of a package: items of one product from one batch.

    ``quantity`` always equals the number of referenced items.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    package = models.ForeignKey(
        Package,
        on_delete=models.CASCADE,
        related_name='allocations'
    )
    product = models.ForeignKey(
        'Product',
        on_delete=models.PROTECT,
        related_name='package_allocations'
    )
    batch = models.ForeignKey(
        'Batch',
        on_delete=models.PROTECT,
        related_name='package_allocations'
    )
    quantity = models.PositiveIntegerField()
    items = models.ManyToManyField(
        'Item',
        related_name='package_allocations'
    )
    position = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ['package', 'position']

    def __str__(self):
        return f"{self.quantity} x {self.product.sku} (batch {self.batch.batch_number})"
