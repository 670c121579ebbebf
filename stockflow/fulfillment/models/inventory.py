"""
Inventory models: products, batches and individually tracked items.
"""

import uuid
from decimal import Decimal
from django.db import models
from django.utils import timezone


class Product(models.Model):
    """
    Product reference record.

    Catalogue management lives elsewhere; the pipeline only reads the unit
    values used to compute package totals.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    sku = models.CharField(max_length=100, unique=True)
    name = models.CharField(max_length=255)

    unit_weight = models.DecimalField(
        max_digits=10,
        decimal_places=3,
        default=Decimal('0.000'),
        help_text="Weight of a single unit in kg"
    )
    unit_volume = models.DecimalField(
        max_digits=12,
        decimal_places=3,
        default=Decimal('0.000'),
        help_text="Volume of a single unit in cubic cm"
    )
    unit_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        help_text="Sale price of a single unit"
    )

    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['sku']

    def __str__(self):
        return f"{self.sku} - {self.name}"


class BatchStatus(models.TextChoices):
    """Batch status enumeration."""
    ACTIVE = 'active', 'Active'
    DEPLETED = 'depleted', 'Depleted'
    EXPIRED = 'expired', 'Expired'


class Batch(models.Model):
    """
    A received lot of a product sharing manufacture and expiry metadata.

    Owns the Items it produced.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    batch_number = models.CharField(max_length=100, unique=True)
    product = models.ForeignKey(
        Product,
        on_delete=models.PROTECT,
        related_name='batches'
    )
    warehouse_id = models.CharField(
        max_length=64,
        help_text="Warehouse holding this batch"
    )

    mfg_date = models.DateField(null=True, blank=True)
    exp_date = models.DateField(null=True, blank=True)
    received_at = models.DateTimeField(default=timezone.now)

    status = models.CharField(
        max_length=20,
        choices=BatchStatus.choices,
        default=BatchStatus.ACTIVE
    )
    unit_cost = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)

    class Meta:
        ordering = ['received_at']
        indexes = [
            models.Index(fields=['product', 'status']),
            models.Index(fields=['exp_date', 'received_at']),
        ]

    def __str__(self):
        return f"Batch {self.batch_number} ({self.product.sku})"

    @property
    def is_expired(self):
        if self.status == BatchStatus.EXPIRED:
            return True
        return bool(self.exp_date and self.exp_date < timezone.now().date())


class ItemStatus(models.TextChoices):
    """Lifecycle status of a single physical unit."""
    IN_STOCK = 'in_stock', 'In Stock'
    ALLOCATED = 'allocated', 'Allocated'
    PACKED = 'packed', 'Packed'
    DISPATCHED = 'dispatched', 'Dispatched'
    DELIVERED = 'delivered', 'Delivered'
    RETURNED = 'returned', 'Returned'
    DAMAGED = 'damaged', 'Damaged'
    RESTOCKED = 'restocked', 'Restocked'


class Item(models.Model):
    """
    One physical, individually tracked unit of a product.

    Status changes go through the item ledger service only; the history
    relation is append-only.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    serial_number = models.CharField(max_length=100, unique=True)
    product = models.ForeignKey(
        Product,
        on_delete=models.PROTECT,
        related_name='items'
    )
    batch = models.ForeignKey(
        Batch,
        on_delete=models.PROTECT,
        related_name='items'
    )
    status = models.CharField(
        max_length=20,
        choices=ItemStatus.choices,
        default=ItemStatus.IN_STOCK
    )

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['created_at', 'serial_number']
        indexes = [
            models.Index(fields=['batch', 'status']),
            models.Index(fields=['product', 'status']),
        ]

    def __str__(self):
        return f"Item {self.serial_number} ({self.status})"


class ItemEvent(models.Model):
    """Append-only history entry for an Item."""

    id = models.BigAutoField(primary_key=True)
    item = models.ForeignKey(
        Item,
        on_delete=models.CASCADE,
        related_name='history'
    )
    action = models.CharField(max_length=20)
    location = models.CharField(max_length=100, blank=True)
    notes = models.TextField(blank=True)
    timestamp = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['timestamp', 'id']

    def __str__(self):
        return f"{self.item_id} {self.action} at {self.timestamp}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Item history entries are append-only")
        super().save(*args, **kwargs)
