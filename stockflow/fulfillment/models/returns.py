"""
Return models: reversals of shipped items back into the warehouse.
"""

import uuid
from django.db import models
from django.utils import timezone

from ..utils import generate_reference


class ReturnStatus(models.TextChoices):
    """Return workflow states."""
    INITIATED = 'initiated', 'Initiated'
    PICKUP_SCHEDULED = 'pickup_scheduled', 'Pickup Scheduled'
    PICKED_UP = 'picked_up', 'Picked Up'
    RECEIVED = 'received', 'Received'
    PROCESSED = 'processed', 'Processed'


class ReturnReason(models.TextChoices):
    """Why the items came back."""
    DEFECTIVE = 'defective', 'Defective'
    DAMAGED = 'damaged', 'Damaged'
    WRONG_ITEM = 'wrong_item', 'Wrong Item'
    QUALITY_ISSUE = 'quality_issue', 'Quality Issue'
    CUSTOMER_REQUEST = 'customer_request', 'Customer Request'


class ReturnDisposition(models.TextChoices):
    """Terminal fate of the returned items."""
    RESTOCKED = 'restocked', 'Restocked'
    DAMAGED = 'damaged', 'Damaged'


class ReturnRequest(models.Model):
    """
    Customer or warehouse initiated reversal against a package.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    return_number = models.CharField(
        max_length=50,
        unique=True,
        help_text="Unique return identifier (RET-<timestamp>-<random>)"
    )
    package = models.ForeignKey(
        'Package',
        on_delete=models.PROTECT,
        related_name='returns'
    )
    order = models.ForeignKey(
        'Order',
        on_delete=models.PROTECT,
        related_name='returns'
    )
    warehouse_id = models.CharField(max_length=64, blank=True)

    reason = models.CharField(max_length=30, choices=ReturnReason.choices)
    status = models.CharField(
        max_length=20,
        choices=ReturnStatus.choices,
        default=ReturnStatus.INITIATED
    )
    disposition = models.CharField(
        max_length=20,
        choices=ReturnDisposition.choices,
        blank=True
    )

    initiated_by = models.CharField(max_length=64, blank=True)
    processed_by = models.CharField(max_length=64, blank=True)

    return_date = models.DateTimeField(default=timezone.now)
    received_date = models.DateTimeField(null=True, blank=True)
    processed_date = models.DateTimeField(null=True, blank=True)

    notes = models.TextField(blank=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['package', 'status']),
            models.Index(fields=['status']),
        ]

    def __str__(self):
        return f"Return {self.return_number} ({self.status})"

    def save(self, *args, **kwargs):
        if not self.return_number:
            self.return_number = generate_reference('RET')
        super().save(*args, **kwargs)

    @property
    def item_ids(self):
        ids = []
        for line in self.lines.all():
            ids.extend(item.id for item in line.items.all())
        return ids


class ReturnLine(models.Model):
    """Returned items of one product from one batch."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    return_request = models.ForeignKey(
        ReturnRequest,
        on_delete=models.CASCADE,
        related_name='lines'
    )
    product = models.ForeignKey('Product', on_delete=models.PROTECT, related_name='return_lines')
    batch = models.ForeignKey('Batch', on_delete=models.PROTECT, related_name='return_lines')
    quantity = models.PositiveIntegerField()
    items = models.ManyToManyField('Item', related_name='return_lines')

    class Meta:
        ordering = ['return_request', 'product']

    def __str__(self):
        return f"{self.quantity} x {self.product.sku} on {self.return_request.return_number}"
