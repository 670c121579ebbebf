"""
Transport models: transporter assignments for packages and returns.
"""

import uuid
from django.db import models
from django.db.models import Q
from django.utils import timezone


class TransportType(models.TextChoices):
    """Direction of a transport leg."""
    FORWARD = 'forward', 'Forward'
    REVERSE = 'reverse', 'Reverse'


class TransportStatus(models.TextChoices):
    """Transport status enumeration."""
    DISPATCHED = 'dispatched', 'Dispatched'
    IN_TRANSIT = 'in_transit', 'In Transit'
    DELIVERED = 'delivered', 'Delivered'


class Transport(models.Model):
    """
    A transporter assignment for one package in one direction.

    Forward legs deliver a package to the customer; reverse legs pick up a
    return. Reassignment deactivates the previous record instead of deleting
    it, and the conditional unique constraints keep a single active record
    per package (forward) or per return (reverse).
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    package = models.ForeignKey(
        'Package',
        on_delete=models.PROTECT,
        related_name='transports'
    )
    return_request = models.ForeignKey(
        'ReturnRequest',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='transports',
        help_text="Return being picked up (reverse legs only)"
    )
    transporter_id = models.CharField(max_length=64)
    transport_type = models.CharField(
        max_length=10,
        choices=TransportType.choices,
        default=TransportType.FORWARD
    )
    assigned_by = models.CharField(max_length=64, blank=True)

    status = models.CharField(
        max_length=20,
        choices=TransportStatus.choices,
        default=TransportStatus.DISPATCHED
    )
    is_active = models.BooleanField(default=True)
    superseded_at = models.DateTimeField(null=True, blank=True)

    notes = models.TextField(blank=True)

    dispatched_at = models.DateTimeField(default=timezone.now)
    delivered_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['package', 'transport_type', 'is_active']),
            models.Index(fields=['transporter_id', 'status']),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['package'],
                condition=Q(is_active=True, transport_type='forward'),
                name='one_active_forward_transport_per_package'
            ),
            models.UniqueConstraint(
                fields=['return_request'],
                condition=Q(is_active=True, transport_type='reverse'),
                name='one_active_reverse_transport_per_return'
            ),
        ]

    def __str__(self):
        return f"{self.transport_type} transport {self.id} by {self.transporter_id} ({self.status})"

    @property
    def is_forward(self):
        return self.transport_type == TransportType.FORWARD


class TransportStatusEntry(models.Model):
    """Status history entry for a transport."""

    id = models.BigAutoField(primary_key=True)
    transport = models.ForeignKey(
        Transport,
        on_delete=models.CASCADE,
        related_name='status_history'
    )
    status = models.CharField(max_length=20, choices=TransportStatus.choices)
    notes = models.TextField(blank=True)
    updated_by = models.CharField(max_length=64, blank=True)
    timestamp = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['timestamp', 'id']
        verbose_name_plural = 'transport status entries'

    def __str__(self):
        return f"{self.transport_id} -> {self.status} at {self.timestamp}"
