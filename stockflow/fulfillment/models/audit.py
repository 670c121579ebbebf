"""
Audit log model for the fulfillment pipeline.
"""

import uuid
from decimal import Decimal
from django.db import models
from django.utils import timezone


def convert_decimals(obj):
    """Make Decimal and UUID values JSON serializable."""
    if isinstance(obj, dict):
        return {k: convert_decimals(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [convert_decimals(item) for item in obj]
    elif isinstance(obj, (Decimal, uuid.UUID)):
        return str(obj)
    else:
        return obj


class AuditLogQuerySet(models.QuerySet):

    def update(self, **kwargs):
        raise PermissionError("Audit records are immutable")

    def delete(self):
        raise PermissionError("Audit records are immutable")


class AuditLog(models.Model):
    """
    Immutable record of one state transition.

    Used for dispute resolution and item traceability. Records are only ever
    appended; updates and deletes raise.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    user_id = models.CharField(
        max_length=64,
        blank=True,
        help_text="Identity of the acting user"
    )
    action = models.CharField(
        max_length=50,
        help_text="Action performed (package_packed, transport_assigned, etc.)"
    )
    entity_type = models.CharField(
        max_length=50,
        help_text="Type of entity (Package, Transport, ReturnRequest, etc.)"
    )
    entity_id = models.CharField(
        max_length=64,
        help_text="Identifier of the entity being audited"
    )
    value = models.JSONField(
        default=dict,
        blank=True,
        help_text="Free-form payload describing the change"
    )
    timestamp = models.DateTimeField(default=timezone.now)
    details = models.TextField(blank=True)

    objects = AuditLogQuerySet.as_manager()

    class Meta:
        ordering = ['-timestamp']
        indexes = [
            models.Index(fields=['entity_type', 'entity_id', '-timestamp']),
            models.Index(fields=['action', '-timestamp']),
            models.Index(fields=['user_id', '-timestamp']),
        ]

    def __str__(self):
        return f"{self.entity_type} {self.entity_id} - {self.action} by {self.user_id} at {self.timestamp}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise PermissionError("Audit records are immutable")
        self.value = convert_decimals(self.value or {})
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise PermissionError("Audit records are immutable")
