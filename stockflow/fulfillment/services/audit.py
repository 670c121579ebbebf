"""
Audit recorder for the fulfillment pipeline.

Audit writes are best-effort: a failed write is logged and never rolls back
the transition that triggered it.
"""

import logging
from typing import Any, Dict
from django.db import transaction, DatabaseError
from django.utils import timezone

from ..models import AuditLog

logger = logging.getLogger(__name__)


def record_audit(user_id, action: str, entity_type: str, entity_id, value: Dict[str, Any] = None,
                 details: str = "") -> AuditLog:
    """
    Append one audit record.

    The insert runs in its own savepoint so that a database error leaves the
    surrounding transaction usable.

    Returns:
        The created AuditLog, or None if the write failed
    """
    try:
        with transaction.atomic():
            return AuditLog.objects.create(
                user_id=str(user_id or ''),
                action=action,
                entity_type=entity_type,
                entity_id=str(entity_id),
                value=value or {},
                timestamp=timezone.now(),
                details=details or "",
            )
    except (DatabaseError, PermissionError, TypeError, ValueError):
        logger.exception(
            "Audit write failed for %s %s (%s)", entity_type, entity_id, action
        )
        return None
