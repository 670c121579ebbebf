"""
Item ledger for the fulfillment pipeline.

Every item status change in the pipeline goes through ``ItemLedger``. Updates
are always scoped to an explicit list of item ids and guarded by the expected
current status, so a concurrent request that moved any of the items first
makes the whole call fail instead of silently touching fewer rows.
"""

import logging
from typing import Iterable, List
from django.db import transaction
from django.utils import timezone

from ..exceptions import InvalidStateTransition, NotFound
from ..models import Item, ItemEvent
from .workflow import ItemWorkflow

logger = logging.getLogger(__name__)


class ItemLedger:
    """Service class for item status transitions."""

    @staticmethod
    def transition(item_ids: Iterable, new_status: str, action: str = None, notes: str = "",
                   location: str = "", from_statuses: List[str] = None) -> int:
        """
        Move the given items to ``new_status`` and append one history event each.

        Args:
            item_ids: Ids of the items to move
            new_status: Target item status
            action: History action name (defaults to the new status)
            notes: History notes
            location: Where the action happened
            from_statuses: Statuses the items must currently be in; defaults to
                every status the item workflow allows into ``new_status``

        Returns:
            Number of items moved

        Raises:
            InvalidStateTransition: If any item is not in an allowed source status
            NotFound: If any item does not exist
        """
        item_ids = list({str(item_id): item_id for item_id in item_ids}.values())
        if not item_ids:
            return 0

        if from_statuses is None:
            from_statuses = ItemWorkflow.sources_for(new_status)
        for status in from_statuses:
            ItemWorkflow.validate_transition(status, new_status)

        with transaction.atomic():
            updated = Item.objects.filter(
                id__in=item_ids, status__in=from_statuses
            ).update(status=new_status, updated_at=timezone.now())

            if updated != len(item_ids):
                ItemLedger._raise_for_mismatch(item_ids, from_statuses, new_status)

            now = timezone.now()
            ItemEvent.objects.bulk_create([
                ItemEvent(
                    item_id=item_id,
                    action=action or new_status,
                    location=location,
                    notes=notes or "",
                    timestamp=now,
                )
                for item_id in item_ids
            ])

        logger.debug("Moved %d items to %s", len(item_ids), new_status)
        return len(item_ids)

    @staticmethod
    def _raise_for_mismatch(item_ids, from_statuses, new_status):
        """Explain why a guarded update touched fewer rows than requested."""
        found = {
            str(item_id): status
            for item_id, status in Item.objects.filter(id__in=item_ids).values_list('id', 'status')
        }
        missing = [item_id for item_id in item_ids if str(item_id) not in found]
        if missing:
            raise NotFound("Item", missing[0])

        for item_id, status in found.items():
            if status not in from_statuses:
                raise InvalidStateTransition(
                    current_status=status,
                    attempted_status=new_status,
                    entity_type="Item",
                    message=f"Item {item_id} cannot move from {status} to {new_status}"
                )

        # Rows changed between the update and this read; report generically
        raise InvalidStateTransition(
            current_status="unknown", attempted_status=new_status, entity_type="Item"
        )

    @staticmethod
    def history(item_id) -> List[ItemEvent]:
        return list(ItemEvent.objects.filter(item_id=item_id).order_by('timestamp', 'id'))
