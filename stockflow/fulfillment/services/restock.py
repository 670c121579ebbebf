"""
Restocking of returned items.

A restocked item only goes back to ``in_stock`` once the package it shipped in
is delivered or returned. While that package is still on the road the item is
held as ``restocked``, so the package stays its only open reference and cannot
be re-allocated underneath it.
"""

import logging
from typing import List

from ..models import (
    Batch, BatchStatus, ItemStatus, Package, ReturnDisposition, ReturnLine, ReturnStatus
)
from .ledger import ItemLedger
from .workflow import PackageWorkflow

logger = logging.getLogger(__name__)


def restock_items(item_ids: List, batch: Batch, notes: str, from_status: str) -> int:
    """Put items back in stock in their batch, reopening the batch if depleted."""
    moved = ItemLedger.transition(
        item_ids, ItemStatus.IN_STOCK, action='restocked',
        notes=notes, location="Warehouse", from_statuses=[from_status],
    )
    if moved and batch.status == BatchStatus.DEPLETED:
        Batch.objects.filter(id=batch.id, status=BatchStatus.DEPLETED).update(status=BatchStatus.ACTIVE)
        batch.status = BatchStatus.ACTIVE
    return moved


def must_hold(package: Package) -> bool:
    return package.status not in PackageWorkflow.TERMINAL_STATES


def release_held_restocks(package: Package) -> int:
    """
    Release items held as ``restocked`` by processed returns of a package.

    Must be called inside the caller's transaction once the package is
    delivered or returned. Items of an expired batch stay ``restocked``.

    Returns:
        Number of items moved to ``in_stock``
    """
    lines = ReturnLine.objects.filter(
        return_request__package_id=package.id,
        return_request__status=ReturnStatus.PROCESSED,
        return_request__disposition=ReturnDisposition.RESTOCKED,
    ).select_related('return_request')

    released = 0
    for line in lines:
        item_ids = list(line.items.filter(status=ItemStatus.RESTOCKED).values_list('id', flat=True))
        if not item_ids:
            continue

        batch = Batch.objects.select_for_update().get(id=line.batch_id)
        if batch.is_expired:
            continue

        released += restock_items(
            item_ids, batch,
            f"Released from return {line.return_request.return_number} after package "
            f"{package.package_number} was {package.status}",
            ItemStatus.RESTOCKED,
        )

    if released:
        logger.info(f"Released {released} held items of package {package.package_number} to stock")
    return released
