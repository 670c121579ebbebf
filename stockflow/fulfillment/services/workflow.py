"""
Workflow service for the fulfillment pipeline.

Manages allowed state transitions per aggregate as explicit allow-lists.
"""

from ..exceptions import InvalidStateTransition
from ..models import (
    ItemStatus, OrderStatus, PackageStatus, TransportStatus, ReturnStatus
)


class Workflow:
    """Base workflow: a transition table keyed by current status."""

    entity_type = None
    ALLOWED_TRANSITIONS = {}

    @classmethod
    def validate_transition(cls, current_status: str, new_status: str) -> None:
        """
        Validate if a status transition is allowed.

        Args:
            current_status: Status the entity is in
            new_status: New status to transition to

        Raises:
            InvalidStateTransition: If transition is not allowed
        """
        allowed_transitions = cls.ALLOWED_TRANSITIONS.get(current_status, [])

        if new_status not in allowed_transitions:
            raise InvalidStateTransition(
                current_status=current_status,
                attempted_status=new_status,
                entity_type=cls.entity_type
            )

    @classmethod
    def can_transition_to(cls, current_status: str, new_status: str) -> bool:
        try:
            cls.validate_transition(current_status, new_status)
            return True
        except InvalidStateTransition:
            return False

    @classmethod
    def sources_for(cls, new_status: str) -> list:
        """Every status from which ``new_status`` is reachable."""
        return [
            status for status, targets in cls.ALLOWED_TRANSITIONS.items()
            if new_status in targets
        ]


class ItemWorkflow(Workflow):
    """Workflow rules for Item status transitions."""

    entity_type = "Item"
    ALLOWED_TRANSITIONS = {
        ItemStatus.IN_STOCK: [ItemStatus.ALLOCATED],
        ItemStatus.ALLOCATED: [ItemStatus.PACKED],
        ItemStatus.PACKED: [ItemStatus.DISPATCHED],
        ItemStatus.DISPATCHED: [ItemStatus.DELIVERED, ItemStatus.RETURNED],
        ItemStatus.DELIVERED: [ItemStatus.RETURNED],
        ItemStatus.RETURNED: [ItemStatus.DAMAGED, ItemStatus.RESTOCKED, ItemStatus.IN_STOCK],
        ItemStatus.RESTOCKED: [ItemStatus.IN_STOCK],
        ItemStatus.DAMAGED: [],  # Final state
    }


class PackageWorkflow(Workflow):
    """Workflow rules for Package status transitions."""

    entity_type = "Package"
    ALLOWED_TRANSITIONS = {
        PackageStatus.CREATED: [PackageStatus.READY_FOR_DISPATCH],
        PackageStatus.READY_FOR_DISPATCH: [PackageStatus.DISPATCHED],
        PackageStatus.DISPATCHED: [PackageStatus.IN_TRANSIT],
        PackageStatus.IN_TRANSIT: [PackageStatus.DELIVERED, PackageStatus.RETURNED],
        PackageStatus.DELIVERED: [PackageStatus.RETURNED],
        PackageStatus.RETURNED: [],  # Final state
    }

    TERMINAL_STATES = [PackageStatus.DELIVERED, PackageStatus.RETURNED]

    # Position along the forward path, used for "at or beyond" checks
    RANK = {
        PackageStatus.CREATED: 0,
        PackageStatus.READY_FOR_DISPATCH: 1,
        PackageStatus.DISPATCHED: 2,
        PackageStatus.IN_TRANSIT: 3,
        PackageStatus.DELIVERED: 4,
        PackageStatus.RETURNED: 5,
    }

    @classmethod
    def reached(cls, current_status: str, status: str) -> bool:
        return cls.RANK[current_status] >= cls.RANK[status]


class TransportWorkflow(Workflow):
    """Workflow rules for Transport status transitions."""

    entity_type = "Transport"
    ALLOWED_TRANSITIONS = {
        TransportStatus.DISPATCHED: [TransportStatus.IN_TRANSIT],
        TransportStatus.IN_TRANSIT: [TransportStatus.DELIVERED],
        TransportStatus.DELIVERED: [],  # Final state
    }


class ReturnWorkflow(Workflow):
    """Workflow rules for Return status transitions."""

    entity_type = "Return"
    ALLOWED_TRANSITIONS = {
        ReturnStatus.INITIATED: [ReturnStatus.PICKUP_SCHEDULED],
        ReturnStatus.PICKUP_SCHEDULED: [ReturnStatus.PICKED_UP],
        ReturnStatus.PICKED_UP: [ReturnStatus.RECEIVED, ReturnStatus.PROCESSED],
        ReturnStatus.RECEIVED: [ReturnStatus.PROCESSED],
        ReturnStatus.PROCESSED: [],  # Final state
    }


class OrderWorkflow(Workflow):
    """
    Workflow rules for Order status derived from packages.

    Derived statuses only ever move forward along RANK.
    """

    entity_type = "Order"
    RANK = {
        OrderStatus.PENDING: 0,
        OrderStatus.CONFIRMED: 1,
        OrderStatus.PROCESSING: 2,
        OrderStatus.PACKAGED: 3,
        OrderStatus.DISPATCHED: 4,
        OrderStatus.DELIVERED: 5,
        OrderStatus.RETURNED: 6,
    }
    ALLOWED_TRANSITIONS = {
        OrderStatus.PENDING: [OrderStatus.PROCESSING, OrderStatus.CANCELLED],
        OrderStatus.CONFIRMED: [OrderStatus.PROCESSING, OrderStatus.CANCELLED],
        OrderStatus.PROCESSING: [OrderStatus.PACKAGED, OrderStatus.DISPATCHED, OrderStatus.DELIVERED],
        OrderStatus.PACKAGED: [OrderStatus.DISPATCHED, OrderStatus.DELIVERED],
        OrderStatus.DISPATCHED: [OrderStatus.DELIVERED, OrderStatus.RETURNED],
        OrderStatus.DELIVERED: [OrderStatus.RETURNED],
        OrderStatus.RETURNED: [],  # Final state
        OrderStatus.CANCELLED: [],  # Final state
    }

    @classmethod
    def is_advance(cls, current_status: str, new_status: str) -> bool:
        """True when ``new_status`` lies strictly ahead of ``current_status``."""
        if current_status not in cls.RANK or new_status not in cls.RANK:
            return False
        return cls.RANK[new_status] > cls.RANK[current_status]


def validate_package_workflow(current_status: str, new_status: str) -> None:
    """
    Validate package workflow transition.

    Raises:
        InvalidStateTransition: If transition is not allowed
    """
    PackageWorkflow.validate_transition(current_status, new_status)


def validate_transport_workflow(current_status: str, new_status: str) -> None:
    TransportWorkflow.validate_transition(current_status, new_status)


def validate_return_workflow(current_status: str, new_status: str) -> None:
    ReturnWorkflow.validate_transition(current_status, new_status)
