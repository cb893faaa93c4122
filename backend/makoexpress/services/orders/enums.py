"""Order lifecycle transition rules.

Valid transitions:
- PENDING -> ACCEPTED, CANCELLED
- ACCEPTED -> PICKED_UP
- PICKED_UP -> IN_TRANSIT
- IN_TRANSIT -> DELIVERED
- DELIVERED -> (terminal state)
- CANCELLED -> (terminal state)

Once a driver has accepted, cancellation is no longer available to the
customer; any change of mind goes through support.
"""

from enum import Enum
from typing import Dict, Optional, Set

from makoexpress.database.models.order import OrderStatus

ORDER_STATUS_TRANSITIONS: Dict[OrderStatus, Set[OrderStatus]] = {
    OrderStatus.PENDING: {
        OrderStatus.ACCEPTED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.ACCEPTED: {OrderStatus.PICKED_UP},
    OrderStatus.PICKED_UP: {OrderStatus.IN_TRANSIT},
    OrderStatus.IN_TRANSIT: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
}

# Statuses a driver moves an accepted order through, in order.
DELIVERY_PROGRESSION: tuple[OrderStatus, ...] = (
    OrderStatus.PENDING,
    OrderStatus.ACCEPTED,
    OrderStatus.PICKED_UP,
    OrderStatus.IN_TRANSIT,
    OrderStatus.DELIVERED,
)

DRIVER_ADVANCE_TARGETS: frozenset[OrderStatus] = frozenset(
    {OrderStatus.PICKED_UP, OrderStatus.IN_TRANSIT, OrderStatus.DELIVERED}
)


class ActionOutcome(str, Enum):
    """Outcome of a guarded lifecycle action.

    Attributes:
        SUCCESS: The transition was applied
        CONFLICT: The order is no longer in the state the action requires
        NOT_FOUND: No such order
        FORBIDDEN: The caller is not allowed to act on this order
    """

    SUCCESS = "success"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"


def validate_order_status_transition(
    current: OrderStatus,
    new: OrderStatus
) -> bool:
    """Validate if order status transition is allowed.

    Args:
        current: Current order status
        new: Desired new status

    Returns:
        True if transition is valid
    """
    return new in ORDER_STATUS_TRANSITIONS.get(current, set())


def get_allowed_order_transitions(
    current: OrderStatus
) -> Set[OrderStatus]:
    """Get all allowed transitions from current order status."""
    return ORDER_STATUS_TRANSITIONS.get(current, set()).copy()


def required_predecessor(target: OrderStatus) -> Optional[OrderStatus]:
    """Return the only status a driver may advance from to reach target.

    Each driver-driven status has exactly one predecessor, so the guarded
    write can check for it directly. Returns None for targets a driver
    cannot advance to.
    """
    if target not in DRIVER_ADVANCE_TARGETS:
        return None
    for current, allowed in ORDER_STATUS_TRANSITIONS.items():
        if target in allowed:
            return current
    return None


def progress_percentage(status: OrderStatus) -> int:
    """Share of the delivery progression reached, 0 for cancelled orders."""
    if status not in DELIVERY_PROGRESSION:
        return 0
    index = DELIVERY_PROGRESSION.index(status)
    return round(index / (len(DELIVERY_PROGRESSION) - 1) * 100)
