"""Order status transition table.

Status changes are unchecked unless ``enforce_status_transitions`` is
enabled, in which case ``OrderService.change_status`` consults
``is_transition_allowed`` before writing. PAID is reached through payment
recording only, so the table never allows it as a manual target.
"""

from typing import Dict, Set

from order_service.database.models.order import OrderStatus

ORDER_STATUS_TRANSITIONS: Dict[OrderStatus, Set[OrderStatus]] = {
    OrderStatus.PENDING: {
        OrderStatus.CANCELLED
    },
    OrderStatus.PAID: {
        OrderStatus.CANCELLED  # Refunded out of band
    },
    OrderStatus.CANCELLED: set(),  # Terminal
}


def get_allowed_transitions(current: OrderStatus) -> Set[OrderStatus]:
    """Get the statuses an order may move to from ``current``."""
    return set(ORDER_STATUS_TRANSITIONS.get(current, set()))


def is_transition_allowed(current: OrderStatus, new: OrderStatus) -> bool:
    """Validate if order status transition is allowed.

    Staying in the same status is always allowed.

    Args:
        current: Current order status
        new: Desired new status

    Returns:
        True if transition is valid, False otherwise
    """
    if current == new:
        return True
    return new in ORDER_STATUS_TRANSITIONS.get(current, set())
