"""Guarded status writes for repair orders."""

import logging

from repair_desk.database.models import RepairOrder
from repair_desk.errors import InvalidTransition
from repair_desk.utils.constants import ORDER_TRANSITIONS

logger = logging.getLogger(__name__)


def can_transition(current: str, target: str) -> bool:
    return target in ORDER_TRANSITIONS.get(current, ())


def check_transition(current: str, target: str):
    """Raise InvalidTransition unless current -> target is in the graph."""
    if not can_transition(current, target):
        raise InvalidTransition(
            f"Cannot move order from {current} to {target}"
        )


def apply_transition(conn, order: RepairOrder, target: str, **fields):
    """Move *order* to *target*, optionally updating other columns.

    The write is a compare-and-set on the status the caller read, so a
    concurrent transition that got there first turns this one into an
    InvalidTransition instead of silently overwriting it.
    """
    check_transition(order.status, target)
    assignments = ", ".join(["status = ?"] + [f"{k} = ?" for k in fields])
    cursor = conn.execute(
        f"UPDATE repair_orders SET {assignments} "
        "WHERE id = ? AND status = ?",
        (target, *fields.values(), order.id, order.status),
    )
    if cursor.rowcount == 0:
        raise InvalidTransition(
            f"Order {order.id} is no longer {order.status}"
        )
    logger.info(f"Order {order.id}: {order.status} -> {target}")
    order.status = target
    for key, value in fields.items():
        setattr(order, key, value)
