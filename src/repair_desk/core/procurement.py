"""Procurement reconciler: backorders and their promotion on receipt."""

import logging
from datetime import datetime, timedelta
from typing import Iterable, Optional

from repair_desk.config import Config
from repair_desk.core.actors import Actor, require_permission
from repair_desk.core.inventory import InventoryLedger, _require_positive
from repair_desk.core.locks import EntityLocks
from repair_desk.core.transitions import apply_transition
from repair_desk.database.connection import DatabaseConnection
from repair_desk.database.models import PartOrder, SparePart
from repair_desk.database.repository import Repository
from repair_desk.errors import InvalidTransition, NotFound, PermissionDenied
from repair_desk.utils.constants import (
    PENDING_PART_ORDER_STATUSES,
    SETTLED_PART_ORDER_STATUSES,
)

logger = logging.getLogger(__name__)

_PENDING_SQL = "('ORDERED', 'IN_DELIVERY')"


class ProcurementReconciler:
    """Links backorders to waiting repair orders and promotes them.

    Registers itself with the ledger so that every receipt, whichever
    console records it, reconciles inside the receipt's own transaction
    while the part's lock is still held.
    """

    def __init__(self, db: DatabaseConnection, repo: Repository,
                 ledger: InventoryLedger, locks: EntityLocks):
        self.db = db
        self.repo = repo
        self.ledger = ledger
        self.locks = locks
        ledger.add_receipt_listener(self._on_receipt)

    # ── Creating backorders ─────────────────────────────────────

    def _create_part_order(self, conn, part_id: int, quantity: int,
                           repair_order_id: Optional[int] = None,
                           requested_by: Optional[int] = None) -> int:
        if self.repo.get_part_by_id(part_id, conn) is None:
            raise NotFound(f"Part {part_id} not found")
        now = datetime.now()
        eta = now + timedelta(days=Config.DEFAULT_PART_ORDER_LEAD_DAYS)
        cursor = conn.execute(
            "INSERT INTO part_orders "
            "(part_id, quantity, status, repair_order_id, requested_by, "
            "order_date, estimated_delivery) "
            "VALUES (?, ?, 'ORDERED', ?, ?, ?, ?)",
            (part_id, quantity, repair_order_id, requested_by,
             now.isoformat(), eta.isoformat()),
        )
        logger.info(
            f"Part order {cursor.lastrowid}: {quantity} x part {part_id}"
            + (f" for order {repair_order_id}" if repair_order_id else "")
        )
        return cursor.lastrowid

    def create_part_order(self, actor: Actor, part_id: int,
                          quantity: int) -> PartOrder:
        """Warehouse replenishment not tied to any repair order."""
        require_permission(actor, "part_orders_manage")
        _require_positive(quantity)
        with self.db.transaction() as conn:
            po_id = self._create_part_order(
                conn, part_id, quantity, requested_by=actor.id
            )
            return self.repo.get_part_order_by_id(po_id, conn)

    def _order_backorder_for_shortages(self, conn, order_id: int,
                                       shortages: list[dict],
                                       requested_by: Optional[int]) -> bool:
        """Cover each shortage not already covered by a pending backorder.

        Returns True if any part is short at all.
        """
        pending: dict[int, int] = {}
        for po in self.repo.get_part_orders_for_repair_order(order_id, conn):
            if po.status in PENDING_PART_ORDER_STATUSES:
                pending[po.part_id] = pending.get(po.part_id, 0) + po.quantity

        any_short = False
        for line in shortages:
            if line["shortage"] <= 0:
                continue
            any_short = True
            missing = line["shortage"] - pending.get(line["part_id"], 0)
            if missing > 0:
                self._create_part_order(
                    conn, line["part_id"], missing,
                    repair_order_id=order_id, requested_by=requested_by,
                )
        return any_short

    def request_parts(self, actor: Actor, order_id: int, part_id: int,
                      quantity: int) -> PartOrder:
        """Technician-issued backorder for a repair order.

        Allowed while diagnosing or repairing. During repair it parks the
        order in WAITING_FOR_PARTS until the backorders are settled.
        """
        require_permission(actor, "parts_request")
        _require_positive(quantity)
        with self.locks.order(order_id):
            with self.db.transaction() as conn:
                order = self.repo.require_repair_order(order_id, conn)
                if order.technician_id != actor.id:
                    raise PermissionDenied(
                        f"Order {order_id} is not assigned to you"
                    )
                if order.status not in ("DIAGNOSING", "IN_PROGRESS"):
                    raise InvalidTransition(
                        f"Cannot request parts while order is {order.status}"
                    )
                po_id = self._create_part_order(
                    conn, part_id, quantity,
                    repair_order_id=order_id, requested_by=actor.id,
                )
                if order.status == "IN_PROGRESS":
                    apply_transition(conn, order, "WAITING_FOR_PARTS")
                return self.repo.get_part_order_by_id(po_id, conn)

    # ── Status changes ──────────────────────────────────────────

    def _set_part_order_status(self, conn, po_id: int, target: str,
                               allowed_from: Iterable[str], **fields):
        allowed = tuple(allowed_from)
        assignments = ", ".join(["status = ?"] + [f"{k} = ?" for k in fields])
        placeholders = ", ".join("?" for _ in allowed)
        cursor = conn.execute(
            f"UPDATE part_orders SET {assignments} "
            f"WHERE id = ? AND status IN ({placeholders})",
            (target, *fields.values(), po_id, *allowed),
        )
        if cursor.rowcount == 0:
            po = self.repo.get_part_order_by_id(po_id, conn)
            if po is None:
                raise NotFound(f"Part order {po_id} not found")
            raise InvalidTransition(
                f"Part order {po_id} cannot move from {po.status} to {target}"
            )

    def mark_in_delivery(self, actor: Actor, po_id: int,
                         estimated_delivery: Optional[str] = None) -> PartOrder:
        require_permission(actor, "part_orders_manage")
        with self.db.transaction() as conn:
            fields = {}
            if estimated_delivery:
                fields["estimated_delivery"] = estimated_delivery
            self._set_part_order_status(
                conn, po_id, "IN_DELIVERY", ["ORDERED"], **fields
            )
            return self.repo.get_part_order_by_id(po_id, conn)

    def cancel_part_order(self, actor: Actor, po_id: int) -> PartOrder:
        """Cancel a pending backorder.

        Cancelling the last outstanding backorder of a waiting repair order
        releases that order just like a delivery would.
        """
        require_permission(actor, "part_orders_manage")
        po = self.repo.get_part_order_by_id(po_id)
        if po is None:
            raise NotFound(f"Part order {po_id} not found")
        keys = [("order", po.repair_order_id)] if po.repair_order_id else []
        with self.locks.hold(*keys):
            with self.db.transaction() as conn:
                self._set_part_order_status(
                    conn, po_id, "CANCELLED", PENDING_PART_ORDER_STATUSES
                )
                if po.repair_order_id:
                    self._promote_if_ready(conn, po.repair_order_id)
                return self.repo.get_part_order_by_id(po_id, conn)

    def cancel_pending_for_order(self, conn, order_id: int):
        """Drop outstanding backorders of an order that will not be repaired."""
        conn.execute(
            "UPDATE part_orders SET status = 'CANCELLED' "
            f"WHERE repair_order_id = ? AND status IN {_PENDING_SQL}",
            (order_id,),
        )

    # ── Receiving & reconciliation ──────────────────────────────

    def _on_receipt(self, conn, part_id: int):
        self._reconcile(conn, part_id)

    def _reconcile(self, conn, part_id: int, reserved: int = 0) -> list[int]:
        """Deliver pending backorders of *part_id* that stock now covers.

        Walks backorders oldest first against a budget equal to the
        on-hand quantity (minus *reserved* units already promised in this
        transaction). Each delivered backorder spends its quantity from
        the budget; the walk stops at the first one that does not fit so
        later requests never overtake earlier ones. Nothing is withdrawn:
        delivery only records that the stock is there.

        Returns the ids of the delivered backorders.
        """
        part = self.repo.get_part_by_id(part_id, conn)
        budget = part.quantity - reserved
        delivered = []
        touched_orders = set()
        now = datetime.now().isoformat()

        for po in self.repo.get_pending_part_orders_for_part(part_id, conn):
            if po.quantity > budget:
                logger.info(
                    f"Part order {po.id} waits: needs {po.quantity}, "
                    f"{budget} available"
                )
                break
            budget -= po.quantity
            self._set_part_order_status(
                conn, po.id, "DELIVERED", PENDING_PART_ORDER_STATUSES,
                delivered_at=now,
            )
            delivered.append(po.id)
            if po.repair_order_id:
                touched_orders.add(po.repair_order_id)

        for order_id in sorted(touched_orders):
            self._promote_if_ready(conn, order_id)
        return delivered

    def _promote_if_ready(self, conn, order_id: int) -> bool:
        """WAITING_FOR_PARTS -> WAITING_FOR_TECHNICIAN once backorders settle."""
        part_orders = self.repo.get_part_orders_for_repair_order(order_id, conn)
        if not all(
            po.status in SETTLED_PART_ORDER_STATUSES for po in part_orders
        ):
            return False
        order = self.repo.get_repair_order(order_id, conn)
        if order is None or order.status != "WAITING_FOR_PARTS":
            return False
        apply_transition(conn, order, "WAITING_FOR_TECHNICIAN")
        logger.info(f"Order {order_id}: all parts in, technician needed")
        return True

    def accept_delivery(self, actor: Actor,
                        items: Iterable[tuple[int, int]]) -> list[SparePart]:
        """Record a multi-line delivery as one all-or-nothing receipt."""
        require_permission(actor, "deliveries_receive")
        items = list(items)
        for _, quantity in items:
            _require_positive(quantity)
        part_ids = sorted({part_id for part_id, _ in items})
        with self.locks.hold(*(("part", pid) for pid in part_ids)):
            with self.db.transaction() as conn:
                for part_id, quantity in items:
                    self.ledger._credit(conn, part_id, quantity)
                for part_id in part_ids:
                    self._reconcile(conn, part_id)
                return [self.repo.get_part_by_id(pid, conn) for pid in part_ids]

    def receive_part_order(self, actor: Actor, po_id: int) -> PartOrder:
        """Receive exactly what one backorder asked for.

        That backorder is delivered first; whatever else the new stock
        covers is then reconciled in FIFO order.
        """
        require_permission(actor, "deliveries_receive")
        po = self.repo.get_part_order_by_id(po_id)
        if po is None:
            raise NotFound(f"Part order {po_id} not found")
        with self.locks.part(po.part_id):
            with self.db.transaction() as conn:
                po = self.repo.get_part_order_by_id(po_id, conn)
                if po.status not in PENDING_PART_ORDER_STATUSES:
                    raise InvalidTransition(
                        f"Part order {po_id} is already {po.status}"
                    )
                self.ledger._credit(conn, po.part_id, po.quantity)
                self._set_part_order_status(
                    conn, po_id, "DELIVERED", PENDING_PART_ORDER_STATUSES,
                    delivered_at=datetime.now().isoformat(),
                )
                if po.repair_order_id:
                    self._promote_if_ready(conn, po.repair_order_id)
                self._reconcile(conn, po.part_id, reserved=po.quantity)
                return self.repo.get_part_order_by_id(po_id, conn)
