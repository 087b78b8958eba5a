"""Inventory ledger: owns spare part quantity-on-hand."""

import logging
from datetime import datetime
from typing import Callable

from repair_desk.core.actors import Actor, require_permission
from repair_desk.core.locks import EntityLocks
from repair_desk.database.connection import DatabaseConnection
from repair_desk.database.models import CostEstimate, DiscrepancyReport, SparePart
from repair_desk.database.repository import Repository
from repair_desk.errors import InsufficientStock, NotFound, ValidationError
from repair_desk.utils.constants import EXECUTION_STATUSES
from repair_desk.utils.formatters import to_money

logger = logging.getLogger(__name__)

# Called as listener(conn, part_id) inside the receipt transaction
ReceiptListener = Callable[[object, int], None]


def _require_positive(quantity: int, what: str = "quantity"):
    if not isinstance(quantity, int) or isinstance(quantity, bool) \
            or quantity <= 0:
        raise ValidationError(f"{what} must be a positive integer")


class InventoryLedger:
    """Applies withdrawals and receipts to spare part stock.

    Every quantity change for a part happens while holding that part's
    lock and inside one write transaction, and the decrement itself is a
    conditional update, so a stale on-hand value can never pass the
    stock check.
    """

    def __init__(self, db: DatabaseConnection, repo: Repository,
                 locks: EntityLocks):
        self.db = db
        self.repo = repo
        self.locks = locks
        self._receipt_listeners: list[ReceiptListener] = []

    def add_receipt_listener(self, listener: ReceiptListener):
        """Run *listener* synchronously after every receipt is credited."""
        self._receipt_listeners.append(listener)

    # ── Catalogue ───────────────────────────────────────────────

    def add_part(self, actor: Actor, part: SparePart) -> SparePart:
        require_permission(actor, "parts_manage")
        if not part.name or not part.name.strip():
            raise ValidationError("Part name is required")
        if part.quantity < 0 or part.min_quantity < 0:
            raise ValidationError("Quantities cannot be negative")
        if part.price < 0:
            raise ValidationError("Price cannot be negative")
        part.id = self.repo.create_part(part)
        logger.info(f"Part {part.id} '{part.name}' added with {part.quantity}")
        return self.repo.get_part_by_id(part.id)

    def update_part(self, actor: Actor, part_id: int, *, name=None,
                    category=None, min_quantity=None, price=None) -> SparePart:
        """Change catalogue fields. Existing estimates keep their prices."""
        require_permission(actor, "parts_manage")
        with self.locks.part(part_id):
            part = self.repo.get_part_by_id(part_id)
            if part is None:
                raise NotFound(f"Part {part_id} not found")
            if name is not None:
                part.name = name
            if category is not None:
                part.category = category
            if min_quantity is not None:
                if min_quantity < 0:
                    raise ValidationError("Minimum quantity cannot be negative")
                part.min_quantity = min_quantity
            if price is not None:
                price = to_money(price)
                if price < 0:
                    raise ValidationError("Price cannot be negative")
                part.price = price
            self.repo.update_part(part)
            return self.repo.get_part_by_id(part_id)

    # ── Stock movements ─────────────────────────────────────────

    def withdraw(self, actor: Actor, part_id: int,
                 quantity: int) -> SparePart:
        """Take *quantity* out of stock, or fail leaving stock unchanged."""
        require_permission(actor, "parts_withdraw")
        _require_positive(quantity)
        with self.locks.part(part_id):
            with self.db.transaction() as conn:
                return self._withdraw(conn, part_id, quantity)

    def _withdraw(self, conn, part_id: int, quantity: int) -> SparePart:
        part = self.repo.get_part_by_id(part_id, conn)
        if part is None:
            raise NotFound(f"Part {part_id} not found")
        cursor = conn.execute(
            "UPDATE spare_parts SET quantity = quantity - ?, updated_at = ? "
            "WHERE id = ? AND quantity >= ?",
            (quantity, datetime.now().isoformat(), part_id, quantity),
        )
        if cursor.rowcount == 0:
            raise InsufficientStock(part_id, quantity, part.quantity)
        updated = self.repo.get_part_by_id(part_id, conn)
        logger.info(
            f"Withdrew {quantity} x part {part_id}; on hand {updated.quantity}"
        )
        if updated.is_low_stock:
            logger.warning(
                f"Low stock: part {part_id} '{updated.name}' at "
                f"{updated.quantity} (min {updated.min_quantity})"
            )
        return updated

    def receive(self, actor: Actor, part_id: int, quantity: int) -> SparePart:
        """Add *quantity* to stock and reconcile waiting backorders."""
        require_permission(actor, "deliveries_receive")
        _require_positive(quantity)
        with self.locks.part(part_id):
            with self.db.transaction() as conn:
                part = self._credit(conn, part_id, quantity)
                for listener in self._receipt_listeners:
                    listener(conn, part_id)
                return self.repo.get_part_by_id(part_id, conn) or part

    def _credit(self, conn, part_id: int, quantity: int) -> SparePart:
        cursor = conn.execute(
            "UPDATE spare_parts SET quantity = quantity + ?, updated_at = ? "
            "WHERE id = ?",
            (quantity, datetime.now().isoformat(), part_id),
        )
        if cursor.rowcount == 0:
            raise NotFound(f"Part {part_id} not found")
        part = self.repo.get_part_by_id(part_id, conn)
        logger.info(
            f"Received {quantity} x part {part_id}; on hand {part.quantity}"
        )
        return part

    # ── Shortages ───────────────────────────────────────────────

    def _shortage_lines(self, conn, estimate: CostEstimate) -> list[dict]:
        """Per-part need vs. on-hand for an estimate's unconsumed lines."""
        needed: dict[int, int] = {}
        names: dict[int, str] = {}
        for line in estimate.parts:
            needed[line.part_id] = needed.get(line.part_id, 0) + line.outstanding
            names[line.part_id] = line.part_name

        result = []
        for part_id, need in needed.items():
            part = self.repo.get_part_by_id(part_id, conn)
            in_stock = part.quantity if part else 0
            result.append({
                "part_id": part_id,
                "part_name": part.name if part else names[part_id],
                "needed": need,
                "in_stock": in_stock,
                "shortage": max(0, need - in_stock),
            })
        return result

    def shortage(self, actor: Actor, order_id: int) -> list[dict]:
        """Shortage per part for an order's approved estimate.

        Returns one dict per estimated part:
            {part_id, part_name, needed, in_stock, shortage}
        where shortage is never negative.
        """
        require_permission(actor, "shortages_view")
        self.repo.require_repair_order(order_id)
        estimate = self.repo.get_approved_estimate(order_id)
        if estimate is None:
            raise NotFound(f"Order {order_id} has no approved estimate")
        with self.db.get_connection() as conn:
            return self._shortage_lines(conn, estimate)

    def all_shortages(self, actor: Actor) -> list[dict]:
        """Missing parts across every order still being executed."""
        require_permission(actor, "shortages_view")
        result = []
        with self.db.get_connection() as conn:
            for status in EXECUTION_STATUSES:
                rows = conn.execute(
                    "SELECT id, order_number FROM repair_orders "
                    "WHERE status = ? ORDER BY id",
                    (status,),
                ).fetchall()
                for row in rows:
                    estimate = self.repo.get_approved_estimate(row["id"], conn)
                    if estimate is None:
                        continue
                    for line in self._shortage_lines(conn, estimate):
                        if line["shortage"] > 0:
                            result.append({
                                "order_id": row["id"],
                                "order_number": row["order_number"],
                                **line,
                            })
        return result

    def low_stock_parts(self) -> list[SparePart]:
        return self.repo.get_low_stock_parts()

    # ── Discrepancies ───────────────────────────────────────────

    def report_discrepancy(self, actor: Actor, part_id: int, quantity: int,
                           reason: str) -> DiscrepancyReport:
        """Record a stock discrepancy. Stock levels are not changed."""
        require_permission(actor, "discrepancies_report")
        _require_positive(quantity)
        if not reason or not reason.strip():
            raise ValidationError("A reason is required")
        if self.repo.get_part_by_id(part_id) is None:
            raise NotFound(f"Part {part_id} not found")
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "INSERT INTO discrepancy_reports "
                "(part_id, quantity, reason, reported_by) VALUES (?, ?, ?, ?)",
                (part_id, quantity, reason.strip(), actor.id),
            )
            report_id = cursor.lastrowid
        logger.warning(
            f"Discrepancy on part {part_id}: {quantity} unit(s), {reason!r}"
        )
        return next(
            r for r in self.repo.get_discrepancy_reports(part_id)
            if r.id == report_id
        )
