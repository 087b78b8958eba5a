"""Cost estimate engine: priced proposals and the customer's decision."""

import logging
import sqlite3
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from repair_desk.core.actors import Actor, require_client_owns, require_permission
from repair_desk.core.inventory import _require_positive
from repair_desk.core.lifecycle import OrderLifecycle, _require_assigned
from repair_desk.core.locks import EntityLocks
from repair_desk.core.transitions import apply_transition, check_transition
from repair_desk.database.connection import DatabaseConnection
from repair_desk.database.models import (
    CostEstimate,
    EstimateActionLine,
    EstimatePartLine,
)
from repair_desk.database.repository import Repository
from repair_desk.errors import (
    EstimateConflict,
    InvalidTransition,
    NotFound,
    ValidationError,
)
from repair_desk.utils.formatters import to_money

logger = logging.getLogger(__name__)


def compute_costs(part_lines: Iterable[EstimatePartLine],
                  action_lines: Iterable[EstimateActionLine]
                  ) -> tuple[Decimal, Decimal, Decimal]:
    """Return ``(parts_cost, labour_cost, total_cost)``.

    Parts are quantity times the snapshotted unit price; labour is the
    sum of the snapshotted action prices.
    """
    parts_cost = to_money(sum(
        (line.quantity * line.unit_price for line in part_lines),
        Decimal("0"),
    ))
    labour_cost = to_money(sum(
        (line.price for line in action_lines), Decimal("0")
    ))
    return parts_cost, labour_cost, parts_cost + labour_cost


class CostEstimateEngine:
    """Builds estimates during diagnosis and records the customer decision."""

    def __init__(self, db: DatabaseConnection, repo: Repository,
                 locks: EntityLocks, lifecycle: OrderLifecycle):
        self.db = db
        self.repo = repo
        self.locks = locks
        self.lifecycle = lifecycle

    def create_estimate(self, actor: Actor, order_id: int,
                        parts: Iterable[tuple[int, int]] = (),
                        action_ids: Iterable[int] = (),
                        message: str = "") -> CostEstimate:
        """Price the proposed repair and send it to the customer.

        Part and action prices and names are copied onto the estimate, so
        later catalogue edits never change what the customer was quoted.
        """
        require_permission(actor, "estimates_create")
        parts = list(parts)
        action_ids = list(action_ids)
        for _, quantity in parts:
            _require_positive(quantity)
        if not parts and not action_ids:
            raise ValidationError("An estimate needs at least one line")

        with self.locks.order(order_id):
            try:
                with self.db.transaction() as conn:
                    return self._create(
                        conn, actor, order_id, parts, action_ids, message
                    )
            except sqlite3.IntegrityError as e:
                raise EstimateConflict(
                    f"Order {order_id} already has a pending estimate"
                ) from e

    def _create(self, conn, actor, order_id, parts, action_ids, message):
        order = self.repo.require_repair_order(order_id, conn)
        _require_assigned(actor, order)
        if self.repo.get_pending_estimate(order_id, conn):
            raise EstimateConflict(
                f"Order {order.order_number} already has a pending estimate"
            )
        check_transition(order.status, "WAITING_FOR_ACCEPTANCE")

        part_lines = []
        for part_id, quantity in parts:
            part = self.repo.get_part_by_id(part_id, conn)
            if part is None:
                raise NotFound(f"Part {part_id} not found")
            part_lines.append(EstimatePartLine(
                part_id=part.id, part_name=part.name,
                quantity=quantity, unit_price=part.price,
            ))
        action_lines = []
        for action_id in action_ids:
            action = self.repo.get_service_action_by_id(action_id, conn)
            if action is None:
                raise NotFound(f"Service action {action_id} not found")
            action_lines.append(EstimateActionLine(
                action_id=action.id, action_name=action.name,
                price=action.price,
            ))

        parts_cost, labour_cost, total = compute_costs(part_lines, action_lines)
        cursor = conn.execute(
            "INSERT INTO cost_estimates "
            "(order_id, message, parts_cost, labour_cost, total_cost, "
            "created_by) VALUES (?, ?, ?, ?, ?, ?)",
            (order_id, message, parts_cost, labour_cost, total, actor.id),
        )
        estimate_id = cursor.lastrowid
        conn.executemany(
            "INSERT INTO estimate_parts "
            "(estimate_id, part_id, part_name, quantity, unit_price) "
            "VALUES (?, ?, ?, ?, ?)",
            [(estimate_id, ln.part_id, ln.part_name, ln.quantity,
              ln.unit_price) for ln in part_lines],
        )
        conn.executemany(
            "INSERT INTO estimate_actions "
            "(estimate_id, action_id, action_name, price) VALUES (?, ?, ?, ?)",
            [(estimate_id, ln.action_id, ln.action_name, ln.price)
             for ln in action_lines],
        )
        apply_transition(conn, order, "WAITING_FOR_ACCEPTANCE")
        logger.info(
            f"Estimate {estimate_id} for order {order.order_number}: "
            f"{total} ({parts_cost} parts + {labour_cost} labour)"
        )
        return self.repo.get_estimate_by_id(estimate_id, conn)

    def decide_estimate(self, actor: Actor, order_id: int,
                        approved: bool) -> CostEstimate:
        """Record the customer's answer to the pending estimate.

        Approval starts the repair (possibly waiting for parts); rejection
        cancels the order. A decision is final.
        """
        require_permission(actor, "estimates_decide")
        if not isinstance(approved, bool):
            raise ValidationError(
                f"Decision must be True or False, got {approved!r}"
            )
        with self.locks.order(order_id):
            with self.db.transaction() as conn:
                order = self.repo.require_repair_order(order_id, conn)
                require_client_owns(actor, order.client_id)
                estimate = self.repo.get_latest_estimate(order_id, conn)
                if estimate is None:
                    raise NotFound(f"Order {order_id} has no estimate")
                if not estimate.is_pending:
                    raise InvalidTransition(
                        f"Estimate {estimate.id} was already "
                        + ("approved" if estimate.approved else "rejected")
                    )
                cursor = conn.execute(
                    "UPDATE cost_estimates SET approved = ?, decided_at = ? "
                    "WHERE id = ? AND approved IS NULL",
                    (int(approved), datetime.now().isoformat(),
                     estimate.id),
                )
                if cursor.rowcount == 0:
                    raise InvalidTransition(
                        f"Estimate {estimate.id} was already decided"
                    )
                logger.info(
                    f"Estimate {estimate.id} "
                    f"{'approved' if approved else 'rejected'} "
                    f"by {actor.role} {actor.id}"
                )
                self.lifecycle.on_estimate_decided(
                    conn, order, approved, actor
                )
                return self.repo.get_estimate_by_id(estimate.id, conn)

    def get_estimate(self, actor: Actor,
                     order_id: int) -> Optional[CostEstimate]:
        """Latest estimate for an order, or None."""
        order = self.repo.require_repair_order(order_id)
        if actor.is_client:
            require_client_owns(actor, order.client_id)
        return self.repo.get_latest_estimate(order_id)

    def get_approved_estimate(self, actor: Actor,
                              order_id: int) -> Optional[CostEstimate]:
        order = self.repo.require_repair_order(order_id)
        if actor.is_client:
            require_client_owns(actor, order.client_id)
        return self.repo.get_approved_estimate(order_id)
