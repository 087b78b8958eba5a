"""Repair order lifecycle: intake, assignment, diagnosis, execution, finish."""

import logging
import secrets
from datetime import datetime
from typing import Optional

from repair_desk.core.actors import Actor, require_client_owns, require_permission
from repair_desk.core.inventory import InventoryLedger, _require_positive
from repair_desk.core.locks import EntityLocks
from repair_desk.core.procurement import ProcurementReconciler
from repair_desk.core.transitions import apply_transition
from repair_desk.database.connection import DatabaseConnection
from repair_desk.database.models import (
    Client,
    CostEstimate,
    RepairOrder,
    WorkLog,
)
from repair_desk.database.repository import Repository
from repair_desk.errors import (
    InvalidTransition,
    NotFound,
    PermissionDenied,
    ValidationError,
)
from repair_desk.notifications import LoggingPinSender, PinSender
from repair_desk.utils.constants import WORK_LOG_STATUSES

logger = logging.getLogger(__name__)


def _require_assigned(actor: Actor, order: RepairOrder):
    if order.technician_id != actor.id:
        raise PermissionDenied(
            f"Order {order.order_number} is not assigned to you"
        )


class OrderLifecycle:
    """Drives a repair order through its states.

    Each operation takes the order's lock, then runs its reads and writes
    in one transaction; status changes go through ``apply_transition`` so
    they are checked against the transition table and compare-and-set.
    """

    def __init__(self, db: DatabaseConnection, repo: Repository,
                 locks: EntityLocks, ledger: InventoryLedger,
                 procurement: ProcurementReconciler,
                 pin_sender: Optional[PinSender] = None):
        self.db = db
        self.repo = repo
        self.locks = locks
        self.ledger = ledger
        self.procurement = procurement
        self.pin_sender = pin_sender or LoggingPinSender()

    # ── Intake ──────────────────────────────────────────────────

    def create_client(self, actor: Actor, first_name: str, last_name: str,
                      phone: str, email: str = "") -> Client:
        """Register a customer and send them a 4-digit PIN."""
        require_permission(actor, "clients_create")
        if not first_name.strip() or not phone.strip():
            raise ValidationError("First name and phone are required")
        pin = f"{secrets.randbelow(10000):04d}"
        client = Client(
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            phone=phone.strip(),
            email=email.strip(),
            pin_hash=Repository.hash_pin(pin),
        )
        client.id = self.repo.create_client(client)
        logger.info(f"Client {client.id} registered by {actor.name or actor.id}")
        self.pin_sender(client, pin)
        return self.repo.get_client_by_id(client.id)

    def create_order(self, actor: Actor, client_id: int,
                     device_description: str,
                     problem_description: str) -> RepairOrder:
        require_permission(actor, "orders_create")
        if not device_description.strip():
            raise ValidationError("Device description is required")
        with self.db.transaction() as conn:
            if self.repo.get_client_by_id(client_id, conn) is None:
                raise NotFound(f"Client {client_id} not found")
            number = self.repo.generate_order_number(conn)
            cursor = conn.execute(
                "INSERT INTO repair_orders "
                "(order_number, client_id, status, device_description, "
                "problem_description) VALUES (?, ?, 'NEW', ?, ?)",
                (number, client_id, device_description.strip(),
                 problem_description.strip()),
            )
            order = self.repo.get_repair_order(cursor.lastrowid, conn)
        logger.info(f"Order {order.id} {order.order_number} created")
        return order

    # ── Assignment & diagnosis ──────────────────────────────────

    def assign_technician(self, actor: Actor, order_id: int,
                          technician_id: int) -> RepairOrder:
        """Assign a technician to a new order.

        An order already waiting for a technician can be reassigned
        without changing its status.
        """
        require_permission(actor, "orders_assign")
        with self.locks.order(order_id):
            with self.db.transaction() as conn:
                order = self.repo.require_repair_order(order_id, conn)
                tech = self.repo.get_employee_by_id(technician_id, conn)
                if tech is None:
                    raise NotFound(f"Employee {technician_id} not found")
                if tech.role != "TECHNICIAN" or not tech.is_active:
                    raise InvalidTransition(
                        f"{tech.full_name} is not an active technician"
                    )
                if order.status == "WAITING_FOR_TECHNICIAN":
                    conn.execute(
                        "UPDATE repair_orders SET technician_id = ? "
                        "WHERE id = ? AND status = ?",
                        (technician_id, order_id, order.status),
                    )
                    logger.info(
                        f"Order {order_id} reassigned to {tech.full_name}"
                    )
                else:
                    apply_transition(
                        conn, order, "WAITING_FOR_TECHNICIAN",
                        technician_id=technician_id,
                    )
                return self.repo.get_repair_order(order_id, conn)

    def start_diagnosis(self, actor: Actor, order_id: int) -> RepairOrder:
        require_permission(actor, "orders_diagnose")
        with self.locks.order(order_id):
            with self.db.transaction() as conn:
                order = self.repo.require_repair_order(order_id, conn)
                _require_assigned(actor, order)
                if self.repo.get_approved_estimate(order_id, conn):
                    raise InvalidTransition(
                        f"Order {order.order_number} already has an approved "
                        "estimate; resume the repair instead"
                    )
                fields = {}
                if not order.start_date:
                    fields["start_date"] = datetime.now().isoformat()
                apply_transition(conn, order, "DIAGNOSING", **fields)
                return self.repo.get_repair_order(order_id, conn)

    def mark_unrepairable(self, actor: Actor, order_id: int,
                          reason: str = "") -> RepairOrder:
        """Close a diagnosed order that cannot be repaired."""
        require_permission(actor, "orders_diagnose")
        with self.locks.order(order_id):
            with self.db.transaction() as conn:
                order = self.repo.require_repair_order(order_id, conn)
                _require_assigned(actor, order)
                if order.status != "DIAGNOSING":
                    raise InvalidTransition(
                        f"Only an order under diagnosis can be closed as "
                        f"unrepairable, order is {order.status}"
                    )
                fields = {"end_date": datetime.now().isoformat()}
                if reason.strip():
                    notes = order.diagnosis_notes
                    fields["diagnosis_notes"] = (
                        f"{notes}\n{reason.strip()}" if notes
                        else reason.strip()
                    )
                apply_transition(conn, order, "CANCELLED", **fields)
                self.procurement.cancel_pending_for_order(conn, order_id)
                return self.repo.get_repair_order(order_id, conn)

    def update_diagnosis_notes(self, actor: Actor, order_id: int,
                               notes: str) -> RepairOrder:
        require_permission(actor, "orders_diagnose")
        return self._update_notes(actor, order_id, "diagnosis_notes", notes)

    def update_manager_notes(self, actor: Actor, order_id: int,
                             notes: str) -> RepairOrder:
        require_permission(actor, "orders_manager_notes")
        return self._update_notes(actor, order_id, "manager_notes", notes)

    def _update_notes(self, actor, order_id, column, notes):
        with self.locks.order(order_id):
            with self.db.transaction() as conn:
                order = self.repo.require_repair_order(order_id, conn)
                if column == "diagnosis_notes":
                    _require_assigned(actor, order)
                if order.is_terminal:
                    raise InvalidTransition(
                        f"Order {order.order_number} is {order.status}"
                    )
                conn.execute(
                    f"UPDATE repair_orders SET {column} = ? WHERE id = ?",
                    (notes, order_id),
                )
                return self.repo.get_repair_order(order_id, conn)

    # ── Execution ───────────────────────────────────────────────

    def on_estimate_decided(self, conn, order: RepairOrder,
                            approved: bool, actor: Actor):
        """Apply a customer decision to an order awaiting acceptance.

        Runs inside the decision's transaction, under the order lock.
        """
        if approved:
            apply_transition(conn, order, "IN_PROGRESS")
            self._start_execution(conn, order)
        else:
            apply_transition(
                conn, order, "CANCELLED", end_date=datetime.now().isoformat()
            )
            self.procurement.cancel_pending_for_order(conn, order.id)

    def _start_execution(self, conn, order: RepairOrder):
        """Back-order whatever the approved estimate still lacks.

        Any shortage parks the order in WAITING_FOR_PARTS; backorders are
        only created for the part of a shortage not already on order.
        """
        estimate = self.repo.get_approved_estimate(order.id, conn)
        shortages = self.ledger._shortage_lines(conn, estimate)
        short = self.procurement._order_backorder_for_shortages(
            conn, order.id, shortages, order.technician_id
        )
        if short:
            apply_transition(conn, order, "WAITING_FOR_PARTS")

    def resume_repair(self, actor: Actor, order_id: int) -> RepairOrder:
        """Technician picks an order back up once its parts have arrived."""
        require_permission(actor, "orders_diagnose")
        with self.locks.order(order_id):
            with self.db.transaction() as conn:
                order = self.repo.require_repair_order(order_id, conn)
                _require_assigned(actor, order)
                if self.repo.get_approved_estimate(order_id, conn) is None:
                    raise InvalidTransition(
                        f"Order {order.order_number} has no approved estimate"
                    )
                apply_transition(conn, order, "IN_PROGRESS")
                self._start_execution(conn, order)
                return self.repo.get_repair_order(order_id, conn)

    def consume_part(self, actor: Actor, order_id: int, part_id: int,
                     quantity: int) -> CostEstimate:
        """Withdraw estimated parts for the repair and mark them consumed."""
        require_permission(actor, "parts_consume")
        _require_positive(quantity)
        with self.locks.hold(("order", order_id), ("part", part_id)):
            with self.db.transaction() as conn:
                order = self.repo.require_repair_order(order_id, conn)
                _require_assigned(actor, order)
                if order.status != "IN_PROGRESS":
                    raise InvalidTransition(
                        f"Parts can only be consumed while IN_PROGRESS, "
                        f"order is {order.status}"
                    )
                estimate = self.repo.get_approved_estimate(order_id, conn)
                lines = [ln for ln in estimate.parts if ln.part_id == part_id]
                if not lines:
                    raise ValidationError(
                        f"Part {part_id} is not on the approved estimate"
                    )
                line = next(
                    (ln for ln in lines if ln.outstanding >= quantity), None
                )
                if line is None:
                    left = sum(ln.outstanding for ln in lines)
                    raise ValidationError(
                        f"Only {left} unit(s) of part {part_id} left "
                        "to consume on the estimate"
                    )
                self.ledger._withdraw(conn, part_id, quantity)
                conn.execute(
                    "UPDATE estimate_parts "
                    "SET quantity_consumed = quantity_consumed + ? "
                    "WHERE id = ?",
                    (quantity, line.id),
                )
                logger.info(
                    f"Order {order_id}: consumed {quantity} x part {part_id}"
                )
                return self.repo.get_estimate_by_id(estimate.id, conn)

    def finish_repair(self, actor: Actor,
                      order_id: int) -> tuple[RepairOrder, list[str]]:
        """Mark the device ready for pickup.

        Estimate lines that were not fully consumed do not block the
        finish; they come back as warnings (and are logged).
        """
        require_permission(actor, "orders_finish")
        with self.locks.order(order_id):
            with self.db.transaction() as conn:
                order = self.repo.require_repair_order(order_id, conn)
                _require_assigned(actor, order)
                warnings = []
                estimate = self.repo.get_approved_estimate(order_id, conn)
                for line in estimate.parts if estimate else []:
                    if line.outstanding > 0:
                        warnings.append(
                            f"{line.part_name}: {line.quantity_consumed} of "
                            f"{line.quantity} consumed"
                        )
                apply_transition(
                    conn, order, "READY_FOR_PICKUP",
                    end_date=datetime.now().isoformat(),
                )
                self._close_open_logs(conn, order_id)
                for warning in warnings:
                    logger.warning(
                        f"Order {order.order_number} finished with "
                        f"unconsumed parts: {warning}"
                    )
                return self.repo.get_repair_order(order_id, conn), warnings

    # ── Work time ───────────────────────────────────────────────

    def start_work(self, actor: Actor, order_id: int) -> WorkLog:
        require_permission(actor, "work_log")
        with self.locks.order(order_id):
            with self.db.transaction() as conn:
                order = self.repo.require_repair_order(order_id, conn)
                _require_assigned(actor, order)
                if order.status not in WORK_LOG_STATUSES:
                    raise InvalidTransition(
                        f"Cannot log work while order is {order.status}"
                    )
                if self.repo.get_open_work_log(order_id, actor.id, conn):
                    raise InvalidTransition("Work is already being logged")
                cursor = conn.execute(
                    "INSERT INTO work_logs (order_id, technician_id, "
                    "started_at) VALUES (?, ?, ?)",
                    (order_id, actor.id, datetime.now().isoformat()),
                )
                return self.repo.get_work_log_by_id(cursor.lastrowid, conn)

    def stop_work(self, actor: Actor, order_id: int) -> WorkLog:
        require_permission(actor, "work_log")
        with self.locks.order(order_id):
            with self.db.transaction() as conn:
                log = self.repo.get_open_work_log(order_id, actor.id, conn)
                if log is None:
                    raise InvalidTransition("No work is being logged")
                self._close_log(conn, log)
                return self.repo.get_work_log_by_id(log.id, conn)

    def _close_log(self, conn, log: WorkLog):
        ended = datetime.now()
        started = datetime.fromisoformat(str(log.started_at))
        minutes = max(0, int((ended - started).total_seconds() // 60))
        conn.execute(
            "UPDATE work_logs SET ended_at = ?, duration_minutes = ? "
            "WHERE id = ?",
            (ended.isoformat(), minutes, log.id),
        )
        conn.execute(
            "UPDATE repair_orders "
            "SET total_work_minutes = total_work_minutes + ? WHERE id = ?",
            (minutes, log.order_id),
        )
        logger.info(
            f"Order {log.order_id}: technician {log.technician_id} "
            f"logged {minutes} min"
        )

    def _close_open_logs(self, conn, order_id: int):
        rows = conn.execute(
            "SELECT * FROM work_logs WHERE order_id = ? AND ended_at IS NULL",
            (order_id,),
        ).fetchall()
        for row in rows:
            self._close_log(conn, WorkLog(**dict(row)))

    # ── Reads ───────────────────────────────────────────────────

    def get_order(self, actor: Actor, order_id: int) -> RepairOrder:
        order = self.repo.require_repair_order(order_id)
        if actor.is_client:
            require_client_owns(actor, order.client_id)
        return order
