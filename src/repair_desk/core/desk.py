"""RepairDesk: the local backend wiring every core component together."""

import logging
from pathlib import Path
from typing import Optional

from repair_desk.backends.base import RepairBackend
from repair_desk.config import Config
from repair_desk.core.actors import Actor, require_client_owns, require_permission
from repair_desk.core.estimates import CostEstimateEngine
from repair_desk.core.inventory import InventoryLedger
from repair_desk.core.lifecycle import OrderLifecycle
from repair_desk.core.locks import EntityLocks
from repair_desk.core.procurement import ProcurementReconciler
from repair_desk.core.settlement import Settlement
from repair_desk.database.connection import DatabaseConnection
from repair_desk.database.models import Employee, ServiceAction, SparePart
from repair_desk.database.repository import Repository
from repair_desk.database.schema import initialize_database
from repair_desk.errors import NotFound, PermissionDenied, ValidationError
from repair_desk.logging_setup import configure_logging
from repair_desk.notifications import PinSender
from repair_desk.utils.constants import EMPLOYEE_ROLES, SKILL_LEVELS
from repair_desk.utils.formatters import to_money

logger = logging.getLogger(__name__)


def _require_staff(actor: Actor):
    if actor is None or actor.is_client:
        raise PermissionDenied("Staff access only")


class RepairDesk(RepairBackend):
    """Runs every operation in-process against a sqlite database.

    One instance should be shared by all consoles of a shop: the entity
    locks it owns only serialize callers that go through it.
    """

    def __init__(self, db: DatabaseConnection,
                 pin_sender: Optional[PinSender] = None):
        self.db = db
        self.repo = Repository(db)
        self.locks = EntityLocks()
        self.ledger = InventoryLedger(db, self.repo, self.locks)
        self.procurement = ProcurementReconciler(
            db, self.repo, self.ledger, self.locks
        )
        self.lifecycle = OrderLifecycle(
            db, self.repo, self.locks, self.ledger, self.procurement,
            pin_sender=pin_sender,
        )
        self.estimates = CostEstimateEngine(
            db, self.repo, self.locks, self.lifecycle
        )
        self.settlement = Settlement(db, self.repo, self.locks)

    @classmethod
    def open(cls, db_path: Optional[str | Path] = None,
             pin_sender: Optional[PinSender] = None) -> "RepairDesk":
        """Open (creating if needed) the shop database at *db_path*."""
        configure_logging()
        db = DatabaseConnection(
            db_path or Config.DATABASE_PATH, timeout=Config.DATABASE_TIMEOUT
        )
        initialize_database(db)
        logger.info(f"Repair desk opened on {db.db_path}")
        return cls(db, pin_sender=pin_sender)

    # ── Staff & price lists ─────────────────────────────────────

    def create_employee(self, actor: Actor, employee: Employee) -> Employee:
        require_permission(actor, "employees_manage")
        if employee.role not in EMPLOYEE_ROLES:
            raise ValidationError(f"Unknown role {employee.role!r}")
        if employee.skill_level and employee.skill_level not in SKILL_LEVELS:
            raise ValidationError(
                f"Unknown skill level {employee.skill_level!r}"
            )
        employee.id = self.repo.create_employee(employee)
        return self.repo.get_employee_by_id(employee.id)

    def list_employees(self, actor: Actor,
                       role: Optional[str] = None) -> list[Employee]:
        _require_staff(actor)
        return self.repo.get_all_employees(role=role)

    def deactivate_employee(self, actor: Actor, employee_id: int):
        require_permission(actor, "employees_manage")
        if self.repo.get_employee_by_id(employee_id) is None:
            raise NotFound(f"Employee {employee_id} not found")
        self.repo.deactivate_employee(employee_id)

    def add_service_action(self, actor: Actor, name: str,
                           price) -> ServiceAction:
        require_permission(actor, "services_manage")
        price = to_money(price)
        if not name.strip() or price < 0:
            raise ValidationError("A name and a non-negative price are required")
        action_id = self.repo.create_service_action(
            ServiceAction(name=name.strip(), price=price)
        )
        return self.repo.get_service_action_by_id(action_id)

    def update_service_action(self, actor: Actor, action_id: int, *,
                              name: Optional[str] = None,
                              price=None) -> ServiceAction:
        """Reprice a service. Existing estimates keep their snapshot."""
        require_permission(actor, "services_manage")
        action = self.repo.get_service_action_by_id(action_id)
        if action is None:
            raise NotFound(f"Service action {action_id} not found")
        if name is not None:
            action.name = name.strip()
        if price is not None:
            action.price = to_money(price)
            if action.price < 0:
                raise ValidationError("Price cannot be negative")
        self.repo.update_service_action(action)
        return self.repo.get_service_action_by_id(action_id)

    def list_service_actions(self, actor: Actor) -> list[ServiceAction]:
        return self.repo.get_all_service_actions()

    # ── Intake ──────────────────────────────────────────────────

    def create_client(self, actor, first_name, last_name, phone, email=""):
        return self.lifecycle.create_client(
            actor, first_name, last_name, phone, email
        )

    def authenticate_client(self, phone: str, pin: str) -> Optional[Actor]:
        """Customer sign-in by phone and PIN."""
        client = self.repo.authenticate_client(phone, pin)
        return Actor.for_client(client) if client else None

    def create_order(self, actor, client_id, device_description,
                     problem_description):
        return self.lifecycle.create_order(
            actor, client_id, device_description, problem_description
        )

    # ── Lifecycle ───────────────────────────────────────────────

    def assign_technician(self, actor, order_id, technician_id):
        return self.lifecycle.assign_technician(actor, order_id, technician_id)

    def start_diagnosis(self, actor, order_id):
        return self.lifecycle.start_diagnosis(actor, order_id)

    def mark_unrepairable(self, actor, order_id, reason=""):
        return self.lifecycle.mark_unrepairable(actor, order_id, reason)

    def update_diagnosis_notes(self, actor, order_id, notes):
        return self.lifecycle.update_diagnosis_notes(actor, order_id, notes)

    def update_manager_notes(self, actor, order_id, notes):
        return self.lifecycle.update_manager_notes(actor, order_id, notes)

    def resume_repair(self, actor, order_id):
        return self.lifecycle.resume_repair(actor, order_id)

    def consume_part(self, actor, order_id, part_id, quantity):
        return self.lifecycle.consume_part(actor, order_id, part_id, quantity)

    def finish_repair(self, actor, order_id):
        return self.lifecycle.finish_repair(actor, order_id)

    def start_work(self, actor, order_id):
        return self.lifecycle.start_work(actor, order_id)

    def stop_work(self, actor, order_id):
        return self.lifecycle.stop_work(actor, order_id)

    # ── Estimates ───────────────────────────────────────────────

    def create_estimate(self, actor, order_id, parts=(), action_ids=(),
                        message=""):
        return self.estimates.create_estimate(
            actor, order_id, parts, action_ids, message
        )

    def decide_estimate(self, actor, order_id, approved):
        return self.estimates.decide_estimate(actor, order_id, approved)

    def get_estimate(self, actor, order_id):
        return self.estimates.get_estimate(actor, order_id)

    def get_approved_estimate(self, actor, order_id):
        return self.estimates.get_approved_estimate(actor, order_id)

    # ── Inventory ───────────────────────────────────────────────

    def add_part(self, actor: Actor, part: SparePart) -> SparePart:
        return self.ledger.add_part(actor, part)

    def update_part(self, actor, part_id, **changes):
        return self.ledger.update_part(actor, part_id, **changes)

    def withdraw(self, actor, part_id, quantity):
        return self.ledger.withdraw(actor, part_id, quantity)

    def receive(self, actor, part_id, quantity):
        return self.ledger.receive(actor, part_id, quantity)

    def shortage(self, actor, order_id):
        return self.ledger.shortage(actor, order_id)

    def all_shortages(self, actor):
        return self.ledger.all_shortages(actor)

    def low_stock_parts(self, actor):
        _require_staff(actor)
        return self.ledger.low_stock_parts()

    def report_discrepancy(self, actor, part_id, quantity, reason):
        return self.ledger.report_discrepancy(actor, part_id, quantity, reason)

    # ── Procurement ─────────────────────────────────────────────

    def request_parts(self, actor, order_id, part_id, quantity):
        return self.procurement.request_parts(
            actor, order_id, part_id, quantity
        )

    def create_part_order(self, actor, part_id, quantity):
        return self.procurement.create_part_order(actor, part_id, quantity)

    def mark_in_delivery(self, actor, po_id, estimated_delivery=None):
        return self.procurement.mark_in_delivery(
            actor, po_id, estimated_delivery
        )

    def cancel_part_order(self, actor, po_id):
        return self.procurement.cancel_part_order(actor, po_id)

    def receive_part_order(self, actor, po_id):
        return self.procurement.receive_part_order(actor, po_id)

    def accept_delivery(self, actor, items):
        return self.procurement.accept_delivery(actor, items)

    # ── Settlement ──────────────────────────────────────────────

    def settle(self, actor, order_id, payment_method):
        return self.settlement.settle(actor, order_id, payment_method)

    def get_invoice(self, actor, order_id):
        return self.settlement.get_invoice(actor, order_id)

    def render_invoice(self, actor, order_id):
        return self.settlement.render_invoice(actor, order_id)

    # ── Reads ───────────────────────────────────────────────────

    def get_order(self, actor, order_id):
        return self.lifecycle.get_order(actor, order_id)

    def list_orders(self, actor, status=None):
        """All orders for staff; a customer only sees their own."""
        if actor.is_client:
            return self.repo.get_orders_by_client(actor.id)
        require_permission(actor, "orders_view_all")
        return self.repo.get_all_repair_orders(status)

    def list_orders_by_client(self, actor, client_id):
        if actor.is_client:
            require_client_owns(actor, client_id)
        else:
            require_permission(actor, "orders_view_all")
        return self.repo.get_orders_by_client(client_id)

    def list_orders_by_technician(self, actor, technician_id):
        require_permission(actor, "orders_view_all")
        return self.repo.get_orders_by_technician(technician_id)

    def list_clients(self, actor):
        require_permission(actor, "clients_view")
        return self.repo.get_all_clients()

    def list_parts(self, actor):
        _require_staff(actor)
        return self.repo.get_all_parts()

    def list_part_orders(self, actor, status=None):
        _require_staff(actor)
        return self.repo.get_all_part_orders(status)

    def list_work_logs(self, actor, order_id):
        _require_staff(actor)
        return self.repo.get_work_logs(order_id)
