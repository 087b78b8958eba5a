"""Repository layer: CRUD for master data and read queries.

Read helpers accept an optional ``conn`` so the core components can run
them inside the transaction that also performs their writes.
"""

import hashlib
import sqlite3
from datetime import datetime
from typing import Optional

from repair_desk.config import Config
from repair_desk.errors import NotFound, ValidationError

from .connection import DatabaseConnection
from .models import (
    Client,
    CostEstimate,
    DiscrepancyReport,
    Employee,
    EstimateActionLine,
    EstimatePartLine,
    Invoice,
    PartOrder,
    RepairOrder,
    ServiceAction,
    SparePart,
    WorkLog,
)


def _row_to(model, row):
    """Build a dataclass from a row, ignoring columns it does not declare."""
    return model(**{
        k: row[k] for k in row.keys()
        if k in model.__dataclass_fields__
    })


class Repository:
    """Provides database operations shared by the core components."""

    def __init__(self, db: DatabaseConnection):
        self.db = db

    def _query(self, sql: str, params: tuple = (), conn=None) -> list:
        if conn is not None:
            return conn.execute(sql, params).fetchall()
        return self.db.execute(sql, params)

    # ── Employees ───────────────────────────────────────────────

    def create_employee(self, employee: Employee) -> int:
        try:
            with self.db.get_connection() as conn:
                cursor = conn.execute(
                    "INSERT INTO employees "
                    "(first_name, last_name, email, role, skill_level) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (employee.first_name, employee.last_name,
                     employee.email, employee.role, employee.skill_level),
                )
                return cursor.lastrowid
        except sqlite3.IntegrityError as e:
            raise ValidationError(f"Cannot create employee: {e}") from e

    def get_employee_by_id(self, employee_id: int,
                           conn=None) -> Optional[Employee]:
        rows = self._query(
            "SELECT * FROM employees WHERE id = ?", (employee_id,), conn
        )
        return _row_to(Employee, rows[0]) if rows else None

    def get_employee_by_email(self, email: str) -> Optional[Employee]:
        rows = self.db.execute(
            "SELECT * FROM employees WHERE email = ?", (email,)
        )
        return _row_to(Employee, rows[0]) if rows else None

    def get_all_employees(self, role: Optional[str] = None,
                          active_only: bool = True) -> list[Employee]:
        query = "SELECT * FROM employees"
        conditions, params = [], []
        if role:
            conditions.append("role = ?")
            params.append(role)
        if active_only:
            conditions.append("is_active = 1")
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY last_name, first_name"
        rows = self.db.execute(query, tuple(params))
        return [_row_to(Employee, r) for r in rows]

    def deactivate_employee(self, employee_id: int):
        """Soft-delete: orders keep their technician reference."""
        self.db.execute(
            "UPDATE employees SET is_active = 0 WHERE id = ?", (employee_id,)
        )

    # ── Clients ─────────────────────────────────────────────────

    @staticmethod
    def hash_pin(pin: str) -> str:
        return hashlib.sha256(pin.encode()).hexdigest()

    def create_client(self, client: Client) -> int:
        try:
            with self.db.get_connection() as conn:
                cursor = conn.execute(
                    "INSERT INTO clients "
                    "(first_name, last_name, phone, email, pin_hash) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (client.first_name, client.last_name, client.phone,
                     client.email, client.pin_hash),
                )
                return cursor.lastrowid
        except sqlite3.IntegrityError as e:
            raise ValidationError(
                f"A client with phone {client.phone} already exists"
            ) from e

    def get_client_by_id(self, client_id: int,
                         conn=None) -> Optional[Client]:
        rows = self._query(
            "SELECT * FROM clients WHERE id = ?", (client_id,), conn
        )
        return _row_to(Client, rows[0]) if rows else None

    def get_client_by_phone(self, phone: str) -> Optional[Client]:
        rows = self.db.execute(
            "SELECT * FROM clients WHERE phone = ?", (phone,)
        )
        return _row_to(Client, rows[0]) if rows else None

    def get_all_clients(self) -> list[Client]:
        rows = self.db.execute(
            "SELECT * FROM clients ORDER BY last_name, first_name"
        )
        return [_row_to(Client, r) for r in rows]

    def authenticate_client(self, phone: str, pin: str) -> Optional[Client]:
        client = self.get_client_by_phone(phone)
        if client and client.pin_hash == self.hash_pin(pin):
            return client
        return None

    # ── Spare parts ─────────────────────────────────────────────

    def create_part(self, part: SparePart) -> int:
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "INSERT INTO spare_parts "
                "(name, category, quantity, min_quantity, price) "
                "VALUES (?, ?, ?, ?, ?)",
                (part.name, part.category, part.quantity,
                 part.min_quantity, part.price),
            )
            return cursor.lastrowid

    def get_part_by_id(self, part_id: int, conn=None) -> Optional[SparePart]:
        rows = self._query(
            "SELECT * FROM spare_parts WHERE id = ?", (part_id,), conn
        )
        return _row_to(SparePart, rows[0]) if rows else None

    def get_all_parts(self) -> list[SparePart]:
        rows = self.db.execute("SELECT * FROM spare_parts ORDER BY name")
        return [_row_to(SparePart, r) for r in rows]

    def get_low_stock_parts(self) -> list[SparePart]:
        rows = self.db.execute(
            "SELECT * FROM spare_parts "
            "WHERE min_quantity > 0 AND quantity < min_quantity "
            "ORDER BY name"
        )
        return [_row_to(SparePart, r) for r in rows]

    def update_part(self, part: SparePart):
        """Update catalogue fields. Quantity only moves through the ledger."""
        with self.db.get_connection() as conn:
            conn.execute(
                "UPDATE spare_parts SET name = ?, category = ?, "
                "min_quantity = ?, price = ?, updated_at = ? WHERE id = ?",
                (part.name, part.category, part.min_quantity, part.price,
                 datetime.now().isoformat(), part.id),
            )

    # ── Service actions ─────────────────────────────────────────

    def create_service_action(self, action: ServiceAction) -> int:
        try:
            with self.db.get_connection() as conn:
                cursor = conn.execute(
                    "INSERT INTO service_actions (name, price) VALUES (?, ?)",
                    (action.name, action.price),
                )
                return cursor.lastrowid
        except sqlite3.IntegrityError as e:
            raise ValidationError(
                f"Service action '{action.name}' already exists"
            ) from e

    def get_service_action_by_id(self, action_id: int,
                                 conn=None) -> Optional[ServiceAction]:
        rows = self._query(
            "SELECT * FROM service_actions WHERE id = ?", (action_id,), conn
        )
        return _row_to(ServiceAction, rows[0]) if rows else None

    def get_all_service_actions(self) -> list[ServiceAction]:
        rows = self.db.execute("SELECT * FROM service_actions ORDER BY name")
        return [_row_to(ServiceAction, r) for r in rows]

    def update_service_action(self, action: ServiceAction):
        self.db.execute(
            "UPDATE service_actions SET name = ?, price = ? WHERE id = ?",
            (action.name, action.price, action.id),
        )

    # ── Repair orders ───────────────────────────────────────────

    _ORDERS_SELECT = """
        SELECT ro.*,
               TRIM(c.first_name || ' ' || c.last_name) AS client_name,
               c.phone AS client_phone,
               COALESCE(TRIM(e.first_name || ' ' || e.last_name), '')
                   AS technician_name
        FROM repair_orders ro
        JOIN clients c ON ro.client_id = c.id
        LEFT JOIN employees e ON ro.technician_id = e.id
    """

    def generate_order_number(self, conn=None) -> str:
        """Generate next sequential order number like ORD-2026-001."""
        prefix = Config.ORDER_NUMBER_PREFIX
        year = datetime.now().year
        rows = self._query(
            "SELECT COUNT(*) as cnt FROM repair_orders "
            "WHERE order_number LIKE ?",
            (f"{prefix}-{year}-%",),
            conn,
        )
        count = rows[0]["cnt"] + 1 if rows else 1
        return f"{prefix}-{year}-{count:03d}"

    def get_repair_order(self, order_id: int,
                         conn=None) -> Optional[RepairOrder]:
        rows = self._query(
            self._ORDERS_SELECT + " WHERE ro.id = ?", (order_id,), conn
        )
        return _row_to(RepairOrder, rows[0]) if rows else None

    def require_repair_order(self, order_id: int, conn=None) -> RepairOrder:
        order = self.get_repair_order(order_id, conn)
        if order is None:
            raise NotFound(f"Repair order {order_id} not found")
        return order

    def get_all_repair_orders(
        self, status: Optional[str] = None
    ) -> list[RepairOrder]:
        query = self._ORDERS_SELECT
        params = []
        if status:
            query += " WHERE ro.status = ?"
            params.append(status)
        query += " ORDER BY ro.created_at DESC, ro.id DESC"
        rows = self.db.execute(query, tuple(params))
        return [_row_to(RepairOrder, r) for r in rows]

    def get_orders_by_client(self, client_id: int) -> list[RepairOrder]:
        rows = self.db.execute(
            self._ORDERS_SELECT
            + " WHERE ro.client_id = ? ORDER BY ro.created_at DESC, ro.id DESC",
            (client_id,),
        )
        return [_row_to(RepairOrder, r) for r in rows]

    def get_orders_by_technician(
        self, technician_id: int
    ) -> list[RepairOrder]:
        rows = self.db.execute(
            self._ORDERS_SELECT
            + " WHERE ro.technician_id = ?"
            " ORDER BY ro.created_at DESC, ro.id DESC",
            (technician_id,),
        )
        return [_row_to(RepairOrder, r) for r in rows]

    # ── Cost estimates ──────────────────────────────────────────

    def _load_estimate_lines(self, estimate: CostEstimate, conn=None):
        part_rows = self._query(
            "SELECT * FROM estimate_parts WHERE estimate_id = ? ORDER BY id",
            (estimate.id,),
            conn,
        )
        action_rows = self._query(
            "SELECT * FROM estimate_actions WHERE estimate_id = ? ORDER BY id",
            (estimate.id,),
            conn,
        )
        estimate.parts = [_row_to(EstimatePartLine, r) for r in part_rows]
        estimate.actions = [_row_to(EstimateActionLine, r) for r in action_rows]
        return estimate

    def _fetch_estimate(self, where: str, params: tuple,
                        conn=None) -> Optional[CostEstimate]:
        rows = self._query(
            f"SELECT * FROM cost_estimates WHERE {where} "
            "ORDER BY id DESC LIMIT 1",
            params,
            conn,
        )
        if not rows:
            return None
        return self._load_estimate_lines(_row_to(CostEstimate, rows[0]), conn)

    def get_estimate_by_id(self, estimate_id: int,
                           conn=None) -> Optional[CostEstimate]:
        return self._fetch_estimate("id = ?", (estimate_id,), conn)

    def get_latest_estimate(self, order_id: int,
                            conn=None) -> Optional[CostEstimate]:
        return self._fetch_estimate("order_id = ?", (order_id,), conn)

    def get_pending_estimate(self, order_id: int,
                             conn=None) -> Optional[CostEstimate]:
        return self._fetch_estimate(
            "order_id = ? AND approved IS NULL", (order_id,), conn
        )

    def get_approved_estimate(self, order_id: int,
                              conn=None) -> Optional[CostEstimate]:
        return self._fetch_estimate(
            "order_id = ? AND approved = 1", (order_id,), conn
        )

    def get_estimates_for_order(self, order_id: int) -> list[CostEstimate]:
        rows = self.db.execute(
            "SELECT * FROM cost_estimates WHERE order_id = ? ORDER BY id",
            (order_id,),
        )
        return [
            self._load_estimate_lines(_row_to(CostEstimate, r))
            for r in rows
        ]

    # ── Part orders ─────────────────────────────────────────────

    _PART_ORDERS_SELECT = """
        SELECT po.*,
               sp.name AS part_name,
               COALESCE(ro.order_number, '') AS order_number
        FROM part_orders po
        JOIN spare_parts sp ON po.part_id = sp.id
        LEFT JOIN repair_orders ro ON po.repair_order_id = ro.id
    """

    def get_part_order_by_id(self, part_order_id: int,
                             conn=None) -> Optional[PartOrder]:
        rows = self._query(
            self._PART_ORDERS_SELECT + " WHERE po.id = ?",
            (part_order_id,),
            conn,
        )
        return _row_to(PartOrder, rows[0]) if rows else None

    def get_all_part_orders(
        self, status: Optional[str] = None
    ) -> list[PartOrder]:
        query = self._PART_ORDERS_SELECT
        params = []
        if status:
            query += " WHERE po.status = ?"
            params.append(status)
        query += " ORDER BY po.id DESC"
        rows = self.db.execute(query, tuple(params))
        return [_row_to(PartOrder, r) for r in rows]

    def get_part_orders_for_repair_order(self, order_id: int,
                                         conn=None) -> list[PartOrder]:
        rows = self._query(
            self._PART_ORDERS_SELECT
            + " WHERE po.repair_order_id = ? ORDER BY po.id",
            (order_id,),
            conn,
        )
        return [_row_to(PartOrder, r) for r in rows]

    def get_pending_part_orders_for_part(self, part_id: int,
                                         conn=None) -> list[PartOrder]:
        """Outstanding backorders for one part, oldest first."""
        rows = self._query(
            self._PART_ORDERS_SELECT
            + " WHERE po.part_id = ?"
            " AND po.status IN ('ORDERED', 'IN_DELIVERY')"
            " ORDER BY po.id",
            (part_id,),
            conn,
        )
        return [_row_to(PartOrder, r) for r in rows]

    # ── Invoices ────────────────────────────────────────────────

    def generate_invoice_number(self, conn=None) -> str:
        """Generate next sequential document number like INV-2026-001."""
        prefix = Config.INVOICE_NUMBER_PREFIX
        year = datetime.now().year
        rows = self._query(
            "SELECT COUNT(*) as cnt FROM invoices "
            "WHERE document_number LIKE ?",
            (f"{prefix}-{year}-%",),
            conn,
        )
        count = rows[0]["cnt"] + 1 if rows else 1
        return f"{prefix}-{year}-{count:03d}"

    def get_invoice_by_order(self, order_id: int,
                             conn=None) -> Optional[Invoice]:
        rows = self._query(
            "SELECT * FROM invoices WHERE order_id = ?", (order_id,), conn
        )
        return _row_to(Invoice, rows[0]) if rows else None

    def get_all_invoices(self) -> list[Invoice]:
        rows = self.db.execute("SELECT * FROM invoices ORDER BY id DESC")
        return [_row_to(Invoice, r) for r in rows]

    # ── Work logs ───────────────────────────────────────────────

    def get_work_log_by_id(self, log_id: int, conn=None) -> Optional[WorkLog]:
        rows = self._query(
            "SELECT * FROM work_logs WHERE id = ?", (log_id,), conn
        )
        return _row_to(WorkLog, rows[0]) if rows else None

    def get_work_logs(self, order_id: int) -> list[WorkLog]:
        rows = self.db.execute(
            "SELECT * FROM work_logs WHERE order_id = ? ORDER BY id",
            (order_id,),
        )
        return [_row_to(WorkLog, r) for r in rows]

    def get_open_work_log(self, order_id: int, technician_id: int,
                          conn=None) -> Optional[WorkLog]:
        rows = self._query(
            "SELECT * FROM work_logs WHERE order_id = ? "
            "AND technician_id = ? AND ended_at IS NULL",
            (order_id, technician_id),
            conn,
        )
        return _row_to(WorkLog, rows[0]) if rows else None

    # ── Discrepancy reports ─────────────────────────────────────

    def get_discrepancy_reports(
        self, part_id: Optional[int] = None
    ) -> list[DiscrepancyReport]:
        query = """SELECT dr.*, sp.name AS part_name
            FROM discrepancy_reports dr
            JOIN spare_parts sp ON dr.part_id = sp.id"""
        params = []
        if part_id:
            query += " WHERE dr.part_id = ?"
            params.append(part_id)
        query += " ORDER BY dr.id DESC"
        rows = self.db.execute(query, tuple(params))
        return [_row_to(DiscrepancyReport, r) for r in rows]
