"""Settlement: payment, sale document, and closing the order."""

import logging
import sqlite3
from typing import Optional

from repair_desk.core.actors import Actor, require_client_owns, require_permission
from repair_desk.core.locks import EntityLocks
from repair_desk.core.transitions import apply_transition
from repair_desk.database.connection import DatabaseConnection
from repair_desk.database.models import Invoice
from repair_desk.database.repository import Repository
from repair_desk.errors import InvalidTransition, NotFound, ValidationError
from repair_desk.io.documents import render_receipt_pdf
from repair_desk.utils.constants import PAYMENT_METHODS

logger = logging.getLogger(__name__)


class Settlement:
    """Takes payment for a finished repair and completes the order."""

    def __init__(self, db: DatabaseConnection, repo: Repository,
                 locks: EntityLocks):
        self.db = db
        self.repo = repo
        self.locks = locks

    def settle(self, actor: Actor, order_id: int,
               payment_method: str) -> Invoice:
        """Issue the paid sale document and move the order to COMPLETED.

        Both writes share one transaction; a second settlement of the
        same order fails and leaves the first one untouched.
        """
        require_permission(actor, "orders_settle")
        if payment_method not in PAYMENT_METHODS:
            raise ValidationError(
                f"Unknown payment method {payment_method!r}; "
                f"expected one of {', '.join(PAYMENT_METHODS)}"
            )
        with self.locks.order(order_id):
            try:
                with self.db.transaction() as conn:
                    return self._settle(conn, actor, order_id, payment_method)
            except sqlite3.IntegrityError as e:
                raise InvalidTransition(
                    f"Order {order_id} is already settled"
                ) from e

    def _settle(self, conn, actor, order_id, payment_method):
        order = self.repo.require_repair_order(order_id, conn)
        require_client_owns(actor, order.client_id)
        if self.repo.get_invoice_by_order(order_id, conn):
            raise InvalidTransition(
                f"Order {order.order_number} is already settled"
            )
        if order.status != "READY_FOR_PICKUP":
            raise InvalidTransition(
                f"Order {order.order_number} is {order.status}, "
                "not ready for pickup"
            )
        estimate = self.repo.get_approved_estimate(order_id, conn)
        if estimate is None:
            raise InvalidTransition(
                f"Order {order.order_number} has no approved estimate"
            )

        number = self.repo.generate_invoice_number(conn)
        cursor = conn.execute(
            "INSERT INTO invoices "
            "(document_number, order_id, client_id, amount, "
            "payment_method, status) VALUES (?, ?, ?, ?, ?, 'PAID')",
            (number, order_id, order.client_id, estimate.total_cost,
             payment_method),
        )
        apply_transition(conn, order, "COMPLETED")
        logger.info(
            f"Order {order.order_number} settled: {number} "
            f"{estimate.total_cost} by {payment_method}"
        )
        rows = conn.execute(
            "SELECT * FROM invoices WHERE id = ?", (cursor.lastrowid,)
        ).fetchall()
        return Invoice(**dict(rows[0]))

    def get_invoice(self, actor: Actor, order_id: int) -> Optional[Invoice]:
        require_permission(actor, "documents_view")
        order = self.repo.require_repair_order(order_id)
        require_client_owns(actor, order.client_id)
        return self.repo.get_invoice_by_order(order_id)

    def render_invoice(self, actor: Actor, order_id: int) -> bytes:
        """PDF receipt for a settled order."""
        invoice = self.get_invoice(actor, order_id)
        if invoice is None:
            raise NotFound(f"Order {order_id} has not been settled")
        order = self.repo.require_repair_order(order_id)
        estimate = self.repo.get_approved_estimate(order_id)
        return render_receipt_pdf(invoice, order, estimate)
