"""Tests for schema creation and the constraints it enforces."""

import sqlite3

import pytest

from repair_desk.database.schema import (
    SCHEMA_VERSION,
    _get_schema_version,
    initialize_database,
)


def _tables(db):
    rows = db.execute(
        "SELECT name FROM sqlite_master WHERE type = 'table'"
    )
    return {r["name"] for r in rows}


class TestInitialize:
    def test_creates_all_tables(self, db):
        expected = {
            "employees", "clients", "spare_parts", "service_actions",
            "repair_orders", "cost_estimates", "estimate_parts",
            "estimate_actions", "part_orders", "invoices", "work_logs",
            "discrepancy_reports", "schema_version",
        }
        assert expected <= _tables(db)

    def test_records_version(self, db):
        with db.get_connection() as conn:
            assert _get_schema_version(conn) == SCHEMA_VERSION

    def test_is_idempotent(self, db):
        initialize_database(db)
        rows = db.execute("SELECT COUNT(*) AS n FROM schema_version")
        assert rows[0]["n"] == 1

    def test_version_zero_on_empty_db(self, tmp_path):
        from repair_desk.database.connection import DatabaseConnection
        empty = DatabaseConnection(tmp_path / "empty.db")
        with empty.get_connection() as conn:
            assert _get_schema_version(conn) == 0


class TestConstraints:
    def _client(self, db):
        with db.get_connection() as conn:
            return conn.execute(
                "INSERT INTO clients (first_name, phone) VALUES ('A', '1')"
            ).lastrowid

    def _order(self, db, client_id, number="ORD-1"):
        with db.get_connection() as conn:
            return conn.execute(
                "INSERT INTO repair_orders (order_number, client_id) "
                "VALUES (?, ?)",
                (number, client_id),
            ).lastrowid

    def test_negative_stock_rejected(self, db):
        with pytest.raises(sqlite3.IntegrityError):
            db.execute(
                "INSERT INTO spare_parts (name, quantity) VALUES ('x', -1)"
            )

    def test_unknown_order_status_rejected(self, db):
        order_id = self._order(db, self._client(db))
        with pytest.raises(sqlite3.IntegrityError):
            db.execute(
                "UPDATE repair_orders SET status = 'LOST' WHERE id = ?",
                (order_id,),
            )

    def test_one_pending_estimate_per_order(self, db):
        order_id = self._order(db, self._client(db))
        db.execute(
            "INSERT INTO cost_estimates (order_id) VALUES (?)", (order_id,)
        )
        with pytest.raises(sqlite3.IntegrityError):
            db.execute(
                "INSERT INTO cost_estimates (order_id) VALUES (?)",
                (order_id,),
            )

    def test_decided_estimates_do_not_block_new_one(self, db):
        order_id = self._order(db, self._client(db))
        db.execute(
            "INSERT INTO cost_estimates (order_id, approved) VALUES (?, 0)",
            (order_id,),
        )
        db.execute(
            "INSERT INTO cost_estimates (order_id) VALUES (?)", (order_id,)
        )

    def test_one_invoice_per_order(self, db):
        client_id = self._client(db)
        order_id = self._order(db, client_id)
        insert = (
            "INSERT INTO invoices (document_number, order_id, client_id, "
            "amount, payment_method) VALUES (?, ?, ?, '1.00', 'CASH')"
        )
        db.execute(insert, ("INV-1", order_id, client_id))
        with pytest.raises(sqlite3.IntegrityError):
            db.execute(insert, ("INV-2", order_id, client_id))

    def test_consumed_cannot_exceed_estimated(self, db):
        order_id = self._order(db, self._client(db))
        with db.get_connection() as conn:
            part_id = conn.execute(
                "INSERT INTO spare_parts (name) VALUES ('p')"
            ).lastrowid
            est_id = conn.execute(
                "INSERT INTO cost_estimates (order_id) VALUES (?)",
                (order_id,),
            ).lastrowid
        with pytest.raises(sqlite3.IntegrityError):
            db.execute(
                "INSERT INTO estimate_parts (estimate_id, part_id, quantity, "
                "quantity_consumed) VALUES (?, ?, 1, 2)",
                (est_id, part_id),
            )
