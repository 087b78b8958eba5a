"""Database schema definition and initialization."""

import sqlite3

SCHEMA_VERSION = 1

# Each statement is a separate string to avoid executescript issues
_SCHEMA_STATEMENTS = [
    # Staff accounts
    """CREATE TABLE IF NOT EXISTS employees (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        first_name TEXT NOT NULL,
        last_name TEXT NOT NULL,
        email TEXT NOT NULL UNIQUE,
        role TEXT NOT NULL
            CHECK (role IN ('OFFICE', 'TECHNICIAN', 'WAREHOUSE', 'MANAGER')),
        skill_level TEXT
            CHECK (skill_level IS NULL
                   OR skill_level IN ('JUNIOR', 'MID', 'SENIOR')),
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",

    # Customers
    """CREATE TABLE IF NOT EXISTS clients (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        first_name TEXT NOT NULL,
        last_name TEXT NOT NULL DEFAULT '',
        phone TEXT NOT NULL UNIQUE,
        email TEXT DEFAULT '',
        pin_hash TEXT NOT NULL DEFAULT '',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",

    # Warehouse stock
    """CREATE TABLE IF NOT EXISTS spare_parts (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        category TEXT NOT NULL DEFAULT '',
        quantity INTEGER NOT NULL DEFAULT 0 CHECK (quantity >= 0),
        min_quantity INTEGER NOT NULL DEFAULT 0 CHECK (min_quantity >= 0),
        price TEXT NOT NULL DEFAULT '0.00',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",

    # Labour price list
    """CREATE TABLE IF NOT EXISTS service_actions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL UNIQUE,
        price TEXT NOT NULL DEFAULT '0.00',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",

    # Repair orders
    """CREATE TABLE IF NOT EXISTS repair_orders (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        order_number TEXT NOT NULL UNIQUE,
        client_id INTEGER NOT NULL,
        technician_id INTEGER,
        status TEXT NOT NULL DEFAULT 'NEW'
            CHECK (status IN ('NEW', 'WAITING_FOR_TECHNICIAN', 'DIAGNOSING',
                              'WAITING_FOR_ACCEPTANCE', 'WAITING_FOR_PARTS',
                              'IN_PROGRESS', 'READY_FOR_PICKUP',
                              'COMPLETED', 'CANCELLED')),
        device_description TEXT NOT NULL DEFAULT '',
        problem_description TEXT NOT NULL DEFAULT '',
        diagnosis_notes TEXT NOT NULL DEFAULT '',
        manager_notes TEXT NOT NULL DEFAULT '',
        total_work_minutes INTEGER NOT NULL DEFAULT 0,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        start_date TIMESTAMP,
        end_date TIMESTAMP,
        FOREIGN KEY (client_id) REFERENCES clients(id) ON DELETE RESTRICT,
        FOREIGN KEY (technician_id) REFERENCES employees(id)
            ON DELETE SET NULL
    )""",

    # Cost estimates (approved: NULL pending, 1 approved, 0 rejected)
    """CREATE TABLE IF NOT EXISTS cost_estimates (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        order_id INTEGER NOT NULL,
        message TEXT NOT NULL DEFAULT '',
        parts_cost TEXT NOT NULL DEFAULT '0.00',
        labour_cost TEXT NOT NULL DEFAULT '0.00',
        total_cost TEXT NOT NULL DEFAULT '0.00',
        approved INTEGER CHECK (approved IS NULL OR approved IN (0, 1)),
        created_by INTEGER,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        decided_at TIMESTAMP,
        FOREIGN KEY (order_id) REFERENCES repair_orders(id)
            ON DELETE RESTRICT,
        FOREIGN KEY (created_by) REFERENCES employees(id) ON DELETE SET NULL
    )""",

    # At most one undecided estimate per order
    """CREATE UNIQUE INDEX IF NOT EXISTS uq_cost_estimates_pending
        ON cost_estimates(order_id) WHERE approved IS NULL""",

    # Estimate part lines (price and name are snapshots)
    """CREATE TABLE IF NOT EXISTS estimate_parts (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        estimate_id INTEGER NOT NULL,
        part_id INTEGER NOT NULL,
        part_name TEXT NOT NULL DEFAULT '',
        quantity INTEGER NOT NULL CHECK (quantity > 0),
        unit_price TEXT NOT NULL DEFAULT '0.00',
        quantity_consumed INTEGER NOT NULL DEFAULT 0
            CHECK (quantity_consumed >= 0 AND quantity_consumed <= quantity),
        FOREIGN KEY (estimate_id) REFERENCES cost_estimates(id)
            ON DELETE CASCADE,
        FOREIGN KEY (part_id) REFERENCES spare_parts(id) ON DELETE RESTRICT
    )""",

    # Estimate labour lines
    """CREATE TABLE IF NOT EXISTS estimate_actions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        estimate_id INTEGER NOT NULL,
        action_id INTEGER NOT NULL,
        action_name TEXT NOT NULL DEFAULT '',
        price TEXT NOT NULL DEFAULT '0.00',
        FOREIGN KEY (estimate_id) REFERENCES cost_estimates(id)
            ON DELETE CASCADE,
        FOREIGN KEY (action_id) REFERENCES service_actions(id)
            ON DELETE RESTRICT
    )""",

    # Backorders
    """CREATE TABLE IF NOT EXISTS part_orders (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        part_id INTEGER NOT NULL,
        quantity INTEGER NOT NULL CHECK (quantity > 0),
        status TEXT NOT NULL DEFAULT 'ORDERED'
            CHECK (status IN ('ORDERED', 'IN_DELIVERY',
                              'DELIVERED', 'CANCELLED')),
        repair_order_id INTEGER,
        requested_by INTEGER,
        order_date TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        estimated_delivery TIMESTAMP,
        delivered_at TIMESTAMP,
        FOREIGN KEY (part_id) REFERENCES spare_parts(id) ON DELETE RESTRICT,
        FOREIGN KEY (repair_order_id) REFERENCES repair_orders(id)
            ON DELETE SET NULL,
        FOREIGN KEY (requested_by) REFERENCES employees(id)
            ON DELETE SET NULL
    )""",

    """CREATE INDEX IF NOT EXISTS idx_part_orders_part_status
        ON part_orders(part_id, status)""",

    """CREATE INDEX IF NOT EXISTS idx_part_orders_repair_order
        ON part_orders(repair_order_id)""",

    # Sale documents (one per order)
    """CREATE TABLE IF NOT EXISTS invoices (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        document_number TEXT NOT NULL UNIQUE,
        order_id INTEGER NOT NULL UNIQUE,
        client_id INTEGER NOT NULL,
        amount TEXT NOT NULL,
        payment_method TEXT NOT NULL
            CHECK (payment_method IN ('CASH', 'CARD', 'BANK_TRANSFER')),
        status TEXT NOT NULL DEFAULT 'ISSUED'
            CHECK (status IN ('ISSUED', 'PAID', 'CANCELLED')),
        issue_date TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (order_id) REFERENCES repair_orders(id)
            ON DELETE RESTRICT,
        FOREIGN KEY (client_id) REFERENCES clients(id) ON DELETE RESTRICT
    )""",

    # Technician time tracking
    """CREATE TABLE IF NOT EXISTS work_logs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        order_id INTEGER NOT NULL,
        technician_id INTEGER NOT NULL,
        started_at TIMESTAMP NOT NULL,
        ended_at TIMESTAMP,
        duration_minutes INTEGER,
        FOREIGN KEY (order_id) REFERENCES repair_orders(id)
            ON DELETE CASCADE,
        FOREIGN KEY (technician_id) REFERENCES employees(id)
            ON DELETE CASCADE
    )""",

    # Stock discrepancies reported by the warehouse
    """CREATE TABLE IF NOT EXISTS discrepancy_reports (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        part_id INTEGER NOT NULL,
        quantity INTEGER NOT NULL CHECK (quantity > 0),
        reason TEXT NOT NULL,
        reported_by INTEGER,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (part_id) REFERENCES spare_parts(id) ON DELETE CASCADE,
        FOREIGN KEY (reported_by) REFERENCES employees(id)
            ON DELETE SET NULL
    )""",

    # Schema version tracking
    """CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER PRIMARY KEY,
        applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",
]


def _get_schema_version(conn) -> int:
    """Get the current schema version, or 0 if no schema exists."""
    try:
        row = conn.execute(
            "SELECT MAX(version) as v FROM schema_version"
        ).fetchone()
        return row["v"] if row and row["v"] else 0
    except sqlite3.OperationalError:
        return 0


def initialize_database(db_connection):
    """Create all tables and indexes on a fresh database.

    Safe to call on every start-up: an up-to-date database is left as is.
    """
    with db_connection.get_connection() as conn:
        version = _get_schema_version(conn)
        if version >= SCHEMA_VERSION:
            return

        for stmt in _SCHEMA_STATEMENTS:
            conn.execute(stmt)
        conn.execute(
            "INSERT OR IGNORE INTO schema_version (version) VALUES (?)",
            (SCHEMA_VERSION,),
        )
