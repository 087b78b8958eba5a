"""Application-wide constants."""

# ── Employees ────────────────────────────────────────────────────
EMPLOYEE_ROLES = ["OFFICE", "TECHNICIAN", "WAREHOUSE", "MANAGER"]
SKILL_LEVELS = ["JUNIOR", "MID", "SENIOR"]

# Pseudo-role used for customer-facing actors
CLIENT_ROLE = "CLIENT"

# ── Repair order lifecycle ──────────────────────────────────────
ORDER_STATUSES = [
    "NEW",
    "WAITING_FOR_TECHNICIAN",
    "DIAGNOSING",
    "WAITING_FOR_ACCEPTANCE",
    "WAITING_FOR_PARTS",
    "IN_PROGRESS",
    "READY_FOR_PICKUP",
    "COMPLETED",
    "CANCELLED",
]

TERMINAL_ORDER_STATUSES = ["COMPLETED", "CANCELLED"]

# Allowed (from, to) pairs; anything else is an invalid transition
ORDER_TRANSITIONS = {
    "NEW": {"WAITING_FOR_TECHNICIAN"},
    "WAITING_FOR_TECHNICIAN": {"DIAGNOSING", "IN_PROGRESS"},
    "DIAGNOSING": {"WAITING_FOR_ACCEPTANCE", "CANCELLED"},
    "WAITING_FOR_ACCEPTANCE": {"IN_PROGRESS", "CANCELLED"},
    "IN_PROGRESS": {"WAITING_FOR_PARTS", "READY_FOR_PICKUP"},
    "WAITING_FOR_PARTS": {"WAITING_FOR_TECHNICIAN"},
    "READY_FOR_PICKUP": {"COMPLETED"},
    "COMPLETED": set(),
    "CANCELLED": set(),
}

# Orders whose approved estimate still needs stock
EXECUTION_STATUSES = ["IN_PROGRESS", "WAITING_FOR_PARTS"]

# Technicians may log work time only while actively on the device
WORK_LOG_STATUSES = ["DIAGNOSING", "IN_PROGRESS"]

ORDER_STATUS_LABELS = {
    "NEW": "New",
    "WAITING_FOR_TECHNICIAN": "Waiting for technician",
    "DIAGNOSING": "Diagnosing",
    "WAITING_FOR_ACCEPTANCE": "Waiting for acceptance",
    "WAITING_FOR_PARTS": "Waiting for parts",
    "IN_PROGRESS": "In progress",
    "READY_FOR_PICKUP": "Ready for pickup",
    "COMPLETED": "Completed",
    "CANCELLED": "Cancelled",
}

# ── Part orders (backorders) ────────────────────────────────────
PART_ORDER_STATUSES = ["ORDERED", "IN_DELIVERY", "DELIVERED", "CANCELLED"]

# Still waiting on stock; re-evaluated on every receipt
PENDING_PART_ORDER_STATUSES = ["ORDERED", "IN_DELIVERY"]

# A repair order's backorders are settled once all are in these states
SETTLED_PART_ORDER_STATUSES = ["DELIVERED", "CANCELLED"]

# ── Payments & documents ────────────────────────────────────────
PAYMENT_METHODS = ["CASH", "CARD", "BANK_TRANSFER"]

# ── Permissions ─────────────────────────────────────────────────
# Each permission key maps to the roles allowed to use it
ROLE_PERMISSIONS = {
    # Intake
    "clients_create": ["OFFICE", "MANAGER"],
    "clients_view": ["OFFICE", "MANAGER"],
    "orders_create": ["OFFICE", "MANAGER"],
    "orders_view_all": ["OFFICE", "MANAGER", "TECHNICIAN", "WAREHOUSE"],
    # Manager console
    "orders_assign": ["MANAGER"],
    "orders_manager_notes": ["MANAGER"],
    "employees_manage": ["MANAGER"],
    "services_manage": ["MANAGER"],
    "shortages_view": ["MANAGER", "WAREHOUSE", "TECHNICIAN"],
    # Technician console
    "orders_diagnose": ["TECHNICIAN"],
    "estimates_create": ["TECHNICIAN"],
    "parts_request": ["TECHNICIAN"],
    "parts_consume": ["TECHNICIAN"],
    "orders_finish": ["TECHNICIAN"],
    "work_log": ["TECHNICIAN"],
    # Customer decisions (office may act on a client's behalf)
    "estimates_decide": ["OFFICE", CLIENT_ROLE],
    "orders_settle": ["OFFICE", CLIENT_ROLE],
    "documents_view": ["OFFICE", "MANAGER", CLIENT_ROLE],
    # Warehouse console
    "parts_manage": ["WAREHOUSE", "MANAGER"],
    "parts_withdraw": ["WAREHOUSE", "TECHNICIAN"],
    "deliveries_receive": ["WAREHOUSE"],
    "part_orders_manage": ["WAREHOUSE", "MANAGER"],
    "discrepancies_report": ["WAREHOUSE"],
}
