"""Data models for the database layer."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from repair_desk.utils.formatters import to_money


@dataclass
class Employee:
    id: Optional[int] = None
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    role: str = "TECHNICIAN"
    skill_level: Optional[str] = None
    is_active: int = 1
    created_at: Optional[datetime] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass
class Client:
    id: Optional[int] = None
    first_name: str = ""
    last_name: str = ""
    phone: str = ""
    email: str = ""
    pin_hash: str = field(default="", repr=False)
    created_at: Optional[datetime] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass
class SparePart:
    id: Optional[int] = None
    name: str = ""
    category: str = ""
    quantity: int = 0
    min_quantity: int = 0
    price: Decimal = Decimal("0.00")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.price = to_money(self.price)

    @property
    def is_low_stock(self) -> bool:
        return self.min_quantity > 0 and self.quantity < self.min_quantity

    @property
    def total_value(self) -> Decimal:
        return self.quantity * self.price


@dataclass
class ServiceAction:
    id: Optional[int] = None
    name: str = ""
    price: Decimal = Decimal("0.00")
    created_at: Optional[datetime] = None

    def __post_init__(self):
        self.price = to_money(self.price)


@dataclass
class RepairOrder:
    id: Optional[int] = None
    order_number: str = ""
    client_id: int = 0
    technician_id: Optional[int] = None
    status: str = "NEW"
    device_description: str = ""
    problem_description: str = ""
    diagnosis_notes: str = ""
    manager_notes: str = ""
    total_work_minutes: int = 0
    created_at: Optional[datetime] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    # Joined fields (not stored directly)
    client_name: str = field(default="", repr=False)
    client_phone: str = field(default="", repr=False)
    technician_name: str = field(default="", repr=False)

    @property
    def is_terminal(self) -> bool:
        return self.status in ("COMPLETED", "CANCELLED")


@dataclass
class EstimatePartLine:
    id: Optional[int] = None
    estimate_id: int = 0
    part_id: int = 0
    part_name: str = ""
    quantity: int = 1
    unit_price: Decimal = Decimal("0.00")
    quantity_consumed: int = 0

    def __post_init__(self):
        self.unit_price = to_money(self.unit_price)

    @property
    def line_total(self) -> Decimal:
        return self.quantity * self.unit_price

    @property
    def outstanding(self) -> int:
        """Units estimated but not yet confirmed as consumed."""
        return self.quantity - self.quantity_consumed


@dataclass
class EstimateActionLine:
    id: Optional[int] = None
    estimate_id: int = 0
    action_id: int = 0
    action_name: str = ""
    price: Decimal = Decimal("0.00")

    def __post_init__(self):
        self.price = to_money(self.price)


@dataclass
class CostEstimate:
    id: Optional[int] = None
    order_id: int = 0
    message: str = ""
    parts_cost: Decimal = Decimal("0.00")
    labour_cost: Decimal = Decimal("0.00")
    total_cost: Decimal = Decimal("0.00")
    approved: Optional[bool] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None
    decided_at: Optional[datetime] = None
    parts: list[EstimatePartLine] = field(default_factory=list)
    actions: list[EstimateActionLine] = field(default_factory=list)

    def __post_init__(self):
        self.parts_cost = to_money(self.parts_cost)
        self.labour_cost = to_money(self.labour_cost)
        self.total_cost = to_money(self.total_cost)
        if self.approved is not None:
            self.approved = bool(self.approved)

    @property
    def is_pending(self) -> bool:
        return self.approved is None


@dataclass
class PartOrder:
    id: Optional[int] = None
    part_id: int = 0
    quantity: int = 1
    status: str = "ORDERED"
    repair_order_id: Optional[int] = None
    requested_by: Optional[int] = None
    order_date: Optional[datetime] = None
    estimated_delivery: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    # Joined fields
    part_name: str = field(default="", repr=False)
    order_number: str = field(default="", repr=False)


@dataclass
class Invoice:
    id: Optional[int] = None
    document_number: str = ""
    order_id: int = 0
    client_id: int = 0
    amount: Decimal = Decimal("0.00")
    payment_method: str = "CASH"
    status: str = "ISSUED"
    issue_date: Optional[datetime] = None

    def __post_init__(self):
        self.amount = to_money(self.amount)


@dataclass
class WorkLog:
    id: Optional[int] = None
    order_id: int = 0
    technician_id: int = 0
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    duration_minutes: Optional[int] = None

    @property
    def is_open(self) -> bool:
        return self.ended_at is None


@dataclass
class DiscrepancyReport:
    id: Optional[int] = None
    part_id: int = 0
    quantity: int = 0
    reason: str = ""
    reported_by: Optional[int] = None
    created_at: Optional[datetime] = None
    # Joined fields
    part_name: str = field(default="", repr=False)
