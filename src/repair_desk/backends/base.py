"""The operation set shared by the local desk and the remote adapter."""

from abc import ABC, abstractmethod
from typing import Iterable, Optional

from repair_desk.core.actors import Actor
from repair_desk.database.models import (
    Client,
    CostEstimate,
    Invoice,
    PartOrder,
    RepairOrder,
    SparePart,
    WorkLog,
)


class RepairBackend(ABC):
    """Every call takes the acting identity first.

    Implementations raise the errors of ``repair_desk.errors`` unchanged.
    """

    # ── Intake ──────────────────────────────────────────────────

    @abstractmethod
    def create_client(self, actor: Actor, first_name: str, last_name: str,
                      phone: str, email: str = "") -> Client: ...

    @abstractmethod
    def create_order(self, actor: Actor, client_id: int,
                     device_description: str,
                     problem_description: str) -> RepairOrder: ...

    # ── Lifecycle ───────────────────────────────────────────────

    @abstractmethod
    def assign_technician(self, actor: Actor, order_id: int,
                          technician_id: int) -> RepairOrder: ...

    @abstractmethod
    def start_diagnosis(self, actor: Actor, order_id: int) -> RepairOrder: ...

    @abstractmethod
    def mark_unrepairable(self, actor: Actor, order_id: int,
                          reason: str = "") -> RepairOrder: ...

    @abstractmethod
    def resume_repair(self, actor: Actor, order_id: int) -> RepairOrder: ...

    @abstractmethod
    def update_diagnosis_notes(self, actor: Actor, order_id: int,
                               notes: str) -> RepairOrder: ...

    @abstractmethod
    def update_manager_notes(self, actor: Actor, order_id: int,
                             notes: str) -> RepairOrder: ...

    @abstractmethod
    def consume_part(self, actor: Actor, order_id: int, part_id: int,
                     quantity: int) -> CostEstimate: ...

    @abstractmethod
    def finish_repair(self, actor: Actor,
                      order_id: int) -> tuple[RepairOrder, list[str]]: ...

    @abstractmethod
    def start_work(self, actor: Actor, order_id: int) -> WorkLog: ...

    @abstractmethod
    def stop_work(self, actor: Actor, order_id: int) -> WorkLog: ...

    # ── Estimates ───────────────────────────────────────────────

    @abstractmethod
    def create_estimate(self, actor: Actor, order_id: int,
                        parts: Iterable[tuple[int, int]] = (),
                        action_ids: Iterable[int] = (),
                        message: str = "") -> CostEstimate: ...

    @abstractmethod
    def decide_estimate(self, actor: Actor, order_id: int,
                        approved: bool) -> CostEstimate: ...

    @abstractmethod
    def get_estimate(self, actor: Actor,
                     order_id: int) -> Optional[CostEstimate]: ...

    # ── Inventory & procurement ─────────────────────────────────

    @abstractmethod
    def withdraw(self, actor: Actor, part_id: int,
                 quantity: int) -> SparePart: ...

    @abstractmethod
    def receive(self, actor: Actor, part_id: int,
                quantity: int) -> SparePart: ...

    @abstractmethod
    def shortage(self, actor: Actor, order_id: int) -> list[dict]: ...

    @abstractmethod
    def all_shortages(self, actor: Actor) -> list[dict]: ...

    @abstractmethod
    def request_parts(self, actor: Actor, order_id: int, part_id: int,
                      quantity: int) -> PartOrder: ...

    @abstractmethod
    def create_part_order(self, actor: Actor, part_id: int,
                          quantity: int) -> PartOrder: ...

    @abstractmethod
    def mark_in_delivery(self, actor: Actor, po_id: int,
                         estimated_delivery: Optional[str] = None
                         ) -> PartOrder: ...

    @abstractmethod
    def cancel_part_order(self, actor: Actor, po_id: int) -> PartOrder: ...

    @abstractmethod
    def receive_part_order(self, actor: Actor, po_id: int) -> PartOrder: ...

    @abstractmethod
    def accept_delivery(self, actor: Actor,
                        items: Iterable[tuple[int, int]]) -> list[SparePart]: ...

    # ── Settlement ──────────────────────────────────────────────

    @abstractmethod
    def settle(self, actor: Actor, order_id: int,
               payment_method: str) -> Invoice: ...

    @abstractmethod
    def get_invoice(self, actor: Actor, order_id: int) -> Optional[Invoice]: ...

    @abstractmethod
    def render_invoice(self, actor: Actor, order_id: int) -> bytes: ...

    # ── Reads ───────────────────────────────────────────────────

    @abstractmethod
    def get_order(self, actor: Actor, order_id: int) -> RepairOrder: ...

    @abstractmethod
    def list_orders(self, actor: Actor) -> list[RepairOrder]: ...

    @abstractmethod
    def list_orders_by_client(self, actor: Actor,
                              client_id: int) -> list[RepairOrder]: ...

    @abstractmethod
    def list_orders_by_technician(self, actor: Actor,
                                  technician_id: int) -> list[RepairOrder]: ...

    @abstractmethod
    def list_parts(self, actor: Actor) -> list[SparePart]: ...

    @abstractmethod
    def list_part_orders(self, actor: Actor) -> list[PartOrder]: ...
