"""Tests for the repair order state machine."""

import threading
from datetime import datetime, timedelta

import pytest

from repair_desk.core.transitions import apply_transition, can_transition
from repair_desk.errors import (
    InsufficientStock,
    InvalidTransition,
    NotFound,
    PermissionDenied,
    ValidationError,
)
from repair_desk.utils.constants import ORDER_STATUSES, ORDER_TRANSITIONS


def _status(desk, order_id):
    return desk.repo.get_repair_order(order_id).status


class TestTransitionTable:
    @pytest.mark.parametrize("target", ORDER_STATUSES)
    def test_terminal_states_have_no_exits(self, target):
        assert not can_transition("COMPLETED", target)
        assert not can_transition("CANCELLED", target)

    def test_every_status_has_an_entry(self):
        assert set(ORDER_TRANSITIONS) == set(ORDER_STATUSES)

    def test_apply_rejects_unlisted_pair(self, desk, new_order):
        with desk.db.transaction() as conn:
            with pytest.raises(InvalidTransition):
                apply_transition(conn, new_order, "COMPLETED")
        assert _status(desk, new_order.id) == "NEW"

    def test_apply_is_compare_and_set(self, desk, new_order):
        stale = desk.repo.get_repair_order(new_order.id)
        desk.db.execute(
            "UPDATE repair_orders SET status = 'WAITING_FOR_TECHNICIAN' "
            "WHERE id = ?", (new_order.id,),
        )
        with pytest.raises(InvalidTransition):
            with desk.db.transaction() as conn:
                apply_transition(conn, stale, "WAITING_FOR_TECHNICIAN")


class TestIntake:
    def test_create_client_sends_pin(self, desk, office, pin_sender):
        client = desk.create_client(office, "Robert", "Kubica", "600200300")
        pin = pin_sender.pins[client.id]
        assert len(pin) == 4 and pin.isdigit()
        assert desk.authenticate_client("600200300", pin).id == client.id

    def test_technician_cannot_create_client(self, desk, tech):
        with pytest.raises(PermissionDenied):
            desk.create_client(tech, "A", "B", "1")

    def test_create_order_is_new_and_numbered(self, desk, new_order):
        assert new_order.status == "NEW"
        assert new_order.order_number.startswith("ORD-")
        assert new_order.client_name == "Adam Malysz"

    def test_create_order_unknown_client(self, desk, office):
        with pytest.raises(NotFound):
            desk.create_order(office, 999, "Phone", "Broken")


class TestAssignment:
    def test_assign(self, desk, manager, tech, new_order):
        order = desk.assign_technician(manager, new_order.id, tech.id)
        assert order.status == "WAITING_FOR_TECHNICIAN"
        assert order.technician_id == tech.id
        assert order.technician_name == "Piotr Wisniewski"

    def test_reassign_while_waiting(self, desk, manager, tech, tech2,
                                    new_order):
        desk.assign_technician(manager, new_order.id, tech.id)
        order = desk.assign_technician(manager, new_order.id, tech2.id)
        assert order.technician_id == tech2.id
        assert order.status == "WAITING_FOR_TECHNICIAN"

    def test_assignee_must_be_technician(self, desk, manager, office,
                                         new_order):
        with pytest.raises(InvalidTransition):
            desk.assign_technician(manager, new_order.id, office.id)
        assert _status(desk, new_order.id) == "NEW"

    def test_only_manager_assigns(self, desk, office, tech, new_order):
        with pytest.raises(PermissionDenied):
            desk.assign_technician(office, new_order.id, tech.id)

    def test_cannot_assign_during_diagnosis(self, desk, manager, tech2,
                                            diagnosing_order):
        with pytest.raises(InvalidTransition):
            desk.assign_technician(manager, diagnosing_order.id, tech2.id)


class TestDiagnosis:
    def test_start_sets_start_date(self, diagnosing_order):
        assert diagnosing_order.status == "DIAGNOSING"
        assert diagnosing_order.start_date

    def test_other_technician_cannot_start(self, desk, manager, tech, tech2,
                                           new_order):
        desk.assign_technician(manager, new_order.id, tech.id)
        with pytest.raises(PermissionDenied):
            desk.start_diagnosis(tech2, new_order.id)

    def test_cannot_start_new_order(self, desk, tech, new_order):
        # Not assigned yet, so not this technician's order either
        with pytest.raises(PermissionDenied):
            desk.start_diagnosis(tech, new_order.id)

    def test_unrepairable_cancels(self, desk, tech, parts, diagnosing_order):
        po = desk.request_parts(tech, diagnosing_order.id,
                                parts["ram"].id, 1)
        order = desk.mark_unrepairable(tech, diagnosing_order.id,
                                       "Board is fried")
        assert order.status == "CANCELLED"
        assert "Board is fried" in order.diagnosis_notes
        assert desk.repo.get_part_order_by_id(po.id).status == "CANCELLED"

    def test_unrepairable_only_while_diagnosing(self, desk, tech, parts,
                                                diagnosing_order, approve):
        approve(diagnosing_order.id, parts=[(parts["ssd"].id, 1)])
        with pytest.raises(InvalidTransition):
            desk.mark_unrepairable(tech, diagnosing_order.id)

    def test_notes(self, desk, tech, manager, diagnosing_order):
        desk.update_diagnosis_notes(tech, diagnosing_order.id, "Fan dead")
        order = desk.update_manager_notes(manager, diagnosing_order.id,
                                          "VIP customer")
        assert order.diagnosis_notes == "Fan dead"
        assert order.manager_notes == "VIP customer"

    def test_concurrent_start_only_one_wins(self, desk, manager, tech,
                                            new_order):
        desk.assign_technician(manager, new_order.id, tech.id)
        outcomes = []

        def worker():
            try:
                desk.start_diagnosis(tech, new_order.id)
                outcomes.append("ok")
            except InvalidTransition:
                outcomes.append("rejected")

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert outcomes.count("ok") == 1
        assert _status(desk, new_order.id) == "DIAGNOSING"


class TestExecution:
    def test_resume_after_parts_arrive(self, desk, tech, warehouse, parts,
                                       diagnosing_order, approve):
        approve(diagnosing_order.id, parts=[(parts["ram"].id, 1)])
        desk.receive(warehouse, parts["ram"].id, 1)
        assert _status(desk, diagnosing_order.id) == "WAITING_FOR_TECHNICIAN"
        with pytest.raises(InvalidTransition):
            desk.start_diagnosis(tech, diagnosing_order.id)
        order = desk.resume_repair(tech, diagnosing_order.id)
        assert order.status == "IN_PROGRESS"

    def test_resume_requires_approved_estimate(self, desk, manager, tech,
                                               new_order):
        desk.assign_technician(manager, new_order.id, tech.id)
        with pytest.raises(InvalidTransition):
            desk.resume_repair(tech, new_order.id)

    def test_resume_backorders_again_if_stock_was_taken(
        self, desk, tech, warehouse, parts, diagnosing_order, approve
    ):
        approve(diagnosing_order.id, parts=[(parts["ram"].id, 1)])
        desk.receive(warehouse, parts["ram"].id, 1)
        desk.withdraw(warehouse, parts["ram"].id, 1)
        order = desk.resume_repair(tech, diagnosing_order.id)
        assert order.status == "WAITING_FOR_PARTS"
        pending = [
            po for po in
            desk.repo.get_part_orders_for_repair_order(order.id)
            if po.status == "ORDERED"
        ]
        assert len(pending) == 1

    def test_consume_part(self, desk, tech, parts, diagnosing_order,
                          approve):
        approve(diagnosing_order.id, parts=[(parts["ssd"].id, 2)])
        estimate = desk.consume_part(tech, diagnosing_order.id,
                                     parts["ssd"].id, 2)
        assert estimate.parts[0].quantity_consumed == 2
        assert desk.repo.get_part_by_id(parts["ssd"].id).quantity == 8

    def test_consume_beyond_estimate(self, desk, tech, parts,
                                     diagnosing_order, approve):
        approve(diagnosing_order.id, parts=[(parts["ssd"].id, 1)])
        with pytest.raises(ValidationError):
            desk.consume_part(tech, diagnosing_order.id, parts["ssd"].id, 2)
        assert desk.repo.get_part_by_id(parts["ssd"].id).quantity == 10

    def test_consume_part_not_on_estimate(self, desk, tech, parts,
                                          diagnosing_order, approve):
        approve(diagnosing_order.id, parts=[(parts["ssd"].id, 1)])
        with pytest.raises(ValidationError):
            desk.consume_part(tech, diagnosing_order.id,
                              parts["screen"].id, 1)

    def test_consume_without_stock_rolls_back(self, desk, tech, warehouse,
                                              parts, diagnosing_order,
                                              approve):
        approve(diagnosing_order.id, parts=[(parts["ssd"].id, 2)])
        desk.withdraw(warehouse, parts["ssd"].id, 9)
        with pytest.raises(InsufficientStock):
            desk.consume_part(tech, diagnosing_order.id, parts["ssd"].id, 2)
        estimate = desk.repo.get_approved_estimate(diagnosing_order.id)
        assert estimate.parts[0].quantity_consumed == 0
        assert desk.repo.get_part_by_id(parts["ssd"].id).quantity == 1

    def test_finish_warns_on_unconsumed(self, desk, tech, parts,
                                        diagnosing_order, approve):
        approve(diagnosing_order.id, parts=[
            (parts["ssd"].id, 1), (parts["paste"].id, 2),
        ])
        desk.consume_part(tech, diagnosing_order.id, parts["ssd"].id, 1)
        order, warnings = desk.finish_repair(tech, diagnosing_order.id)
        assert order.status == "READY_FOR_PICKUP"
        assert order.end_date
        assert warnings == ["Thermal Paste: 0 of 2 consumed"]

    def test_finish_without_warnings(self, desk, tech, parts,
                                     diagnosing_order, approve):
        approve(diagnosing_order.id, parts=[(parts["ssd"].id, 1)])
        desk.consume_part(tech, diagnosing_order.id, parts["ssd"].id, 1)
        _, warnings = desk.finish_repair(tech, diagnosing_order.id)
        assert warnings == []

    def test_cannot_finish_while_waiting_for_parts(self, desk, tech, parts,
                                                   diagnosing_order,
                                                   approve):
        approve(diagnosing_order.id, parts=[(parts["ram"].id, 1)])
        with pytest.raises(InvalidTransition):
            desk.finish_repair(tech, diagnosing_order.id)


class TestWorkLogs:
    def test_start_and_stop(self, desk, tech, diagnosing_order):
        log = desk.start_work(tech, diagnosing_order.id)
        assert log.is_open
        # Pretend the session began 75 minutes ago
        earlier = (datetime.now() - timedelta(minutes=75)).isoformat()
        desk.db.execute(
            "UPDATE work_logs SET started_at = ? WHERE id = ?",
            (earlier, log.id),
        )
        stopped = desk.stop_work(tech, diagnosing_order.id)
        assert not stopped.is_open
        assert stopped.duration_minutes == 75
        order = desk.repo.get_repair_order(diagnosing_order.id)
        assert order.total_work_minutes == 75

    def test_one_open_log_per_technician(self, desk, tech, diagnosing_order):
        desk.start_work(tech, diagnosing_order.id)
        with pytest.raises(InvalidTransition):
            desk.start_work(tech, diagnosing_order.id)

    def test_stop_without_start(self, desk, tech, diagnosing_order):
        with pytest.raises(InvalidTransition):
            desk.stop_work(tech, diagnosing_order.id)

    def test_finish_closes_open_logs(self, desk, tech, parts,
                                     diagnosing_order, approve):
        approve(diagnosing_order.id, parts=[(parts["ssd"].id, 1)])
        desk.start_work(tech, diagnosing_order.id)
        desk.finish_repair(tech, diagnosing_order.id)
        logs = desk.list_work_logs(tech, diagnosing_order.id)
        assert all(not log.is_open for log in logs)


class TestReads:
    def test_client_sees_only_own_orders(self, desk, office, client_actor,
                                         new_order):
        from repair_desk.database.models import Client
        other_id = desk.repo.create_client(
            Client(first_name="Other", phone="700")
        )
        desk.create_order(office, other_id, "Tablet", "Battery")
        own = desk.list_orders(client_actor)
        assert [o.id for o in own] == [new_order.id]
        assert desk.get_order(client_actor, new_order.id).id == new_order.id

    def test_client_cannot_read_foreign_order(self, desk, office,
                                              client_actor):
        from repair_desk.database.models import Client
        other_id = desk.repo.create_client(
            Client(first_name="Other", phone="700")
        )
        foreign = desk.create_order(office, other_id, "Tablet", "Battery")
        with pytest.raises(PermissionDenied):
            desk.get_order(client_actor, foreign.id)

    def test_staff_lists(self, desk, manager, tech, diagnosing_order):
        assert len(desk.list_orders(manager)) == 1
        assert [o.id for o in desk.list_orders_by_technician(manager, tech.id)] \
            == [diagnosing_order.id]
