"""Tests for the Repository master data and read queries."""

from datetime import datetime
from decimal import Decimal

import pytest

from repair_desk.config import Config
from repair_desk.database.models import (
    Client,
    Employee,
    ServiceAction,
    SparePart,
)
from repair_desk.database.repository import Repository
from repair_desk.errors import NotFound, ValidationError


@pytest.fixture
def client_id(repo):
    return repo.create_client(Client(
        first_name="Robert", last_name="Kubica", phone="600200300",
        pin_hash=Repository.hash_pin("4321"),
    ))


def _insert_order(repo, client_id, status="NEW"):
    with repo.db.get_connection() as conn:
        number = repo.generate_order_number(conn)
        return conn.execute(
            "INSERT INTO repair_orders (order_number, client_id, status) "
            "VALUES (?, ?, ?)",
            (number, client_id, status),
        ).lastrowid


class TestEmployees:
    def test_create_and_get(self, repo):
        emp_id = repo.create_employee(Employee(
            first_name="Anna", last_name="Nowak", email="anna@x.pl",
            role="OFFICE",
        ))
        emp = repo.get_employee_by_id(emp_id)
        assert emp.full_name == "Anna Nowak"
        assert emp.role == "OFFICE"
        assert repo.get_employee_by_email("anna@x.pl").id == emp_id

    def test_duplicate_email_is_validation_error(self, repo):
        emp = Employee(first_name="A", last_name="B", email="a@b.pl",
                       role="OFFICE")
        repo.create_employee(emp)
        with pytest.raises(ValidationError):
            repo.create_employee(emp)

    def test_invalid_role_is_validation_error(self, repo):
        with pytest.raises(ValidationError):
            repo.create_employee(Employee(
                first_name="A", last_name="B", email="c@b.pl", role="BOSS",
            ))

    def test_filter_by_role_and_deactivate(self, repo):
        t1 = repo.create_employee(Employee(
            first_name="T", last_name="One", email="t1@x.pl",
            role="TECHNICIAN",
        ))
        repo.create_employee(Employee(
            first_name="W", last_name="One", email="w1@x.pl",
            role="WAREHOUSE",
        ))
        assert [e.id for e in repo.get_all_employees(role="TECHNICIAN")] \
            == [t1]
        repo.deactivate_employee(t1)
        assert repo.get_all_employees(role="TECHNICIAN") == []
        assert len(repo.get_all_employees(active_only=False)) == 2


class TestClients:
    def test_pin_is_hashed(self, repo, client_id):
        client = repo.get_client_by_id(client_id)
        assert client.pin_hash != "4321"
        assert client.pin_hash == Repository.hash_pin("4321")

    def test_authenticate(self, repo, client_id):
        assert repo.authenticate_client("600200300", "4321").id == client_id
        assert repo.authenticate_client("600200300", "0000") is None
        assert repo.authenticate_client("999", "4321") is None

    def test_lookup_by_phone(self, repo, client_id):
        assert repo.get_client_by_phone("600200300").id == client_id
        assert repo.get_client_by_phone("000") is None

    def test_duplicate_phone_rejected(self, repo, client_id):
        with pytest.raises(ValidationError):
            repo.create_client(Client(first_name="X", phone="600200300"))

    def test_pin_hash_not_in_repr(self, repo, client_id):
        assert "pin_hash" not in repr(repo.get_client_by_id(client_id))


class TestParts:
    def test_price_round_trips_as_decimal(self, repo):
        part_id = repo.create_part(SparePart(name="SSD", price="199.99"))
        part = repo.get_part_by_id(part_id)
        assert part.price == Decimal("199.99")
        assert isinstance(part.price, Decimal)

    def test_low_stock(self, repo):
        repo.create_part(SparePart(name="A", quantity=1, min_quantity=2))
        repo.create_part(SparePart(name="B", quantity=2, min_quantity=2))
        repo.create_part(SparePart(name="C", quantity=0, min_quantity=0))
        assert [p.name for p in repo.get_low_stock_parts()] == ["A"]

    def test_update_does_not_touch_quantity(self, repo):
        part_id = repo.create_part(SparePart(name="RAM", quantity=4))
        part = repo.get_part_by_id(part_id)
        part.quantity = 99
        part.price = Decimal("10.00")
        repo.update_part(part)
        part = repo.get_part_by_id(part_id)
        assert part.quantity == 4
        assert part.price == Decimal("10.00")


class TestServiceActions:
    def test_duplicate_name_rejected(self, repo):
        repo.create_service_action(ServiceAction(name="Cleaning", price=100))
        with pytest.raises(ValidationError):
            repo.create_service_action(ServiceAction(name="Cleaning"))

    def test_update(self, repo):
        action_id = repo.create_service_action(
            ServiceAction(name="OS", price="120")
        )
        action = repo.get_service_action_by_id(action_id)
        action.price = Decimal("150.00")
        repo.update_service_action(action)
        assert repo.get_service_action_by_id(action_id).price \
            == Decimal("150.00")


class TestRepairOrders:
    def test_order_numbers_are_sequential(self, repo, client_id):
        year = datetime.now().year
        prefix = Config.ORDER_NUMBER_PREFIX
        first = repo.get_repair_order(_insert_order(repo, client_id))
        second = repo.get_repair_order(_insert_order(repo, client_id))
        assert first.order_number == f"{prefix}-{year}-001"
        assert second.order_number == f"{prefix}-{year}-002"

    def test_joined_client_fields(self, repo, client_id):
        order = repo.get_repair_order(_insert_order(repo, client_id))
        assert order.client_name == "Robert Kubica"
        assert order.client_phone == "600200300"
        assert order.technician_name == ""

    def test_require_missing_order(self, repo):
        with pytest.raises(NotFound):
            repo.require_repair_order(999)

    def test_filter_by_status_and_client(self, repo, client_id):
        _insert_order(repo, client_id, "NEW")
        _insert_order(repo, client_id, "DIAGNOSING")
        assert len(repo.get_all_repair_orders()) == 2
        assert len(repo.get_all_repair_orders("DIAGNOSING")) == 1
        assert len(repo.get_orders_by_client(client_id)) == 2
        assert repo.get_orders_by_technician(1) == []


class TestPartOrders:
    def test_pending_for_part_oldest_first(self, repo):
        part_id = repo.create_part(SparePart(name="Screen"))
        with repo.db.get_connection() as conn:
            for qty, status in ((3, "ORDERED"), (1, "DELIVERED"),
                                (2, "IN_DELIVERY"), (4, "CANCELLED")):
                conn.execute(
                    "INSERT INTO part_orders (part_id, quantity, status) "
                    "VALUES (?, ?, ?)",
                    (part_id, qty, status),
                )
        pending = repo.get_pending_part_orders_for_part(part_id)
        assert [po.quantity for po in pending] == [3, 2]
        assert pending[0].part_name == "Screen"
        assert pending[0].id < pending[1].id
