"""Shared test fixtures."""

import pytest

from repair_desk.core.actors import Actor
from repair_desk.core.desk import RepairDesk
from repair_desk.database.connection import DatabaseConnection
from repair_desk.database.models import Client, Employee, SparePart
from repair_desk.database.repository import Repository
from repair_desk.database.schema import initialize_database
from repair_desk.logging_setup import reset_logging


@pytest.fixture(autouse=True)
def _detach_log_handler():
    """Drop the handler RepairDesk.open installs so it never outlives a test."""
    yield
    reset_logging()


@pytest.fixture
def db_path(tmp_path):
    """Provide a temporary database path."""
    return tmp_path / "test.db"


@pytest.fixture
def db(db_path):
    """Provide an initialized database connection."""
    conn = DatabaseConnection(db_path)
    initialize_database(conn)
    return conn


@pytest.fixture
def repo(db):
    """Provide a repository with an initialized database."""
    return Repository(db)


class RecordingPinSender:
    """Keeps the PINs it was asked to deliver."""

    def __init__(self):
        self.pins = {}

    def __call__(self, client, pin):
        self.pins[client.id] = pin


@pytest.fixture
def pin_sender():
    return RecordingPinSender()


@pytest.fixture
def desk(db, pin_sender):
    """A fully wired local desk on the temporary database."""
    return RepairDesk(db, pin_sender=pin_sender)


def _employee(repo, first, last, role, skill=None):
    emp_id = repo.create_employee(Employee(
        first_name=first, last_name=last,
        email=f"{first.lower()}@repair.test", role=role, skill_level=skill,
    ))
    return Actor.for_employee(repo.get_employee_by_id(emp_id))


@pytest.fixture
def manager(desk):
    return _employee(desk.repo, "Jan", "Kowalski", "MANAGER")


@pytest.fixture
def office(desk):
    return _employee(desk.repo, "Anna", "Nowak", "OFFICE")


@pytest.fixture
def tech(desk):
    return _employee(desk.repo, "Piotr", "Wisniewski", "TECHNICIAN", "SENIOR")


@pytest.fixture
def tech2(desk):
    return _employee(desk.repo, "Krzysztof", "Zielinski", "TECHNICIAN", "MID")


@pytest.fixture
def warehouse(desk):
    return _employee(desk.repo, "Marek", "Wojcik", "WAREHOUSE")


@pytest.fixture
def client(desk):
    """A customer with the known PIN 1234."""
    client_id = desk.repo.create_client(Client(
        first_name="Adam", last_name="Malysz", phone="500100200",
        pin_hash=Repository.hash_pin("1234"),
    ))
    return desk.repo.get_client_by_id(client_id)


@pytest.fixture
def client_actor(client):
    return Actor.for_client(client)


@pytest.fixture
def parts(desk, warehouse):
    """Screen (5 @ 300), SSD (10 @ 200), RAM (0 @ 150), paste (20 @ 20)."""
    specs = {
        "screen": ('Screen 15.6"', 5, 2, "300.00"),
        "ssd": ("SSD 512GB", 10, 3, "200.00"),
        "ram": ("RAM 8GB DDR4", 0, 2, "150.00"),
        "paste": ("Thermal Paste", 20, 5, "20.00"),
    }
    result = {}
    for key, (name, qty, min_qty, price) in specs.items():
        result[key] = desk.add_part(warehouse, SparePart(
            name=name, quantity=qty, min_quantity=min_qty, price=price,
        ))
    return result


@pytest.fixture
def actions(desk, manager):
    """Cleaning (200) and OS installation (120)."""
    return {
        "cleaning": desk.add_service_action(
            manager, "Laptop Cleaning + Thermal Paste", "200.00"
        ),
        "os": desk.add_service_action(manager, "OS Installation", "120.00"),
    }


@pytest.fixture
def new_order(desk, office, client):
    return desk.create_order(
        office, client.id, "Dell Latitude 5520", "Overheats"
    )


@pytest.fixture
def diagnosing_order(desk, manager, tech, new_order):
    """An order assigned to ``tech`` and under diagnosis."""
    desk.assign_technician(manager, new_order.id, tech.id)
    return desk.start_diagnosis(tech, new_order.id)


@pytest.fixture
def approve(desk, tech, office):
    """Estimate *parts*/*action_ids* on a diagnosing order and approve it."""
    def _approve(order_id, parts=(), action_ids=()):
        desk.create_estimate(tech, order_id, parts, action_ids)
        desk.decide_estimate(office, order_id, True)
        return desk.repo.get_repair_order(order_id)
    return _approve
