"""Seed the database with demo data for development and demos.

Creates:
  - 5 employees (one per console, two technicians)
  - 2 clients (PIN 1234)
  - 4 spare parts
  - 4 service actions
  - 1 repair order waiting for a technician

Run:
    python -m execution.seed_demo_data          (from project root)
    python execution/seed_demo_data.py          (direct)

WARNING: This script INSERTS data. Run against a fresh DB to avoid
duplicates. Delete data/repair_desk.db first for a clean start.
"""

import os
import sys

# Ensure project src is on the path
_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, os.path.join(_ROOT, "src"))

from repair_desk.core.actors import Actor
from repair_desk.core.desk import RepairDesk
from repair_desk.database.models import Client, Employee, SparePart
from repair_desk.database.repository import Repository

PIN = "1234"


def seed(desk: RepairDesk):
    """Populate the database with demo data."""
    repo = desk.repo

    # ── 1. Employees ──────────────────────────────────────────────
    print("Creating employees...")
    employees = [
        ("Jan", "Kowalski", "jan.kowalski@repair.pl", "MANAGER", None),
        ("Anna", "Nowak", "anna.nowak@repair.pl", "OFFICE", None),
        ("Piotr", "Wiśniewski", "piotr.w@repair.pl", "TECHNICIAN", "SENIOR"),
        ("Krzysztof", "Zieliński", "k.zielinski@repair.pl",
         "TECHNICIAN", "MID"),
        ("Marek", "Wójcik", "marek.wojcik@repair.pl", "WAREHOUSE", None),
    ]
    staff = {}
    for first, last, email, role, skill in employees:
        emp_id = repo.create_employee(Employee(
            first_name=first, last_name=last, email=email,
            role=role, skill_level=skill,
        ))
        staff.setdefault(role, []).append(repo.get_employee_by_id(emp_id))
    print(f"  → {len(employees)} employees created")

    manager = Actor.for_employee(staff["MANAGER"][0])
    office = Actor.for_employee(staff["OFFICE"][0])
    warehouse = Actor.for_employee(staff["WAREHOUSE"][0])

    # ── 2. Clients ────────────────────────────────────────────────
    # Inserted directly so the demo PIN is known
    print("Creating clients...")
    clients = [
        ("Adam", "Małysz", "500100200", "adam@example.com"),
        ("Robert", "Kubica", "600200300", "robert@example.com"),
    ]
    client_ids = []
    for first, last, phone, email in clients:
        client_ids.append(repo.create_client(Client(
            first_name=first, last_name=last, phone=phone, email=email,
            pin_hash=Repository.hash_pin(PIN),
        )))
    print(f"  → {len(clients)} clients created (all PIN {PIN})")

    # ── 3. Spare parts ────────────────────────────────────────────
    print("Creating spare parts...")
    parts = [
        ('Screen 15.6"', "Displays", 5, 2, "300.00"),
        ("SSD 512GB", "Storage", 10, 3, "200.00"),
        ("RAM 8GB DDR4", "Memory", 8, 2, "150.00"),
        ("Thermal Paste", "Consumables", 20, 5, "20.00"),
    ]
    for name, category, qty, min_qty, price in parts:
        desk.add_part(warehouse, SparePart(
            name=name, category=category, quantity=qty,
            min_quantity=min_qty, price=price,
        ))
    print(f"  → {len(parts)} parts created")

    # ── 4. Service actions ────────────────────────────────────────
    print("Creating service actions...")
    actions = [
        ("Laptop Cleaning + Thermal Paste", "200.00"),
        ("OS Installation", "120.00"),
        ("Data Recovery", "500.00"),
        ("Disk Replacement", "70.00"),
    ]
    for name, price in actions:
        desk.add_service_action(manager, name, price)
    print(f"  → {len(actions)} service actions created")

    # ── 5. A first order ──────────────────────────────────────────
    print("Creating a repair order...")
    order = desk.create_order(
        office, client_ids[0], "Dell Latitude 5520", "Overheats and shuts down"
    )
    desk.assign_technician(manager, order.id, staff["TECHNICIAN"][0].id)
    print(f"  → {order.order_number} assigned to "
          f"{staff['TECHNICIAN'][0].full_name}")

    print("\nDone.")


if __name__ == "__main__":
    seed(RepairDesk.open())
