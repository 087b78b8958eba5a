"""Acting identities passed explicitly to every core operation."""

from dataclasses import dataclass

from repair_desk.database.models import Client, Employee
from repair_desk.errors import PermissionDenied
from repair_desk.utils.constants import CLIENT_ROLE, ROLE_PERMISSIONS


@dataclass(frozen=True)
class Actor:
    """Who is calling: an employee with a role, or a customer."""

    id: int
    role: str
    name: str = ""

    @classmethod
    def for_employee(cls, employee: Employee) -> "Actor":
        return cls(id=employee.id, role=employee.role, name=employee.full_name)

    @classmethod
    def for_client(cls, client: Client) -> "Actor":
        return cls(id=client.id, role=CLIENT_ROLE, name=client.full_name)

    @property
    def is_client(self) -> bool:
        return self.role == CLIENT_ROLE

    def can(self, permission: str) -> bool:
        return self.role in ROLE_PERMISSIONS.get(permission, ())


def require_permission(actor: Actor, permission: str):
    """Raise PermissionDenied unless the actor's role grants *permission*."""
    if actor is None or not actor.can(permission):
        role = actor.role if actor else "anonymous"
        raise PermissionDenied(f"Role {role} may not perform '{permission}'")


def require_client_owns(actor: Actor, client_id: int):
    """Customers may only act on their own orders."""
    if actor.is_client and actor.id != client_id:
        raise PermissionDenied("Customers may only access their own orders")
