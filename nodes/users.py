"""
User nodes: Parent, FinancialInstitution, Child, and their Devices.

Parent and FinancialInstitution are the FamilyAdmin variants. A Child holds
exactly one composite ChildAccount (linked through the graph, not embedded)
and is the target of zero-or-more funding rules.
"""

from datetime import date
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from nodes.base import BaseNode


class UserRole(str, Enum):
    """Roles a Parent may hold inside a family."""
    OWNER = "OWNER"
    FUNDER = "FUNDER"
    APPROVER = "APPROVER"


class Address(BaseModel):
    """Postal address, owned by exactly one user."""

    model_config = ConfigDict(frozen=True)

    line1: str | None = None
    city: str
    region: str | None = None
    postal_code: str | None = None
    country: str = "US"


class UserNode(BaseNode):
    """Fields shared by every user variant."""

    user_name: str = Field(min_length=1, description="Display / login name")
    address: Address | None = None
    # Back-reference only; the family's member lists are authoritative
    family_id: str | None = None


class Parent(UserNode):
    node_type: str = Field(default="parent", frozen=True)
    roles: tuple[UserRole, ...] = Field(default=(UserRole.OWNER,))
    email: str | None = None

    def has_role(self, role: UserRole) -> bool:
        return role in self.roles


class FinancialInstitution(UserNode):
    """
    Partner institution. Serves families and may act as a family admin.
    """

    node_type: str = Field(default="financial_institution", frozen=True)
    routing_number: str | None = None


class Child(UserNode):
    node_type: str = Field(default="child", frozen=True)
    date_of_birth: date | None = None


class Device(BaseNode):
    """A device registered to a user. No financial semantics."""

    node_type: str = Field(default="device", frozen=True)
    user_id: str
    label: str
    platform: str | None = None
