"""
Base classes for the ledger graph nodes.

Every node is an immutable Pydantic model tagged with its concrete variant
(``node_type``). The capability flags of a variant are fixed by the
catalog below, so an interface check is a single flag test rather than an
isinstance walk.
"""

from datetime import datetime
from enum import Flag, auto
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from errors import SchemaViolation


class Capability(Flag):
    """Capability interfaces a node variant may declare."""

    IDENTITY = auto()
    FAMILY = auto()
    USER = auto()
    FAMILY_ADMIN = auto()
    DEPENDENT = auto()
    INITIATOR = auto()
    DEVICE = auto()
    ACCOUNT = auto()
    COMPOSITE = auto()
    SUB_ACCOUNT = auto()
    WALLET = auto()
    EXTERNAL_FUNDING = auto()
    PAYEE = auto()
    TRANSACTION_SOURCE = auto()
    TRANSACTION_DESTINATION = auto()
    # Balance must stay non-negative (external funding is drawn from outside the ledger)
    BOUNDED = auto()
    FUNDING_RULE = auto()
    TRANSACTION = auto()


_C = Capability
_SUB_ACCOUNT = (
    _C.IDENTITY | _C.ACCOUNT | _C.SUB_ACCOUNT
    | _C.TRANSACTION_SOURCE | _C.TRANSACTION_DESTINATION | _C.BOUNDED
)
_TRANSACTION = _C.IDENTITY | _C.TRANSACTION

# Closed catalog: node_type -> capability flags
CAPABILITY_CATALOG: dict[str, Capability] = {
    "family": _C.IDENTITY | _C.FAMILY,
    "parent": _C.IDENTITY | _C.USER | _C.FAMILY_ADMIN | _C.INITIATOR,
    "financial_institution": _C.IDENTITY | _C.USER | _C.FAMILY_ADMIN | _C.INITIATOR,
    "child": _C.IDENTITY | _C.USER | _C.DEPENDENT | _C.INITIATOR,
    "device": _C.IDENTITY | _C.DEVICE,
    "child_account": _C.IDENTITY | _C.ACCOUNT | _C.COMPOSITE,
    "spend_account": _SUB_ACCOUNT,
    "save_account": _SUB_ACCOUNT,
    "give_account": _SUB_ACCOUNT,
    "earn_account": _SUB_ACCOUNT,
    "invest_account": _SUB_ACCOUNT,
    "wallet": (
        _C.IDENTITY | _C.ACCOUNT | _C.WALLET
        | _C.TRANSACTION_SOURCE | _C.TRANSACTION_DESTINATION | _C.BOUNDED
    ),
    "external_funding_account": _C.IDENTITY | _C.ACCOUNT | _C.EXTERNAL_FUNDING | _C.TRANSACTION_SOURCE,
    "payment_recipient": _C.IDENTITY | _C.PAYEE | _C.TRANSACTION_DESTINATION,
    "allowance": _C.IDENTITY | _C.FUNDING_RULE,
    "chore": _C.IDENTITY | _C.FUNDING_RULE,
    "fund_transfer": _TRANSACTION,
    "fund_distribution": _TRANSACTION,
    "external_payment": _TRANSACTION,
    "sub_account_transfer": _TRANSACTION,
    "funding_request": _TRANSACTION,
}


def new_id() -> str:
    """Opaque identifier for a new node."""
    return str(uuid4())


class BaseNode(BaseModel):
    """
    Base class for all nodes in the graph.

    ``capabilities`` may be passed at construction; it must match the
    catalog entry for the variant or construction fails with
    SchemaViolation.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    node_type: str | None = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _check_catalog(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        variant = cls.model_fields["node_type"].default
        node_type = data.get("node_type", variant)
        if node_type != variant:
            raise SchemaViolation(
                f"{cls.__name__} cannot be constructed as '{node_type}'",
                {"node_type": node_type},
            )
        expected = CAPABILITY_CATALOG.get(node_type)
        if expected is None:
            raise SchemaViolation(
                f"'{node_type}' is not a declared entity variant",
                {"node_type": node_type},
            )
        declared = data.pop("capabilities", None)
        if declared is not None and declared != expected:
            raise SchemaViolation(
                f"'{node_type}' does not declare capabilities {declared}",
                {"node_type": node_type},
            )
        return data

    @property
    def capabilities(self) -> Capability:
        return CAPABILITY_CATALOG[self.node_type]

    def to_dict(self) -> dict[str, Any]:
        """Convert node to dictionary."""
        return self.model_dump(exclude_none=True)


class Edge(BaseModel):
    """Represents a relationship between nodes."""

    model_config = ConfigDict(frozen=True)

    from_node: str
    to_node: str
    edge_type: str


def create_node(node_cls: type[BaseNode], **fields: Any) -> BaseNode:
    """Construct a node, reporting field validation failures as SchemaViolation."""
    try:
        return node_cls(**fields)
    except ValidationError as e:
        errors = [
            {"field": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg", "")}
            for err in e.errors()
        ]
        raise SchemaViolation(
            f"Invalid {node_cls.__name__}",
            {"validation_errors": errors},
        ) from e


def is_a(entity: BaseNode, capability: Capability) -> bool:
    """True iff the entity's variant declares every flag in ``capability``."""
    return capability in entity.capabilities
