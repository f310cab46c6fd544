"""
Relation catalog for the ledger graph.

Every relation has exactly one authoritative direction (``name``, stored
from the source) and an optional derived ``inverse`` served from the
back-reference index. Two relations may share an inverse name when they
land on the same node kind; their back-references then merge in commit
order (an account's ``transactions`` is the inverse of both ``source`` and
``destination``).
"""

from dataclasses import dataclass

from nodes.base import CAPABILITY_CATALOG, Capability

_USERS = frozenset({"parent", "financial_institution", "child"})
_RULES = frozenset({"allowance", "chore"})
_TRANSACTIONS = frozenset({
    "fund_transfer",
    "fund_distribution",
    "external_payment",
    "sub_account_transfer",
    "funding_request",
})


@dataclass(frozen=True)
class RelationSpec:
    name: str
    sources: frozenset[str]
    target: Capability
    single: bool = False
    inverse: str | None = None


RELATIONS: dict[str, RelationSpec] = {
    spec.name: spec
    for spec in (
        RelationSpec("families", frozenset({"financial_institution"}), Capability.FAMILY, inverse="institution"),
        RelationSpec("children", frozenset({"family"}), Capability.DEPENDENT, inverse="family"),
        RelationSpec("admins", frozenset({"family"}), Capability.FAMILY_ADMIN, inverse="administers"),
        RelationSpec("rules", frozenset({"family"}), Capability.FUNDING_RULE, inverse="family"),
        RelationSpec("wallet", frozenset({"family"}), Capability.WALLET, single=True, inverse="family"),
        RelationSpec("devices", _USERS, Capability.DEVICE, inverse="user"),
        RelationSpec("funding_accounts", frozenset({"parent"}), Capability.EXTERNAL_FUNDING, inverse="owner"),
        RelationSpec("account", frozenset({"child"}), Capability.COMPOSITE, single=True, inverse="owner"),
        RelationSpec("sub_accounts", frozenset({"child_account"}), Capability.SUB_ACCOUNT, inverse="parent_account"),
        RelationSpec("child", _RULES, Capability.DEPENDENT, single=True, inverse="rules"),
        RelationSpec("creator", _RULES, Capability.FAMILY_ADMIN, single=True, inverse="created_rules"),
        RelationSpec("source", _TRANSACTIONS, Capability.TRANSACTION_SOURCE, single=True, inverse="transactions"),
        RelationSpec("destination", _TRANSACTIONS, Capability.TRANSACTION_DESTINATION, single=True, inverse="transactions"),
        RelationSpec("initiator", _TRANSACTIONS, Capability.INITIATOR, single=True, inverse="initiated"),
        RelationSpec("rule", frozenset({"fund_distribution"}), Capability.FUNDING_RULE, single=True, inverse="distributions"),
    )
}


def _build_table() -> dict[str, dict[str, tuple[bool, tuple[RelationSpec, ...]]]]:
    """node_type -> relation name -> (is_inverse, specs)."""
    table: dict[str, dict[str, tuple[bool, tuple[RelationSpec, ...]]]] = {
        node_type: {} for node_type in CAPABILITY_CATALOG
    }
    for spec in RELATIONS.values():
        for node_type in spec.sources:
            table[node_type][spec.name] = (False, (spec,))
        if spec.inverse is None:
            continue
        for node_type, caps in CAPABILITY_CATALOG.items():
            if spec.target not in caps:
                continue
            is_inverse, existing = table[node_type].get(spec.inverse, (True, ()))
            if not is_inverse:
                raise RuntimeError(f"Relation name clash on '{node_type}.{spec.inverse}'")
            table[node_type][spec.inverse] = (True, existing + (spec,))
    return table


RELATION_TABLE = _build_table()


def relations_for(node_type: str) -> list[str]:
    """All relation names (authoritative and derived) valid for a node type."""
    return list(RELATION_TABLE.get(node_type, {}))
