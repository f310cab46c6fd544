"""
GraphResolver - read-only traversal over one graph snapshot.

Lookups return ``None`` for identifiers that are absent or of the wrong
kind, so optional fields resolve to null instead of failing a whole query.
Expansions return concrete node variants in creation order. Balances and
transactions pass through the invariant engine's audits before they are
returned. Nothing here mutates the graph.
"""

from collections.abc import Iterable
from typing import TypeVar

from errors import NotFound
from graph.state import GraphState
from invariants.engine import InvariantEngine
from nodes.accounts import ChildAccount, SubAccount, SubAccountKind, Wallet
from nodes.base import BaseNode, Capability, is_a
from nodes.family import Family
from nodes.rules import FundingRuleNode
from nodes.transactions import FundDistribution, TransactionNode
from nodes.users import Child

N = TypeVar("N", bound=BaseNode)


class GraphResolver:
    def __init__(self, state: GraphState, engine: InvariantEngine | None = None):
        self.state = state
        self.engine = engine or InvariantEngine()

    # -- identity -------------------------------------------------------------

    def get(self, node_id: str | None, capability: Capability | None = None) -> BaseNode | None:
        """Node by id, or None when absent or lacking ``capability``."""
        if node_id is None:
            return None
        node = self.state.get(node_id)
        if node is None:
            return None
        if capability is not None and not is_a(node, capability):
            return None
        return node

    def get_as(self, node_id: str | None, node_cls: type[N]) -> N | None:
        node = self.get(node_id)
        return node if isinstance(node, node_cls) else None

    def require(self, node_id: str) -> BaseNode:
        return self.state.node(node_id)

    def is_retired(self, node_id: str) -> bool:
        return node_id in self.state and not self.state.is_live(node_id)

    def all_of(self, capability: Capability) -> list[BaseNode]:
        return list(self.state.nodes_of(capability))

    # -- expansion ------------------------------------------------------------

    def expand(self, node_id: str, relation: str) -> list[BaseNode]:
        """Related nodes through ``relation``, in insertion order."""
        return [self.state.node(i) for i in self.state.edges_from(node_id, relation)]

    def _one(self, node_id: str, relation: str) -> BaseNode | None:
        try:
            return self.get(self.state.first(node_id, relation))
        except NotFound:
            return None

    def live(self, items: Iterable[N]) -> list[N]:
        return [n for n in items if self.state.is_live(n.id)]

    def family_of(self, node: BaseNode) -> Family | None:
        family_id = getattr(node, "family_id", None)
        return self.get_as(family_id, Family)

    def children(self, family_id: str) -> list[Child]:
        return self.live(self.expand(family_id, "children"))

    def admins(self, family_id: str) -> list[BaseNode]:
        return self.live(self.expand(family_id, "admins"))

    def family_rules(self, family_id: str) -> list[FundingRuleNode]:
        return self.live(self.expand(family_id, "rules"))

    def wallet(self, family_id: str) -> Wallet | None:
        return self._one(family_id, "wallet")

    def institution(self, family: Family) -> BaseNode | None:
        return self.get(family.institution_id, Capability.FAMILY_ADMIN)

    def child_account(self, child_id: str) -> ChildAccount | None:
        return self._one(child_id, "account")

    def sub_accounts(self, child_account_id: str) -> list[SubAccount]:
        return self.expand(child_account_id, "sub_accounts")

    def sub_account(self, child_id: str, kind: SubAccountKind) -> SubAccount | None:
        account = self.child_account(child_id)
        if account is None:
            return None
        for sub in self.sub_accounts(account.id):
            if sub.kind == kind:
                return sub
        return None

    def child_rules(self, child_id: str, include_retired: bool = False) -> list[FundingRuleNode]:
        rules = self.expand(child_id, "rules")
        return rules if include_retired else self.live(rules)

    def sub_account_rules(self, sub_account_id: str) -> list[FundingRuleNode]:
        """Live rules paying into this sub-account's kind for its owner."""
        sub = self.get_as(sub_account_id, SubAccount)
        if sub is None:
            return []
        return [r for r in self.child_rules(sub.owner_id) if r.sub_account == sub.kind]

    def distributions(self, rule_id: str) -> list[FundDistribution]:
        return [self.engine.audit_transaction(self.state, tx) for tx in self.expand(rule_id, "distributions")]

    # -- ledger ---------------------------------------------------------------

    def transactions(self, account_id: str) -> list[TransactionNode]:
        node = self.require(account_id)
        if isinstance(node, ChildAccount):
            merged = {
                tx.id: tx
                for sub in self.sub_accounts(node.id)
                for tx in self.transactions(sub.id)
            }
            return sorted(merged.values(), key=lambda tx: (tx.timestamp, self.state.commit_position(tx.id)))
        return [self.engine.audit_transaction(self.state, tx) for tx in self.expand(account_id, "transactions")]

    def balance(self, account_id: str) -> int:
        node = self.require(account_id)
        if isinstance(node, ChildAccount):
            return sum(self.balance(sub.id) for sub in self.sub_accounts(node.id))
        return self.engine.audit_account(self.state, account_id)

    def transaction_endpoints(self, tx: TransactionNode) -> tuple[BaseNode, BaseNode, BaseNode]:
        return (
            self.require(tx.source_id),
            self.require(tx.destination_id),
            self.require(tx.initiator_id),
        )
