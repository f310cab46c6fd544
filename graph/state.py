"""
Immutable graph snapshots and the copy-on-write draft used to build the next one.

A GraphState is never mutated once published: readers hold a reference and
traverse it without locks. Writers build a StateDraft from the latest state
and publish it as a whole, so a transaction is never visible without its
balance effect.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

from errors import DanglingReference, NotFound, SchemaViolation, UnsupportedRelation
from graph.relations import RELATION_TABLE, RELATIONS, relations_for
from nodes.base import BaseNode, Capability, Edge
from nodes.transactions import FundDistribution, TransactionNode

Key = tuple[str, str]


class GraphState:
    """One published version of the ledger graph."""

    def __init__(
        self,
        nodes: dict[str, BaseNode] | None = None,
        adjacency: dict[Key, tuple[str, ...]] | None = None,
        inverse: dict[Key, tuple[str, ...]] | None = None,
        incoming: dict[Key, tuple[str, ...]] | None = None,
        balances: dict[str, int] | None = None,
        retired: frozenset[str] = frozenset(),
        version: int = 0,
        sequence: dict[str, int] | None = None,
    ):
        self._nodes = nodes or {}
        # (source_id, relation) -> target ids, authoritative
        self._adjacency = adjacency or {}
        # (target_id, inverse name) -> source ids
        self._inverse = inverse or {}
        # (target_id, relation) -> source ids
        self._incoming = incoming or {}
        self._balances = balances or {}
        self._retired = retired
        # transaction id -> commit position
        self._sequence = sequence or {}
        self.version = version

    # -- identity ---------------------------------------------------------

    def get(self, node_id: str) -> BaseNode | None:
        return self._nodes.get(node_id)

    def node(self, node_id: str) -> BaseNode:
        node = self._nodes.get(node_id)
        if node is None:
            raise NotFound(f"No entity with id '{node_id}'", {"id": node_id})
        return node

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def is_live(self, node_id: str) -> bool:
        return node_id in self._nodes and node_id not in self._retired

    def nodes_of(self, capability: Capability) -> Iterator[BaseNode]:
        """Nodes declaring ``capability``, in creation order."""
        return (n for n in self._nodes.values() if capability in n.capabilities)

    # -- relationships ------------------------------------------------------

    def edges_from(self, node_id: str, relation: str) -> Iterator[str]:
        """
        Ids related to ``node_id`` through ``relation``, in insertion order.

        Works for authoritative relations and for their derived inverses.
        """
        node = self.node(node_id)
        entry = RELATION_TABLE[node.node_type].get(relation)
        if entry is None:
            raise UnsupportedRelation(
                f"'{node.node_type}' has no relation '{relation}'",
                {"id": node_id, "relation": relation, "supported": relations_for(node.node_type)},
            )
        is_inverse, _ = entry
        index = self._inverse if is_inverse else self._adjacency
        return iter(index.get((node_id, relation), ()))

    def edges_to(self, node_id: str, relation: str) -> Iterator[str]:
        """Ids whose authoritative ``relation`` points at ``node_id``."""
        self.node(node_id)
        if relation not in RELATIONS:
            raise UnsupportedRelation(f"Unknown relation '{relation}'", {"relation": relation})
        return iter(self._incoming.get((node_id, relation), ()))

    def first(self, node_id: str, relation: str) -> str | None:
        return next(self.edges_from(node_id, relation), None)

    def edges(self) -> Iterator[Edge]:
        for (source, relation), targets in self._adjacency.items():
            for target in targets:
                yield Edge(from_node=source, to_node=target, edge_type=relation)

    # -- balances -----------------------------------------------------------

    def balance(self, account_id: str) -> int:
        self.node(account_id)
        return self._balances.get(account_id, 0)

    def commit_position(self, tx_id: str) -> int:
        """Position of a transaction in commit order."""
        return self._sequence[tx_id]

    def last_timestamp(self, node_id: str, relation: str = "transactions"):
        """Timestamp of the newest transaction reached through ``relation``, if any."""
        ids = tuple(self.edges_from(node_id, relation))
        if not ids:
            return None
        return self._nodes[ids[-1]].timestamp

    def to_dict(self) -> dict[str, Any]:
        """Serialize graph to dictionary."""
        return {
            "version": self.version,
            "nodes": {node_id: node.to_dict() for node_id, node in self._nodes.items()},
            "edges": [edge.model_dump() for edge in self.edges()],
            "balances": dict(self._balances),
            "retired": sorted(self._retired),
        }

    def draft(self) -> StateDraft:
        return StateDraft(self)


class StateDraft:
    """Mutable copy of a GraphState; ``freeze`` publishes the next version."""

    def __init__(self, base: GraphState):
        self._base_version = base.version
        self._nodes = dict(base._nodes)
        self._adjacency = dict(base._adjacency)
        self._inverse = dict(base._inverse)
        self._incoming = dict(base._incoming)
        self._balances = dict(base._balances)
        self._retired = set(base._retired)
        self._sequence = dict(base._sequence)

    def get(self, node_id: str) -> BaseNode | None:
        return self._nodes.get(node_id)

    def is_live(self, node_id: str) -> bool:
        return node_id in self._nodes and node_id not in self._retired

    def targets(self, node_id: str, relation: str) -> tuple[str, ...]:
        """Targets of an authoritative relation as drafted so far."""
        return self._adjacency.get((node_id, relation), ())

    def add_node(self, node: BaseNode) -> BaseNode:
        if node.id in self._nodes:
            raise SchemaViolation(f"Identifier '{node.id}' is already in use", {"id": node.id})
        self._nodes[node.id] = node
        return node

    def replace_node(self, node: BaseNode) -> None:
        current = self._nodes.get(node.id)
        if current is None:
            raise NotFound(f"No entity with id '{node.id}'", {"id": node.id})
        if current.node_type != node.node_type:
            raise SchemaViolation("An entity cannot change variant", {"id": node.id})
        self._nodes[node.id] = node

    def add_edge(self, source_id: str, relation: str, target_id: str) -> None:
        source = self._nodes.get(source_id)
        if source is None:
            raise NotFound(f"No entity with id '{source_id}'", {"id": source_id})
        spec = RELATIONS.get(relation)
        if spec is None or source.node_type not in spec.sources:
            raise UnsupportedRelation(
                f"'{source.node_type}' has no relation '{relation}'",
                {"id": source_id, "relation": relation},
            )
        target = self._nodes.get(target_id)
        if target is None or target_id in self._retired:
            raise DanglingReference(
                f"'{relation}' edge from '{source_id}' targets missing entity '{target_id}'",
                {"id": source_id, "relation": relation, "target": target_id},
            )
        if spec.target not in target.capabilities:
            raise SchemaViolation(
                f"'{target.node_type}' cannot be the target of '{relation}'",
                {"id": source_id, "relation": relation, "target": target_id},
            )
        key = (source_id, relation)
        current = self._adjacency.get(key, ())
        if spec.single and current:
            raise SchemaViolation(
                f"'{relation}' of '{source_id}' is already set",
                {"id": source_id, "relation": relation},
            )
        if target_id in current:
            return
        self._adjacency[key] = current + (target_id,)
        incoming_key = (target_id, relation)
        self._incoming[incoming_key] = self._incoming.get(incoming_key, ()) + (source_id,)
        if spec.inverse:
            inverse_key = (target_id, spec.inverse)
            existing = self._inverse.get(inverse_key, ())
            if source_id not in existing:
                self._inverse[inverse_key] = existing + (source_id,)

    def adjust_balance(self, account_id: str, delta: int) -> int:
        balance = self._balances.get(account_id, 0) + delta
        self._balances[account_id] = balance
        return balance

    def append_transaction(self, tx: TransactionNode) -> None:
        """Record a validated transaction together with its balance effect."""
        self.add_node(tx)
        self.add_edge(tx.id, "source", tx.source_id)
        self.add_edge(tx.id, "destination", tx.destination_id)
        self.add_edge(tx.id, "initiator", tx.initiator_id)
        if isinstance(tx, FundDistribution):
            self.add_edge(tx.id, "rule", tx.rule_id)
        self.adjust_balance(tx.source_id, -tx.amount)
        self.adjust_balance(tx.destination_id, tx.amount)
        self._sequence[tx.id] = len(self._sequence)

    def retire(self, node_id: str) -> None:
        if node_id not in self._nodes:
            raise NotFound(f"No entity with id '{node_id}'", {"id": node_id})
        self._retired.add(node_id)

    def freeze(self) -> GraphState:
        return GraphState(
            nodes=self._nodes,
            adjacency=self._adjacency,
            inverse=self._inverse,
            incoming=self._incoming,
            balances=self._balances,
            retired=frozenset(self._retired),
            version=self._base_version + 1,
            sequence=self._sequence,
        )
