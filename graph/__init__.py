"""Relationship graph: relation catalog, immutable snapshots and the write store."""

from graph.relations import RELATIONS, RelationSpec, relations_for
from graph.state import GraphState, StateDraft
from graph.store import LedgerGraph

__all__ = [
    "RELATIONS",
    "RelationSpec",
    "relations_for",
    "GraphState",
    "StateDraft",
    "LedgerGraph",
]
