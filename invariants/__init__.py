"""Invariant engine for transaction validation and read-path audits."""

from invariants.engine import BalanceProjection, InvariantEngine

__all__ = ["InvariantEngine", "BalanceProjection"]
