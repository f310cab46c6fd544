"""
Invariant Engine - validation of every transaction before it is committed.

Checks run in a fixed order against one snapshot, and the first violation
wins, so the reported error is deterministic when several rules are broken:

1. capability       endpoints and initiator fit the transaction kind
2. amount           strictly positive integer
3. balance          no bounded account goes negative
4. consistency      rule, ownership and family membership line up
5. chronology       nothing is appended before existing history

The engine never mutates state and never corrects a transaction; it either
returns the projected balances or raises.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass

from errors import (
    BalanceMismatch,
    CapabilityMismatch,
    DanglingReference,
    InvalidAmount,
    MembershipMismatch,
    NegativeBalance,
    OutOfOrder,
    RuleMismatch,
)
from graph.state import GraphState
from nodes.accounts import SubAccount
from nodes.base import BaseNode, Capability, is_a
from nodes.rules import FundingRuleNode
from nodes.transactions import (
    FundDistribution,
    FundTransfer,
    SubAccountTransfer,
    TransactionNode,
)

logger = logging.getLogger(__name__)

Check = Callable[[GraphState, TransactionNode], None]


@dataclass(frozen=True)
class BalanceProjection:
    """Balances of the transaction's endpoints after it would be applied."""
    source_id: str
    source_balance: int
    destination_id: str
    destination_balance: int


class InvariantEngine:
    def __init__(self):
        # Registered in evaluation order
        self._checks: list[tuple[str, Check]] = [
            ("capability", self._check_capabilities),
            ("amount", self._check_amount),
            ("balance", self._check_balance),
            ("consistency", self._check_consistency),
            ("chronology", self._check_chronology),
        ]

    @property
    def check_names(self) -> list[str]:
        return [name for name, _ in self._checks]

    def validate(self, state: GraphState, tx: TransactionNode) -> BalanceProjection:
        """
        Validate ``tx`` against ``state``.

        Returns:
            The projected endpoint balances.

        Raises:
            LedgerError subclass of the first failing check.
        """
        for name, check in self._checks:
            try:
                check(state, tx)
            except Exception as e:
                logger.debug("Transaction %s failed %s check: %s", tx.id, name, e)
                raise
        return self._project(state, tx)

    # -- checks -------------------------------------------------------------

    def _live(self, state: GraphState, node_id: str, role: str) -> BaseNode:
        if not state.is_live(node_id):
            raise DanglingReference(
                f"Transaction {role} '{node_id}' does not exist",
                {"role": role, "id": node_id},
            )
        return state.node(node_id)

    def _check_capabilities(self, state: GraphState, tx: TransactionNode) -> None:
        source = self._live(state, tx.source_id, "source")
        destination = self._live(state, tx.destination_id, "destination")
        initiator = self._live(state, tx.initiator_id, "initiator")

        if tx.source_id == tx.destination_id:
            raise CapabilityMismatch("Source and destination must differ", {"id": tx.source_id})
        if not is_a(source, tx.source_requires):
            raise CapabilityMismatch(
                f"{type(tx).__name__} cannot draw from a {source.node_type}",
                {"role": "source", "id": source.id, "node_type": source.node_type},
            )
        if not is_a(destination, tx.destination_requires):
            raise CapabilityMismatch(
                f"{type(tx).__name__} cannot pay into a {destination.node_type}",
                {"role": "destination", "id": destination.id, "node_type": destination.node_type},
            )
        if initiator.node_type not in tx.initiators:
            raise CapabilityMismatch(
                f"A {initiator.node_type} cannot initiate a {type(tx).__name__}",
                {"role": "initiator", "id": initiator.id, "node_type": initiator.node_type},
            )
        if isinstance(tx, SubAccountTransfer) and source.owner_id != destination.owner_id:
            raise CapabilityMismatch(
                "Sub-account transfers stay within one child's accounts",
                {"source": source.id, "destination": destination.id},
            )

    def _check_amount(self, state: GraphState, tx: TransactionNode) -> None:
        if isinstance(tx.amount, bool) or not isinstance(tx.amount, int) or tx.amount <= 0:
            raise InvalidAmount("Amount must be a positive integer", {"amount": tx.amount})

    def _check_balance(self, state: GraphState, tx: TransactionNode) -> None:
        source = state.node(tx.source_id)
        balance = state.balance(tx.source_id)
        if is_a(source, Capability.BOUNDED) and balance - tx.amount < 0:
            raise NegativeBalance(
                f"Insufficient funds in {source.node_type} '{source.id}'",
                {"account_id": source.id, "balance": balance, "amount": tx.amount},
            )

    def _check_consistency(self, state: GraphState, tx: TransactionNode) -> None:
        source = state.node(tx.source_id)
        destination = state.node(tx.destination_id)
        initiator = state.node(tx.initiator_id)

        if isinstance(tx, FundDistribution):
            rule = state.get(tx.rule_id)
            if not isinstance(rule, FundingRuleNode) or not state.is_live(tx.rule_id):
                raise RuleMismatch(f"No live funding rule '{tx.rule_id}'", {"rule_id": tx.rule_id})
            if rule.child_id != destination.owner_id:
                raise RuleMismatch(
                    "Rule targets a different child than the destination account's owner",
                    {"rule_id": rule.id, "child_id": rule.child_id, "destination": destination.id},
                )
            if rule.sub_account != destination.kind:
                raise RuleMismatch(
                    f"Rule pays into {rule.sub_account.value}, not {destination.kind.value}",
                    {"rule_id": rule.id, "destination": destination.id},
                )
            if source.owner_id != rule.family_id:
                raise RuleMismatch(
                    "Distribution must draw from the rule's family wallet",
                    {"rule_id": rule.id, "source": source.id},
                )
            if tx.timestamp < rule.created_at:
                raise RuleMismatch(
                    "Distribution predates its rule",
                    {"rule_id": rule.id, "timestamp": tx.timestamp.isoformat()},
                )

        if is_a(initiator, Capability.DEPENDENT):
            own = source if isinstance(source, SubAccount) else destination
            if own.owner_id != initiator.id:
                raise MembershipMismatch(
                    "Children may only move money in their own accounts",
                    {"initiator": initiator.id, "account_id": own.id},
                )

        if isinstance(destination, SubAccount) and is_a(source, Capability.WALLET):
            child = state.node(destination.owner_id)
            if child.family_id != source.owner_id:
                raise MembershipMismatch(
                    "Wallet and destination belong to different families",
                    {"source": source.id, "destination": destination.id},
                )

        if isinstance(tx, FundTransfer):
            owner = state.node(source.owner_id)
            if owner.family_id != destination.owner_id:
                raise MembershipMismatch(
                    "Funding account owner is not a member of the wallet's family",
                    {"source": source.id, "destination": destination.id},
                )

        family_id = self._family_of(state, destination) or self._family_of(state, source)
        if (
            family_id is not None
            and is_a(initiator, Capability.FAMILY_ADMIN)
            and initiator.id not in state.edges_from(family_id, "admins")
        ):
            raise MembershipMismatch(
                "Initiator is not an admin of the family",
                {"initiator": initiator.id, "family_id": family_id},
            )

    def _check_chronology(self, state: GraphState, tx: TransactionNode) -> None:
        checks = [(tx.source_id, "transactions"), (tx.destination_id, "transactions")]
        if isinstance(tx, FundDistribution):
            checks.append((tx.rule_id, "distributions"))
        for node_id, relation in checks:
            last = state.last_timestamp(node_id, relation)
            if last is not None and tx.timestamp < last:
                raise OutOfOrder(
                    "Transaction predates existing history",
                    {"id": node_id, "timestamp": tx.timestamp.isoformat(), "latest": last.isoformat()},
                )

    # -- helpers ------------------------------------------------------------

    def _family_of(self, state: GraphState, account: BaseNode) -> str | None:
        """Family owning an account, when the account sits inside a family."""
        if is_a(account, Capability.WALLET):
            return account.owner_id
        if isinstance(account, SubAccount):
            return state.node(account.owner_id).family_id
        return None

    def _project(self, state: GraphState, tx: TransactionNode) -> BalanceProjection:
        return BalanceProjection(
            source_id=tx.source_id,
            source_balance=state.balance(tx.source_id) - tx.amount,
            destination_id=tx.destination_id,
            destination_balance=state.balance(tx.destination_id) + tx.amount,
        )

    # -- audits (read path) ---------------------------------------------------

    def derived_balance(self, state: GraphState, account_id: str) -> int:
        """Signed sum of the account's committed transactions."""
        total = 0
        for tx_id in state.edges_from(account_id, "transactions"):
            tx = state.node(tx_id)
            if tx.destination_id == account_id:
                total += tx.amount
            if tx.source_id == account_id:
                total -= tx.amount
        return total

    def audit_account(self, state: GraphState, account_id: str) -> int:
        """
        Confirm an account's recorded balance before it is exposed.

        Returns:
            The balance.

        Raises:
            BalanceMismatch if the balance differs from the history, or
            NegativeBalance if a bounded account is below zero.
        """
        account = state.node(account_id)
        recorded = state.balance(account_id)
        derived = self.derived_balance(state, account_id)
        if recorded != derived:
            logger.error("Balance mismatch on %s: recorded=%s derived=%s", account_id, recorded, derived)
            raise BalanceMismatch(
                f"Balance of '{account_id}' disagrees with its history",
                {"account_id": account_id, "recorded": recorded, "derived": derived},
            )
        if is_a(account, Capability.BOUNDED) and recorded < 0:
            raise NegativeBalance(f"Balance of '{account_id}' is negative", {"account_id": account_id})
        return recorded

    def audit_transaction(self, state: GraphState, tx: TransactionNode) -> TransactionNode:
        """Confirm a committed transaction's endpoints still fit its kind before it is exposed."""
        source = state.node(tx.source_id)
        destination = state.node(tx.destination_id)
        if not is_a(source, tx.source_requires) or not is_a(destination, tx.destination_requires):
            raise CapabilityMismatch(
                f"Committed {type(tx).__name__} '{tx.id}' has endpoints of the wrong kind",
                {"id": tx.id},
            )
        return tx
