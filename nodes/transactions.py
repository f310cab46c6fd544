"""
Transaction nodes.

Each variant declares, at class level, the capabilities its source and
destination must carry and the user variants allowed to initiate it. The
invariant engine checks those declarations before anything else.

Amounts are plain integers here; the sign check belongs to the invariant
engine so its error ordering stays deterministic.
"""

from datetime import datetime
from typing import ClassVar

from pydantic import Field

from nodes.base import BaseNode, Capability


class TransactionNode(BaseNode):
    """Fields shared by every transaction variant."""

    source_requires: ClassVar[Capability]
    destination_requires: ClassVar[Capability]
    initiators: ClassVar[tuple[str, ...]]

    amount: int
    source_id: str
    destination_id: str
    initiator_id: str
    description: str = ""
    timestamp: datetime = Field(default_factory=datetime.now)


class FundTransfer(TransactionNode):
    """External funding account -> family wallet."""

    source_requires: ClassVar[Capability] = Capability.EXTERNAL_FUNDING | Capability.TRANSACTION_SOURCE
    destination_requires: ClassVar[Capability] = Capability.WALLET | Capability.TRANSACTION_DESTINATION
    initiators: ClassVar[tuple[str, ...]] = ("parent", "financial_institution")

    node_type: str = Field(default="fund_transfer", frozen=True)


class FundDistribution(TransactionNode):
    """Wallet -> child sub-account, produced by applying a funding rule."""

    source_requires: ClassVar[Capability] = Capability.WALLET | Capability.TRANSACTION_SOURCE
    destination_requires: ClassVar[Capability] = Capability.SUB_ACCOUNT | Capability.TRANSACTION_DESTINATION
    initiators: ClassVar[tuple[str, ...]] = ("parent", "financial_institution")

    node_type: str = Field(default="fund_distribution", frozen=True)
    rule_id: str


class ExternalPayment(TransactionNode):
    """Sub-account -> store or charity outside the ledger."""

    source_requires: ClassVar[Capability] = Capability.SUB_ACCOUNT | Capability.TRANSACTION_SOURCE
    destination_requires: ClassVar[Capability] = Capability.PAYEE | Capability.TRANSACTION_DESTINATION
    initiators: ClassVar[tuple[str, ...]] = ("child", "parent")

    node_type: str = Field(default="external_payment", frozen=True)


class SubAccountTransfer(TransactionNode):
    """Between two sub-accounts of the same child."""

    source_requires: ClassVar[Capability] = Capability.SUB_ACCOUNT | Capability.TRANSACTION_SOURCE
    destination_requires: ClassVar[Capability] = Capability.SUB_ACCOUNT | Capability.TRANSACTION_DESTINATION
    initiators: ClassVar[tuple[str, ...]] = ("child", "parent")

    node_type: str = Field(default="sub_account_transfer", frozen=True)


class FundingRequest(TransactionNode):
    """Wallet -> sub-account, requested by the child who owns the sub-account."""

    source_requires: ClassVar[Capability] = Capability.WALLET | Capability.TRANSACTION_SOURCE
    destination_requires: ClassVar[Capability] = Capability.SUB_ACCOUNT | Capability.TRANSACTION_DESTINATION
    initiators: ClassVar[tuple[str, ...]] = ("child",)

    node_type: str = Field(default="funding_request", frozen=True)


TRANSACTION_TYPES: dict[str, type[TransactionNode]] = {
    cls.model_fields["node_type"].default: cls
    for cls in (FundTransfer, FundDistribution, ExternalPayment, SubAccountTransfer, FundingRequest)
}
