"""
Account nodes and transaction endpoints.

Account variants:
- Wallet: family-level pooled account, funded from external accounts
- ChildAccount: the composite account a child holds; groups the sub-accounts
- Spend / Save / Give / Earn / Invest: purpose sub-accounts of a child
- ExternalFundingAccount: a parent's outside source of money (source only)

PaymentRecipient is not an account: it is a destination-only endpoint for
payments leaving the ledger (stores, charities).

Balances are never stored on the node; they are derived from the ledger.
"""

from enum import Enum
from typing import ClassVar

from pydantic import Field

from nodes.base import BaseNode


class SubAccountKind(str, Enum):
    SPEND = "SPEND"
    SAVE = "SAVE"
    GIVE = "GIVE"
    EARN = "EARN"
    INVEST = "INVEST"


class RecipientCategory(str, Enum):
    STORE = "STORE"
    CHARITY = "CHARITY"
    OTHER = "OTHER"


class AccountNode(BaseNode):
    """Fields shared by every account variant."""

    # Back-reference to the owning user or family
    owner_id: str
    name: str | None = None


class Wallet(AccountNode):
    node_type: str = Field(default="wallet", frozen=True)


class ChildAccount(AccountNode):
    node_type: str = Field(default="child_account", frozen=True)


class SubAccount(AccountNode):
    """A purpose sub-account; ``parent_account_id`` is the child's composite account."""

    kind: ClassVar[SubAccountKind]
    parent_account_id: str


class SpendAccount(SubAccount):
    kind: ClassVar[SubAccountKind] = SubAccountKind.SPEND
    node_type: str = Field(default="spend_account", frozen=True)


class SaveAccount(SubAccount):
    kind: ClassVar[SubAccountKind] = SubAccountKind.SAVE
    node_type: str = Field(default="save_account", frozen=True)
    goal_amount: int | None = Field(default=None, ge=0, description="Optional savings target")


class GiveAccount(SubAccount):
    kind: ClassVar[SubAccountKind] = SubAccountKind.GIVE
    node_type: str = Field(default="give_account", frozen=True)
    charity: str | None = None


class EarnAccount(SubAccount):
    kind: ClassVar[SubAccountKind] = SubAccountKind.EARN
    node_type: str = Field(default="earn_account", frozen=True)


class InvestAccount(SubAccount):
    kind: ClassVar[SubAccountKind] = SubAccountKind.INVEST
    node_type: str = Field(default="invest_account", frozen=True)


SUB_ACCOUNT_TYPES: dict[SubAccountKind, type[SubAccount]] = {
    SubAccountKind.SPEND: SpendAccount,
    SubAccountKind.SAVE: SaveAccount,
    SubAccountKind.GIVE: GiveAccount,
    SubAccountKind.EARN: EarnAccount,
    SubAccountKind.INVEST: InvestAccount,
}


class ExternalFundingAccount(AccountNode):
    """Bank card or account a Parent funds the family wallet from."""

    node_type: str = Field(default="external_funding_account", frozen=True)
    institution_name: str | None = None
    last_four: str | None = Field(default=None, pattern=r"^\d{4}$")


class PaymentRecipient(BaseNode):
    node_type: str = Field(default="payment_recipient", frozen=True)
    name: str = Field(min_length=1)
    category: RecipientCategory = RecipientCategory.STORE
