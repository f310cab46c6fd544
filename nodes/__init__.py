"""
Family Ledger Graph - Node System

Entity model for a household ledger: families and their users, the accounts
they hold, the funding rules that pay children, and the transactions that
move money between accounts.

All nodes are immutable Pydantic models tagged with a concrete variant.
Capability interfaces (user, account, transaction source/destination, ...)
are flags computed from the variant, checked with ``is_a``.
Relationships are not embedded; they live in the relationship graph.
"""

# Base classes
from nodes.base import (
    CAPABILITY_CATALOG,
    BaseNode,
    Capability,
    Edge,
    create_node,
    is_a,
    new_id,
)

# Users
from nodes.users import (
    Address,
    Child,
    Device,
    FinancialInstitution,
    Parent,
    UserNode,
    UserRole,
)

# Family
from nodes.family import Family

# Accounts and endpoints
from nodes.accounts import (
    SUB_ACCOUNT_TYPES,
    AccountNode,
    ChildAccount,
    EarnAccount,
    ExternalFundingAccount,
    GiveAccount,
    InvestAccount,
    PaymentRecipient,
    RecipientCategory,
    SaveAccount,
    SpendAccount,
    SubAccount,
    SubAccountKind,
    Wallet,
)

# Funding rules
from nodes.rules import Allowance, Chore, FundingRuleNode, Recurrence

# Transactions
from nodes.transactions import (
    TRANSACTION_TYPES,
    ExternalPayment,
    FundDistribution,
    FundingRequest,
    FundTransfer,
    SubAccountTransfer,
    TransactionNode,
)

# node_type -> concrete class
NODE_TYPES: dict[str, type[BaseNode]] = {
    cls.model_fields["node_type"].default: cls
    for cls in (
        Family,
        Parent,
        FinancialInstitution,
        Child,
        Device,
        Wallet,
        ChildAccount,
        SpendAccount,
        SaveAccount,
        GiveAccount,
        EarnAccount,
        InvestAccount,
        ExternalFundingAccount,
        PaymentRecipient,
        Allowance,
        Chore,
        FundTransfer,
        FundDistribution,
        ExternalPayment,
        SubAccountTransfer,
        FundingRequest,
    )
}

__all__ = [
    # Base
    "BaseNode",
    "Edge",
    "Capability",
    "CAPABILITY_CATALOG",
    "NODE_TYPES",
    "create_node",
    "is_a",
    "new_id",
    # Users
    "UserNode",
    "Parent",
    "FinancialInstitution",
    "Child",
    "Device",
    "Address",
    "UserRole",
    # Family
    "Family",
    # Accounts
    "AccountNode",
    "Wallet",
    "ChildAccount",
    "SubAccount",
    "SubAccountKind",
    "SUB_ACCOUNT_TYPES",
    "SpendAccount",
    "SaveAccount",
    "GiveAccount",
    "EarnAccount",
    "InvestAccount",
    "ExternalFundingAccount",
    "PaymentRecipient",
    "RecipientCategory",
    # Rules
    "FundingRuleNode",
    "Allowance",
    "Chore",
    "Recurrence",
    # Transactions
    "TransactionNode",
    "TRANSACTION_TYPES",
    "FundTransfer",
    "FundDistribution",
    "ExternalPayment",
    "SubAccountTransfer",
    "FundingRequest",
]
