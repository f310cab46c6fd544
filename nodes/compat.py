"""
Schema revision compatibility notes.

Earlier revisions of the ledger schema used different names for the same
concepts. Only the current revision is live; this table maps the historical
names so clients and stored documents written against them can be read.
It is a lookup, never a second live schema.
"""

SCHEMA_VERSION = 4

# legacy name -> current name
LEGACY_NAMES: dict[str, str] = {
    # types
    "Partner": "FinancialInstitution",
    "Group": "Family",
    "CardHolder": "Child",
    "Owner": "Parent",
    "Funder": "Parent",
    "Approver": "Parent",
    "FundingAccount": "ExternalFundingAccount",
    "Rule": "SubAccount",
    "SpendRule": "SpendAccount",
    "SaveRule": "SaveAccount",
    "GiveRule": "GiveAccount",
    "Payout": "FundDistribution",
    "ExternalTransaction": "ExternalPayment",
    "InternalTransaction": "SubAccountTransfer",
    "ExternalFundingAccountTransfer": "FundTransfer",
    "ChoreRecurrenceType": "Recurrence",
    # fields
    "cards": "children",
    "owners": "admins",
    "cardHolder": "child",
    "transactionDescription": "description",
    "storeDestination": "destination",
    "nameOfStore": "PaymentRecipient.name",
    "ruleDestination": "destination",
    "allowanceAmount": "amount",
    "payouts": "distributions",
    "groups": "families",
}

# Legacy user types that became a Parent with a role
LEGACY_ROLES: dict[str, str] = {
    "Owner": "OWNER",
    "Funder": "FUNDER",
    "Approver": "APPROVER",
}


def current_name(name: str) -> str:
    """Current name for a legacy type or field name (identity for current names)."""
    return LEGACY_NAMES.get(name, name)
