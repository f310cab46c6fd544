"""
Ledger error kinds.

Every failure raised by the entity model, the relationship graph, the
invariant engine or the ledger service derives from LedgerError. Each kind
has a stable machine code that is surfaced to GraphQL clients through
``errors[].extensions.code``.
"""


class LedgerError(Exception):
    """Base ledger exception with message, code and optional data."""

    code: str = "LEDGER_ERROR"

    def __init__(self, message: str, data: dict = None):
        self.message = message
        self.data = data or {}
        super().__init__(self.message)

    @property
    def extensions(self) -> dict:
        """GraphQL error extensions (picked up by graphql-core from the original error)."""
        return {"code": self.code, **self.data}


class SchemaViolation(LedgerError):
    """Entity variant or capability combination outside the declared catalog."""
    code = "SCHEMA_VIOLATION"


class NotFound(LedgerError):
    """Identifier or relation target absent."""
    code = "NOT_FOUND"


class UnsupportedRelation(LedgerError):
    """Relation not valid for the entity type."""
    code = "UNSUPPORTED_RELATION"


class DanglingReference(LedgerError):
    """Edge target does not exist."""
    code = "DANGLING_REFERENCE"


class CapabilityMismatch(LedgerError):
    """Transaction endpoint or initiator lacks the capability its kind requires."""
    code = "CAPABILITY_MISMATCH"


class InvalidAmount(LedgerError):
    """Non-positive or non-integer amount."""
    code = "INVALID_AMOUNT"


class NegativeBalance(LedgerError):
    """Applying the transaction would drive an account below zero."""
    code = "NEGATIVE_BALANCE"


class RuleMismatch(LedgerError):
    """Distribution references a missing rule or one targeting another child."""
    code = "RULE_MISMATCH"


class OutOfOrder(LedgerError):
    """Transaction timestamp precedes history it would be appended to."""
    code = "OUT_OF_ORDER"


class MembershipMismatch(LedgerError):
    """Actor is not an admin of the family that owns the target entity."""
    code = "MEMBERSHIP_MISMATCH"


class DeletionBlocked(LedgerError):
    """Entity still holds a balance or is targeted by a live rule."""
    code = "DELETION_BLOCKED"


class BalanceMismatch(LedgerError):
    """Recorded balance differs from the sum of the account's history."""
    code = "BALANCE_MISMATCH"


class Contention(LedgerError):
    """Account serialization point not acquired within the timeout."""
    code = "CONTENTION"
