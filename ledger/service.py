"""
LedgerService - every write to the ledger graph goes through here.

Administrative actions (adding children, creating rules, retiring entities)
must be performed by a FamilyAdmin of the family concerned. Each operation
is published as one atomic commit. Transactions additionally hold the
serialization points of their endpoint accounts while they are validated
and committed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date, datetime
from typing import Any

from errors import (
    CapabilityMismatch,
    DanglingReference,
    DeletionBlocked,
    InvalidAmount,
    LedgerError,
    MembershipMismatch,
    NotFound,
    SchemaViolation,
)
from graph.state import GraphState, StateDraft
from graph.store import LedgerGraph
from invariants.engine import InvariantEngine
from nodes import (
    SUB_ACCOUNT_TYPES,
    TRANSACTION_TYPES,
    Address,
    Allowance,
    BaseNode,
    Capability,
    Child,
    ChildAccount,
    Chore,
    Device,
    ExternalFundingAccount,
    Family,
    FinancialInstitution,
    FundDistribution,
    FundingRuleNode,
    Parent,
    PaymentRecipient,
    RecipientCategory,
    Recurrence,
    SubAccountKind,
    TransactionNode,
    UserRole,
    Wallet,
    create_node,
    is_a,
)
from resolvers.resolver import GraphResolver

logger = logging.getLogger(__name__)

RULE_TYPES: dict[str, type[FundingRuleNode]] = {"allowance": Allowance, "chore": Chore}


def normalize_timestamp(value: datetime | None) -> datetime | None:
    """Ledger timestamps are naive local time."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


class LedgerService:
    def __init__(
        self,
        graph: LedgerGraph | None = None,
        engine: InvariantEngine | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.graph = graph or LedgerGraph()
        self.engine = engine or InvariantEngine()
        self.clock = clock

    # -- reads ----------------------------------------------------------------

    def snapshot(self) -> GraphState:
        return self.graph.snapshot()

    def resolver(self) -> GraphResolver:
        return GraphResolver(self.graph.snapshot(), self.engine)

    # -- helpers --------------------------------------------------------------

    def now(self, at: datetime | None = None) -> datetime:
        return normalize_timestamp(at) or self.clock()

    def _require_admin(self, state: GraphState | StateDraft, family_id: str, actor_id: str) -> BaseNode:
        family = state.get(family_id)
        if not isinstance(family, Family):
            raise NotFound(f"No family with id '{family_id}'", {"id": family_id})
        actor = state.get(actor_id)
        if actor is None:
            raise NotFound(f"No entity with id '{actor_id}'", {"id": actor_id})
        if not state.is_live(actor_id):
            raise DanglingReference(f"'{actor_id}' has been retired", {"actor": actor_id})
        if not is_a(actor, Capability.FAMILY_ADMIN):
            raise CapabilityMismatch(
                f"A {actor.node_type} cannot administer a family",
                {"actor": actor_id},
            )
        if isinstance(state, GraphState):
            admins = tuple(state.edges_from(family_id, "admins"))
        else:
            admins = state.targets(family_id, "admins")
        if actor_id not in admins:
            raise MembershipMismatch(
                "Actor is not an admin of this family",
                {"actor": actor_id, "family_id": family_id},
            )
        return actor

    def _commit(self, action: str, mutator: Callable[[StateDraft], Any]) -> Any:
        try:
            result = self.graph.commit(mutator)
        except LedgerError as e:
            logger.warning("Rejected %s: %s [%s]", action, e.message, e.code)
            raise
        logger.info("Committed %s (version %s)", action, self.graph.snapshot().version)
        return result

    # -- institutions and families --------------------------------------------

    def register_institution(
        self,
        user_name: str,
        routing_number: str | None = None,
        address: Address | None = None,
    ) -> FinancialInstitution:
        institution = create_node(
            FinancialInstitution,
            user_name=user_name,
            routing_number=routing_number,
            address=address,
        )
        return self._commit("register_institution", lambda d: d.add_node(institution))

    def create_family(
        self,
        name: str,
        parent_name: str,
        institution_id: str | None = None,
        email: str | None = None,
        address: Address | None = None,
    ) -> Family:
        """
        Create a family together with its wallet and its first parent (OWNER).

        When ``institution_id`` is given the institution serves the family
        and is registered as one of its admins.
        """
        family = create_node(Family, name=name, institution_id=institution_id)
        parent = create_node(
            Parent,
            user_name=parent_name,
            family_id=family.id,
            roles=(UserRole.OWNER,),
            email=email,
            address=address,
        )
        wallet = create_node(Wallet, owner_id=family.id, name=f"{name} wallet")

        def mutate(draft: StateDraft) -> Family:
            if institution_id is not None and not isinstance(draft.get(institution_id), FinancialInstitution):
                raise NotFound(f"No institution with id '{institution_id}'", {"id": institution_id})
            draft.add_node(family)
            draft.add_node(wallet)
            draft.add_node(parent)
            draft.add_edge(family.id, "wallet", wallet.id)
            draft.add_edge(family.id, "admins", parent.id)
            if institution_id is not None:
                draft.add_edge(institution_id, "families", family.id)
                draft.add_edge(family.id, "admins", institution_id)
            return family

        return self._commit("create_family", mutate)

    def add_parent(
        self,
        family_id: str,
        user_name: str,
        by: str,
        roles: tuple[UserRole, ...] = (UserRole.FUNDER,),
        email: str | None = None,
        address: Address | None = None,
    ) -> Parent:
        parent = create_node(
            Parent,
            user_name=user_name,
            family_id=family_id,
            roles=tuple(roles),
            email=email,
            address=address,
        )

        def mutate(draft: StateDraft) -> Parent:
            self._require_admin(draft, family_id, by)
            draft.add_node(parent)
            draft.add_edge(family_id, "admins", parent.id)
            return parent

        return self._commit("add_parent", mutate)

    def add_institution_admin(self, family_id: str, institution_id: str, by: str) -> Family:
        def mutate(draft: StateDraft) -> Family:
            self._require_admin(draft, family_id, by)
            institution = draft.get(institution_id)
            if not isinstance(institution, FinancialInstitution):
                raise NotFound(f"No institution with id '{institution_id}'", {"id": institution_id})
            draft.add_edge(family_id, "admins", institution_id)
            return draft.get(family_id)

        return self._commit("add_institution_admin", mutate)

    def add_child(
        self,
        family_id: str,
        user_name: str,
        by: str,
        date_of_birth: date | None = None,
        address: Address | None = None,
    ) -> Child:
        """Add a child with its composite account and one sub-account per kind."""
        child = create_node(
            Child,
            user_name=user_name,
            family_id=family_id,
            date_of_birth=date_of_birth,
            address=address,
        )
        account = create_node(ChildAccount, owner_id=child.id, name=f"{user_name}'s account")
        subs = [
            create_node(sub_cls, owner_id=child.id, parent_account_id=account.id, name=kind.value.title())
            for kind, sub_cls in SUB_ACCOUNT_TYPES.items()
        ]

        def mutate(draft: StateDraft) -> Child:
            self._require_admin(draft, family_id, by)
            draft.add_node(child)
            draft.add_node(account)
            for sub in subs:
                draft.add_node(sub)
                draft.add_edge(account.id, "sub_accounts", sub.id)
            draft.add_edge(child.id, "account", account.id)
            draft.add_edge(family_id, "children", child.id)
            return child

        return self._commit("add_child", mutate)

    def add_device(self, user_id: str, label: str, platform: str | None = None) -> Device:
        device = create_node(Device, user_id=user_id, label=label, platform=platform)

        def mutate(draft: StateDraft) -> Device:
            user = draft.get(user_id)
            if user is None or not is_a(user, Capability.USER):
                raise NotFound(f"No user with id '{user_id}'", {"id": user_id})
            draft.add_node(device)
            draft.add_edge(user_id, "devices", device.id)
            return device

        return self._commit("add_device", mutate)

    def add_funding_account(
        self,
        parent_id: str,
        institution_name: str | None = None,
        last_four: str | None = None,
        name: str | None = None,
    ) -> ExternalFundingAccount:
        account = create_node(
            ExternalFundingAccount,
            owner_id=parent_id,
            institution_name=institution_name,
            last_four=last_four,
            name=name,
        )

        def mutate(draft: StateDraft) -> ExternalFundingAccount:
            if not isinstance(draft.get(parent_id), Parent):
                raise NotFound(f"No parent with id '{parent_id}'", {"id": parent_id})
            draft.add_node(account)
            draft.add_edge(parent_id, "funding_accounts", account.id)
            return account

        return self._commit("add_funding_account", mutate)

    def add_payment_recipient(
        self,
        name: str,
        category: RecipientCategory = RecipientCategory.STORE,
    ) -> PaymentRecipient:
        recipient = create_node(PaymentRecipient, name=name, category=category)
        return self._commit("add_payment_recipient", lambda d: d.add_node(recipient))

    # -- funding rules --------------------------------------------------------

    def create_rule(
        self,
        kind: str,
        child_id: str,
        amount: int,
        by: str,
        recurrence: Recurrence | None = None,
        sub_account: SubAccountKind = SubAccountKind.SPEND,
        title: str | None = None,
        description: str | None = None,
    ) -> FundingRuleNode:
        rule_cls = RULE_TYPES.get(kind)
        if rule_cls is None:
            raise SchemaViolation(f"'{kind}' is not a funding rule variant", {"kind": kind})
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidAmount("Rule amount must be a positive integer", {"amount": amount})

        child = self.snapshot().get(child_id)
        if not isinstance(child, Child) or child.family_id is None:
            raise NotFound(f"No child with id '{child_id}'", {"id": child_id})

        fields: dict[str, Any] = {
            "family_id": child.family_id,
            "child_id": child_id,
            "creator_id": by,
            "amount": amount,
            "sub_account": sub_account,
            "description": description,
            "created_at": self.now(),
        }
        if recurrence is not None:
            fields["recurrence"] = recurrence
        if title is not None:
            fields["title"] = title
        rule = create_node(rule_cls, **fields)

        def mutate(draft: StateDraft) -> FundingRuleNode:
            self._require_admin(draft, child.family_id, by)
            draft.add_node(rule)
            draft.add_edge(rule.id, "child", child_id)
            draft.add_edge(rule.id, "creator", by)
            draft.add_edge(child.family_id, "rules", rule.id)
            return rule

        return self._commit(f"create_rule[{kind}]", mutate)

    def _payout_initiator(self, resolver: GraphResolver, rule: FundingRuleNode) -> str:
        """The rule's creator, or the first live family admin once the creator has retired."""
        if resolver.state.is_live(rule.creator_id):
            return rule.creator_id
        admins = resolver.admins(rule.family_id)
        if not admins:
            raise DanglingReference("The family has no live admin to pay this rule", {"rule_id": rule.id})
        return admins[0].id

    def apply_rule(self, rule_id: str, by: str | None = None, at: datetime | None = None) -> FundDistribution:
        """
        Realize one distribution of a rule from the family wallet into the child's sub-account.

        Without ``by`` the payout is initiated on the family's behalf by the
        rule's creator, or by a live admin when the creator has retired.
        """
        resolver = self.resolver()
        rule = resolver.get_as(rule_id, FundingRuleNode)
        if rule is None:
            raise NotFound(f"No funding rule with id '{rule_id}'", {"id": rule_id})
        wallet = resolver.wallet(rule.family_id)
        destination = resolver.sub_account(rule.child_id, rule.sub_account)
        if wallet is None or destination is None:
            raise NotFound("Rule endpoints are missing", {"rule_id": rule_id})
        description = rule.description or getattr(rule, "title", None) or f"{type(rule).__name__} payout"
        return self.record_transaction(
            "fund_distribution",
            source_id=wallet.id,
            destination_id=destination.id,
            amount=rule.amount,
            initiator_id=by or self._payout_initiator(resolver, rule),
            description=description,
            timestamp=at,
            rule_id=rule.id,
        )

    # -- transactions ---------------------------------------------------------

    def record_transaction(
        self,
        kind: str,
        source_id: str,
        destination_id: str,
        amount: int,
        initiator_id: str,
        description: str = "",
        timestamp: datetime | None = None,
        rule_id: str | None = None,
    ) -> TransactionNode:
        """
        Validate and append one transaction.

        The endpoint accounts are held for the whole compare-validate-apply
        sequence; the transaction and both balance effects are published in
        a single commit or not at all.
        """
        tx_cls = TRANSACTION_TYPES.get(kind)
        if tx_cls is None:
            raise SchemaViolation(f"'{kind}' is not a transaction variant", {"kind": kind})
        fields: dict[str, Any] = {
            "amount": amount,
            "source_id": source_id,
            "destination_id": destination_id,
            "initiator_id": initiator_id,
            "description": description,
            "timestamp": self.now(timestamp),
        }
        if rule_id is not None:
            fields["rule_id"] = rule_id
        tx = create_node(tx_cls, **fields)

        try:
            with self.graph.serialize([source_id, destination_id]):
                projection = self.engine.validate(self.graph.snapshot(), tx)
                self.graph.commit(lambda draft: draft.append_transaction(tx))
        except LedgerError as e:
            logger.warning("Rejected %s of %s: %s [%s]", kind, amount, e.message, e.code)
            raise
        logger.info(
            "Committed %s %s: %s -> %s amount=%s (source balance %s)",
            kind, tx.id, source_id, destination_id, amount, projection.source_balance,
        )
        return tx

    # -- retirement -----------------------------------------------------------

    def retire_rule(self, rule_id: str, by: str) -> FundingRuleNode:
        def mutate(draft: StateDraft) -> FundingRuleNode:
            rule = draft.get(rule_id)
            if not isinstance(rule, FundingRuleNode):
                raise NotFound(f"No funding rule with id '{rule_id}'", {"id": rule_id})
            self._require_admin(draft, rule.family_id, by)
            draft.retire(rule_id)
            return rule

        return self._commit("retire_rule", mutate)

    def _check_retirable(self, resolver: GraphResolver, account_id: str) -> None:
        account = resolver.require(account_id)
        if is_a(account, Capability.BOUNDED):
            balance = resolver.balance(account_id)
            if balance != 0:
                raise DeletionBlocked(
                    "Account still holds a balance",
                    {"account_id": account_id, "balance": balance},
                )
        if resolver.sub_account_rules(account_id):
            raise DeletionBlocked("A live funding rule still targets this account", {"account_id": account_id})

    def retire_account(self, account_id: str, by: str) -> BaseNode:
        """Retire an external funding account. Family and child accounts retire with their owner."""
        resolver = self.resolver()
        account = resolver.get_as(account_id, ExternalFundingAccount)
        if account is None:
            raise NotFound(f"No external funding account with id '{account_id}'", {"id": account_id})
        owner = resolver.require(account.owner_id)

        def mutate(draft: StateDraft) -> ExternalFundingAccount:
            if by != owner.id:
                self._require_admin(draft, owner.family_id, by)
            # Under the commit lock the published snapshot is the draft's base
            self._check_retirable(self.resolver(), account_id)
            draft.retire(account_id)
            return account

        with self.graph.serialize([account_id]):
            return self._commit("retire_account", mutate)

    def retire_user(self, user_id: str, by: str) -> BaseNode:
        """
        Retire a child or a parent.

        A child retires with its accounts, which must all be empty and not
        targeted by a live rule. A family keeps at least one admin. Every
        check runs inside the commit, so concurrent retirements are decided
        against each other's outcome.
        """
        resolver = self.resolver()
        user = resolver.get(user_id, Capability.USER)
        if user is None:
            raise NotFound(f"No user with id '{user_id}'", {"id": user_id})
        if user.family_id is None:
            raise SchemaViolation("Only family members can be retired", {"id": user_id})

        accounts: list[str] = []
        if isinstance(user, Child):
            composite = resolver.child_account(user_id)
            accounts = [s.id for s in resolver.sub_accounts(composite.id)] + [composite.id]
        elif isinstance(user, Parent):
            accounts = list(resolver.state.edges_from(user_id, "funding_accounts"))

        def mutate(draft: StateDraft) -> BaseNode:
            self._require_admin(draft, user.family_id, by)
            if not draft.is_live(user_id):
                raise DanglingReference(f"'{user_id}' has already been retired", {"id": user_id})
            current = self.resolver()
            if isinstance(user, Child) and current.child_rules(user_id):
                raise DeletionBlocked("Live funding rules still target this child", {"id": user_id})
            if is_a(user, Capability.FAMILY_ADMIN):
                others = [a for a in draft.targets(user.family_id, "admins") if a != user_id and draft.is_live(a)]
                if not others:
                    raise DeletionBlocked("A family keeps at least one admin", {"id": user_id})
            for account_id in accounts:
                if draft.is_live(account_id):
                    self._check_retirable(current, account_id)
                    draft.retire(account_id)
            draft.retire(user_id)
            return user

        with self.graph.serialize(accounts):
            return self._commit("retire_user", mutate)
