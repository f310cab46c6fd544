"""
GraphQL schema for the family ledger graph.

Every object type wraps one immutable node (``model``) and resolves its
relationships through the request's GraphResolver, which is bound to a
single graph snapshot. Interfaces mirror the capability interfaces of the
entity model; resolvers always return the concrete variant types so
clients can select on ``__typename``.
"""

import logging
from datetime import date, datetime
from enum import Enum
from typing import Annotated, Any, List, Optional, Union

import strawberry
from graphql import GraphQLError
from graphql.validation import NoSchemaIntrospectionCustomRule
from strawberry.extensions import AddValidationRules
from strawberry.types import ExecutionContext, Info

import nodes
from errors import LedgerError
from ledger.schedule import due_rules, next_due, run_due_rules
from ledger.service import LedgerService
from nodes import Capability
from nodes.compat import LEGACY_NAMES, LEGACY_ROLES, SCHEMA_VERSION
from resolvers.resolver import GraphResolver

logger = logging.getLogger(__name__)

UserRole = strawberry.enum(nodes.UserRole, description="Role a parent holds in the family")
SubAccountKind = strawberry.enum(nodes.SubAccountKind, description="Purpose of a child's sub-account")
Recurrence = strawberry.enum(nodes.Recurrence, description="How often a funding rule pays out")
RecipientCategory = strawberry.enum(nodes.RecipientCategory)


@strawberry.enum(description="Transaction variants")
class TransactionKind(Enum):
    FUND_TRANSFER = "fund_transfer"
    FUND_DISTRIBUTION = "fund_distribution"
    EXTERNAL_PAYMENT = "external_payment"
    SUB_ACCOUNT_TRANSFER = "sub_account_transfer"
    FUNDING_REQUEST = "funding_request"


def _resolver(info: Info) -> GraphResolver:
    return info.context["resolver"]


def _service(info: Info) -> LedgerService:
    return info.context["service"]


def wrap(model: Optional[nodes.BaseNode]) -> Any:
    """GraphQL object for a node, typed by its concrete variant."""
    if model is None:
        return None
    return GRAPHQL_TYPES[model.node_type](model=model)


def wrap_all(models) -> list:
    return [wrap(m) for m in models]


@strawberry.type
class Address:
    city: str
    line1: Optional[str] = None
    region: Optional[str] = None
    postal_code: Optional[str] = None
    country: str = "US"

    @classmethod
    def from_model(cls, address: Optional[nodes.Address]) -> Optional["Address"]:
        if address is None:
            return None
        return cls(**address.model_dump())


# -- interfaces ---------------------------------------------------------------

@strawberry.interface(description="An identity-bearing entity")
class Node:
    model: strawberry.Private[Any]

    @strawberry.field
    def id(self) -> strawberry.ID:
        return strawberry.ID(self.model.id)

    @strawberry.field
    def created_at(self) -> datetime:
        return self.model.created_at

    @strawberry.field
    def updated_at(self) -> datetime:
        return self.model.updated_at

    @strawberry.field(description="Retired entities keep their id and history")
    def retired(self, info: Info) -> bool:
        return _resolver(info).is_retired(self.model.id)


@strawberry.interface
class User(Node):
    @strawberry.field
    def user_name(self) -> str:
        return self.model.user_name

    @strawberry.field
    def address(self) -> Optional[Address]:
        return Address.from_model(self.model.address)

    @strawberry.field
    def family(self, info: Info) -> Optional["Family"]:
        return wrap(_resolver(info).family_of(self.model))

    @strawberry.field
    def devices(self, info: Info) -> List["Device"]:
        return wrap_all(_resolver(info).expand(self.model.id, "devices"))


@strawberry.interface(description="A user allowed to administer families: a parent or an institution")
class FamilyAdmin(User):
    @strawberry.field
    def administers(self, info: Info) -> List["Family"]:
        r = _resolver(info)
        return wrap_all(r.live(r.expand(self.model.id, "administers")))


@strawberry.interface
class Account(Node):
    @strawberry.field
    def name(self) -> Optional[str]:
        return self.model.name

    @strawberry.field(description="Balance in minor currency units, audited against the account history")
    def balance(self, info: Info) -> int:
        return _resolver(info).balance(self.model.id)

    @strawberry.field(description="Committed transactions in chronological order")
    def transactions(self, info: Info) -> List["Transaction"]:
        return wrap_all(_resolver(info).transactions(self.model.id))


@strawberry.interface(description="A purpose sub-account of a child's account")
class SubAccount(Account):
    @strawberry.field
    def kind(self) -> SubAccountKind:
        return self.model.kind

    @strawberry.field
    def parent_account(self, info: Info) -> Optional["ChildAccount"]:
        return wrap(_resolver(info).get_as(self.model.parent_account_id, nodes.ChildAccount))

    @strawberry.field
    def owner(self, info: Info) -> Optional["Child"]:
        return wrap(_resolver(info).get_as(self.model.owner_id, nodes.Child))

    @strawberry.field(description="Live funding rules paying into this sub-account")
    def rules(self, info: Info) -> List["FundingRule"]:
        return wrap_all(_resolver(info).sub_account_rules(self.model.id))


@strawberry.interface
class FundingRule(Node):
    @strawberry.field
    def amount(self) -> int:
        return self.model.amount

    @strawberry.field
    def recurrence(self) -> Recurrence:
        return self.model.recurrence

    @strawberry.field
    def sub_account_kind(self) -> SubAccountKind:
        return self.model.sub_account

    @strawberry.field
    def description(self) -> Optional[str]:
        return self.model.description

    @strawberry.field
    def child(self, info: Info) -> Optional["Child"]:
        return wrap(_resolver(info).get_as(self.model.child_id, nodes.Child))

    @strawberry.field
    def creator(self, info: Info) -> Optional[FamilyAdmin]:
        return wrap(_resolver(info).get(self.model.creator_id, Capability.FAMILY_ADMIN))

    @strawberry.field
    def family(self, info: Info) -> Optional["Family"]:
        return wrap(_resolver(info).family_of(self.model))

    @strawberry.field
    def target_account(self, info: Info) -> Optional[SubAccount]:
        return wrap(_resolver(info).sub_account(self.model.child_id, self.model.sub_account))

    @strawberry.field
    def distributions(self, info: Info) -> List["FundDistribution"]:
        return wrap_all(_resolver(info).distributions(self.model.id))

    @strawberry.field(description="When the next scheduled distribution falls due")
    def next_due(self, info: Info) -> Optional[datetime]:
        return next_due(self.model, _resolver(info).state)


@strawberry.interface
class Transaction(Node):
    @strawberry.field
    def amount(self) -> int:
        return self.model.amount

    @strawberry.field
    def timestamp(self) -> datetime:
        return self.model.timestamp

    @strawberry.field
    def description(self) -> str:
        return self.model.description

    @strawberry.field
    def source(self, info: Info) -> "TransactionEndpoint":
        return wrap(_resolver(info).require(self.model.source_id))

    @strawberry.field
    def destination(self, info: Info) -> "TransactionEndpoint":
        return wrap(_resolver(info).require(self.model.destination_id))

    @strawberry.field
    def initiator(self, info: Info) -> User:
        return wrap(_resolver(info).require(self.model.initiator_id))


# -- families and users -------------------------------------------------------

@strawberry.type
class Family(Node):
    @strawberry.field
    def name(self) -> str:
        return self.model.name

    @strawberry.field
    def institution(self, info: Info) -> Optional["FinancialInstitution"]:
        return wrap(_resolver(info).institution(self.model))

    @strawberry.field
    def children(self, info: Info) -> List["Child"]:
        return wrap_all(_resolver(info).children(self.model.id))

    @strawberry.field
    def admins(self, info: Info) -> List[FamilyAdmin]:
        return wrap_all(_resolver(info).admins(self.model.id))

    @strawberry.field
    def rules(self, info: Info) -> List[FundingRule]:
        return wrap_all(_resolver(info).family_rules(self.model.id))

    @strawberry.field
    def wallet(self, info: Info) -> Optional["Wallet"]:
        return wrap(_resolver(info).wallet(self.model.id))


@strawberry.type
class Parent(FamilyAdmin):
    @strawberry.field
    def roles(self) -> List[UserRole]:
        return list(self.model.roles)

    @strawberry.field
    def email(self) -> Optional[str]:
        return self.model.email

    @strawberry.field
    def funding_accounts(self, info: Info) -> List["ExternalFundingAccount"]:
        r = _resolver(info)
        return wrap_all(r.live(r.expand(self.model.id, "funding_accounts")))


@strawberry.type
class FinancialInstitution(FamilyAdmin):
    @strawberry.field
    def routing_number(self) -> Optional[str]:
        return self.model.routing_number

    @strawberry.field
    def families(self, info: Info) -> List[Family]:
        r = _resolver(info)
        return wrap_all(r.live(r.expand(self.model.id, "families")))


@strawberry.type
class Child(User):
    @strawberry.field
    def date_of_birth(self) -> Optional[date]:
        return self.model.date_of_birth

    @strawberry.field
    def account(self, info: Info) -> Optional["ChildAccount"]:
        return wrap(_resolver(info).child_account(self.model.id))

    @strawberry.field
    def rules(self, info: Info, include_retired: bool = False) -> List[FundingRule]:
        return wrap_all(_resolver(info).child_rules(self.model.id, include_retired=include_retired))

    @strawberry.field
    def sub_account(self, info: Info, kind: SubAccountKind) -> Optional[SubAccount]:
        return wrap(_resolver(info).sub_account(self.model.id, kind))


@strawberry.type
class Device(Node):
    @strawberry.field
    def label(self) -> str:
        return self.model.label

    @strawberry.field
    def platform(self) -> Optional[str]:
        return self.model.platform

    @strawberry.field
    def user(self, info: Info) -> Optional[User]:
        return wrap(_resolver(info).get(self.model.user_id, Capability.USER))


# -- accounts and endpoints ---------------------------------------------------

@strawberry.type(description="The family's pooled account")
class Wallet(Account):
    @strawberry.field
    def family(self, info: Info) -> Optional[Family]:
        return wrap(_resolver(info).get_as(self.model.owner_id, nodes.Family))


@strawberry.type(description="A child's composite account; its balance is the sum of its sub-accounts")
class ChildAccount(Account):
    @strawberry.field
    def child(self, info: Info) -> Optional[Child]:
        return wrap(_resolver(info).get_as(self.model.owner_id, nodes.Child))

    @strawberry.field
    def sub_accounts(self, info: Info) -> List[SubAccount]:
        return wrap_all(_resolver(info).sub_accounts(self.model.id))


@strawberry.type
class SpendAccount(SubAccount):
    pass


@strawberry.type
class SaveAccount(SubAccount):
    @strawberry.field
    def goal_amount(self) -> Optional[int]:
        return self.model.goal_amount


@strawberry.type
class GiveAccount(SubAccount):
    @strawberry.field
    def charity(self) -> Optional[str]:
        return self.model.charity


@strawberry.type
class EarnAccount(SubAccount):
    pass


@strawberry.type
class InvestAccount(SubAccount):
    pass


@strawberry.type(description="A parent's outside source of money; its balance is what has been drawn")
class ExternalFundingAccount(Account):
    @strawberry.field
    def institution_name(self) -> Optional[str]:
        return self.model.institution_name

    @strawberry.field
    def last_four(self) -> Optional[str]:
        return self.model.last_four

    @strawberry.field
    def owner(self, info: Info) -> Optional[Parent]:
        return wrap(_resolver(info).get_as(self.model.owner_id, nodes.Parent))


@strawberry.type(description="A store or charity money can be paid out to")
class PaymentRecipient(Node):
    @strawberry.field
    def name(self) -> str:
        return self.model.name

    @strawberry.field
    def category(self) -> RecipientCategory:
        return self.model.category

    @strawberry.field
    def transactions(self, info: Info) -> List[Transaction]:
        return wrap_all(_resolver(info).transactions(self.model.id))


# -- rules and transactions ---------------------------------------------------

@strawberry.type
class Allowance(FundingRule):
    pass


@strawberry.type
class Chore(FundingRule):
    @strawberry.field
    def title(self) -> str:
        return self.model.title


@strawberry.type(description="External funding account to family wallet")
class FundTransfer(Transaction):
    pass


@strawberry.type(description="Family wallet to a child's sub-account under a funding rule")
class FundDistribution(Transaction):
    @strawberry.field
    def rule(self, info: Info) -> Optional[FundingRule]:
        return wrap(_resolver(info).get(self.model.rule_id, Capability.FUNDING_RULE))


@strawberry.type(description="Sub-account to a store or charity")
class ExternalPayment(Transaction):
    pass


@strawberry.type(description="Between two sub-accounts of the same child")
class SubAccountTransfer(Transaction):
    pass


@strawberry.type(description="Family wallet to a sub-account, requested by the child")
class FundingRequest(Transaction):
    pass


TransactionEndpoint = Annotated[
    Union[
        Wallet,
        SpendAccount,
        SaveAccount,
        GiveAccount,
        EarnAccount,
        InvestAccount,
        ExternalFundingAccount,
        PaymentRecipient,
    ],
    strawberry.union("TransactionEndpoint"),
]

# node_type -> GraphQL object type
GRAPHQL_TYPES: dict[str, type] = {
    "family": Family,
    "parent": Parent,
    "financial_institution": FinancialInstitution,
    "child": Child,
    "device": Device,
    "wallet": Wallet,
    "child_account": ChildAccount,
    "spend_account": SpendAccount,
    "save_account": SaveAccount,
    "give_account": GiveAccount,
    "earn_account": EarnAccount,
    "invest_account": InvestAccount,
    "external_funding_account": ExternalFundingAccount,
    "payment_recipient": PaymentRecipient,
    "allowance": Allowance,
    "chore": Chore,
    "fund_transfer": FundTransfer,
    "fund_distribution": FundDistribution,
    "external_payment": ExternalPayment,
    "sub_account_transfer": SubAccountTransfer,
    "funding_request": FundingRequest,
}


# -- schema metadata ----------------------------------------------------------

@strawberry.type
class LegacyName:
    legacy: str
    current: str


@strawberry.type(description="Schema revision and the historical names it replaces")
class SchemaInfo:
    version: int
    legacy_names: List[LegacyName]
    legacy_roles: List[LegacyName]


@strawberry.type
class RuleFailure:
    rule_id: strawberry.ID
    code: str
    message: str


@strawberry.type
class ScheduleResult:
    ran_at: datetime
    applied: List[FundDistribution]
    failures: List[RuleFailure]


# -- inputs -------------------------------------------------------------------

@strawberry.input
class AddressInput:
    city: str
    line1: Optional[str] = None
    region: Optional[str] = None
    postal_code: Optional[str] = None
    country: str = "US"

    def to_model(self) -> nodes.Address:
        return nodes.Address(
            line1=self.line1,
            city=self.city,
            region=self.region,
            postal_code=self.postal_code,
            country=self.country,
        )


def _address(value: Optional[AddressInput]) -> Optional[nodes.Address]:
    return value.to_model() if value is not None else None


# -- root types ---------------------------------------------------------------

@strawberry.type
class Query:
    @strawberry.field(description="Any entity by id")
    def node(self, info: Info, id: strawberry.ID) -> Optional[Node]:
        return wrap(_resolver(info).get(id))

    @strawberry.field
    def family(self, info: Info, id: strawberry.ID) -> Optional[Family]:
        return wrap(_resolver(info).get(id, Capability.FAMILY))

    @strawberry.field
    def families(self, info: Info) -> List[Family]:
        r = _resolver(info)
        return wrap_all(r.live(r.all_of(Capability.FAMILY)))

    @strawberry.field
    def user(self, info: Info, id: strawberry.ID) -> Optional[User]:
        return wrap(_resolver(info).get(id, Capability.USER))

    @strawberry.field
    def child(self, info: Info, id: strawberry.ID) -> Optional[Child]:
        return wrap(_resolver(info).get(id, Capability.DEPENDENT))

    @strawberry.field
    def account(self, info: Info, id: strawberry.ID) -> Optional[Account]:
        return wrap(_resolver(info).get(id, Capability.ACCOUNT))

    @strawberry.field
    def rule(self, info: Info, id: strawberry.ID) -> Optional[FundingRule]:
        return wrap(_resolver(info).get(id, Capability.FUNDING_RULE))

    @strawberry.field
    def transaction(self, info: Info, id: strawberry.ID) -> Optional[Transaction]:
        return wrap(_resolver(info).get(id, Capability.TRANSACTION))

    @strawberry.field
    def institution(self, info: Info, id: strawberry.ID) -> Optional[FinancialInstitution]:
        return wrap(_resolver(info).get_as(id, nodes.FinancialInstitution))

    @strawberry.field
    def institutions(self, info: Info) -> List[FinancialInstitution]:
        r = _resolver(info)
        return wrap_all(n for n in r.all_of(Capability.FAMILY_ADMIN) if isinstance(n, nodes.FinancialInstitution))

    @strawberry.field
    def payment_recipients(self, info: Info) -> List[PaymentRecipient]:
        r = _resolver(info)
        return wrap_all(r.live(r.all_of(Capability.PAYEE)))

    @strawberry.field(description="Funding rules due at the given instant (default: now)")
    def due_rules(self, info: Info, now: Optional[datetime] = None) -> List[FundingRule]:
        service = _service(info)
        return wrap_all(due_rules(_resolver(info).state, service.now(now)))

    @strawberry.field
    def schema_info(self) -> SchemaInfo:
        return SchemaInfo(
            version=SCHEMA_VERSION,
            legacy_names=[LegacyName(legacy=k, current=v) for k, v in LEGACY_NAMES.items()],
            legacy_roles=[LegacyName(legacy=k, current=v) for k, v in LEGACY_ROLES.items()],
        )


def _committed(info: Info, model: nodes.BaseNode) -> Any:
    """Rebind the request to the post-commit snapshot and wrap the result."""
    info.context["resolver"] = _service(info).resolver()
    return wrap(model)


@strawberry.type
class Mutation:
    @strawberry.mutation
    def register_institution(
        self,
        info: Info,
        user_name: str,
        routing_number: Optional[str] = None,
        address: Optional[AddressInput] = None,
    ) -> FinancialInstitution:
        institution = _service(info).register_institution(user_name, routing_number, _address(address))
        return _committed(info, institution)

    @strawberry.mutation(description="Create a family with its wallet and first parent")
    def create_family(
        self,
        info: Info,
        name: str,
        parent_name: str,
        institution_id: Optional[strawberry.ID] = None,
        email: Optional[str] = None,
        address: Optional[AddressInput] = None,
    ) -> Family:
        family = _service(info).create_family(
            name,
            parent_name,
            institution_id=institution_id,
            email=email,
            address=_address(address),
        )
        return _committed(info, family)

    @strawberry.mutation
    def add_parent(
        self,
        info: Info,
        family_id: strawberry.ID,
        user_name: str,
        by: strawberry.ID,
        roles: Optional[List[UserRole]] = None,
        email: Optional[str] = None,
    ) -> Parent:
        kwargs = {"roles": tuple(roles)} if roles else {}
        parent = _service(info).add_parent(family_id, user_name, by=by, email=email, **kwargs)
        return _committed(info, parent)

    @strawberry.mutation
    def add_institution_admin(
        self, info: Info, family_id: strawberry.ID, institution_id: strawberry.ID, by: strawberry.ID
    ) -> Family:
        return _committed(info, _service(info).add_institution_admin(family_id, institution_id, by=by))

    @strawberry.mutation(description="Add a child with its account and five sub-accounts")
    def add_child(
        self,
        info: Info,
        family_id: strawberry.ID,
        user_name: str,
        by: strawberry.ID,
        date_of_birth: Optional[date] = None,
    ) -> Child:
        child = _service(info).add_child(family_id, user_name, by=by, date_of_birth=date_of_birth)
        return _committed(info, child)

    @strawberry.mutation
    def add_device(
        self, info: Info, user_id: strawberry.ID, label: str, platform: Optional[str] = None
    ) -> Device:
        return _committed(info, _service(info).add_device(user_id, label, platform))

    @strawberry.mutation
    def add_funding_account(
        self,
        info: Info,
        parent_id: strawberry.ID,
        institution_name: Optional[str] = None,
        last_four: Optional[str] = None,
        name: Optional[str] = None,
    ) -> ExternalFundingAccount:
        account = _service(info).add_funding_account(parent_id, institution_name, last_four, name)
        return _committed(info, account)

    @strawberry.mutation
    def add_payment_recipient(
        self, info: Info, name: str, category: RecipientCategory = RecipientCategory.STORE
    ) -> PaymentRecipient:
        return _committed(info, _service(info).add_payment_recipient(name, category))

    @strawberry.mutation
    def create_allowance(
        self,
        info: Info,
        child_id: strawberry.ID,
        amount: int,
        by: strawberry.ID,
        recurrence: Recurrence = Recurrence.WEEKLY,
        sub_account: SubAccountKind = SubAccountKind.SPEND,
        description: Optional[str] = None,
    ) -> Allowance:
        rule = _service(info).create_rule(
            "allowance", child_id, amount, by=by,
            recurrence=recurrence, sub_account=sub_account, description=description,
        )
        return _committed(info, rule)

    @strawberry.mutation
    def create_chore(
        self,
        info: Info,
        child_id: strawberry.ID,
        amount: int,
        by: strawberry.ID,
        title: str,
        recurrence: Recurrence = Recurrence.ONE_TIME,
        sub_account: SubAccountKind = SubAccountKind.SPEND,
        description: Optional[str] = None,
    ) -> Chore:
        rule = _service(info).create_rule(
            "chore", child_id, amount, by=by, title=title,
            recurrence=recurrence, sub_account=sub_account, description=description,
        )
        return _committed(info, rule)

    @strawberry.mutation
    def record_transaction(
        self,
        info: Info,
        kind: TransactionKind,
        source_id: strawberry.ID,
        destination_id: strawberry.ID,
        amount: int,
        initiator_id: strawberry.ID,
        description: str = "",
        timestamp: Optional[datetime] = None,
        rule_id: Optional[strawberry.ID] = None,
    ) -> Transaction:
        tx = _service(info).record_transaction(
            kind.value,
            source_id=source_id,
            destination_id=destination_id,
            amount=amount,
            initiator_id=initiator_id,
            description=description,
            timestamp=timestamp,
            rule_id=rule_id,
        )
        return _committed(info, tx)

    @strawberry.mutation(description="Pay one distribution of a rule (e.g. a completed chore)")
    def apply_rule(
        self,
        info: Info,
        rule_id: strawberry.ID,
        by: Optional[strawberry.ID] = None,
        at: Optional[datetime] = None,
    ) -> FundDistribution:
        return _committed(info, _service(info).apply_rule(rule_id, by=by, at=at))

    @strawberry.mutation(description="Apply every recurring rule that is due")
    def run_due_rules(self, info: Info, now: Optional[datetime] = None) -> ScheduleResult:
        service = _service(info)
        run = run_due_rules(service, service.now(now))
        info.context["resolver"] = service.resolver()
        return ScheduleResult(
            ran_at=run.now,
            applied=wrap_all(run.applied),
            failures=[
                RuleFailure(rule_id=strawberry.ID(rule_id), code=e.code, message=e.message)
                for rule_id, e in run.failures
            ],
        )

    @strawberry.mutation
    def retire_rule(self, info: Info, rule_id: strawberry.ID, by: strawberry.ID) -> FundingRule:
        return _committed(info, _service(info).retire_rule(rule_id, by=by))

    @strawberry.mutation
    def retire_account(self, info: Info, account_id: strawberry.ID, by: strawberry.ID) -> ExternalFundingAccount:
        return _committed(info, _service(info).retire_account(account_id, by=by))

    @strawberry.mutation
    def retire_user(self, info: Info, user_id: strawberry.ID, by: strawberry.ID) -> User:
        return _committed(info, _service(info).retire_user(user_id, by=by))


class LedgerSchema(strawberry.Schema):
    """Schema that logs domain rejections quietly and everything else with a traceback."""

    def process_errors(
        self,
        errors: List[GraphQLError],
        execution_context: Optional[ExecutionContext] = None,
    ) -> None:
        for error in errors:
            original = error.original_error
            if original is None:
                logger.warning("Invalid GraphQL request: %s", error.message)
            elif isinstance(original, LedgerError):
                logger.warning("GraphQL %s rejected: %s [%s]", error.path, original.message, original.code)
            else:
                logger.error("GraphQL error at %s: %s", error.path, error.message, exc_info=original)


def create_schema(introspection: bool = True) -> LedgerSchema:
    extensions = [] if introspection else [AddValidationRules([NoSchemaIntrospectionCustomRule])]
    return LedgerSchema(
        query=Query,
        mutation=Mutation,
        types=list(GRAPHQL_TYPES.values()),
        extensions=extensions,
    )
