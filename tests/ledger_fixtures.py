"""Shared builders for ledger tests."""

from dataclasses import dataclass
from datetime import datetime, timedelta

from ledger.service import LedgerService
from nodes import (
    Child,
    ExternalFundingAccount,
    Family,
    FinancialInstitution,
    Parent,
    PaymentRecipient,
    SubAccount,
    SubAccountKind,
    Wallet,
)


class SteppingClock:
    """Deterministic clock that advances one second per call."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 9, 0), step: timedelta = timedelta(seconds=1)):
        self.current = start
        self.step = step

    def __call__(self) -> datetime:
        self.current += self.step
        return self.current


@dataclass
class FamilyFixture:
    institution: FinancialInstitution
    family: Family
    parent: Parent
    child: Child
    card: ExternalFundingAccount
    wallet: Wallet
    spend: SubAccount
    save: SubAccount
    give: SubAccount
    store: PaymentRecipient


def new_service() -> LedgerService:
    return LedgerService(clock=SteppingClock())


def build_family(service: LedgerService, name: str = "Rivera", child_name: str = "Jamie") -> FamilyFixture:
    institution = service.register_institution(f"{name} Bank")
    family = service.create_family(name, parent_name=f"Alex {name}", institution_id=institution.id)
    parent = service.resolver().admins(family.id)[0]
    child = service.add_child(family.id, child_name, by=parent.id)
    card = service.add_funding_account(parent.id, institution_name=f"{name} Bank", last_four="4242")
    store = service.add_payment_recipient("Corner Bookshop")
    resolver = service.resolver()
    return FamilyFixture(
        institution=institution,
        family=family,
        parent=parent,
        child=child,
        card=card,
        wallet=resolver.wallet(family.id),
        spend=resolver.sub_account(child.id, SubAccountKind.SPEND),
        save=resolver.sub_account(child.id, SubAccountKind.SAVE),
        give=resolver.sub_account(child.id, SubAccountKind.GIVE),
        store=store,
    )


def fund_wallet(service: LedgerService, f: FamilyFixture, amount: int):
    return service.record_transaction(
        "fund_transfer",
        source_id=f.card.id,
        destination_id=f.wallet.id,
        amount=amount,
        initiator_id=f.parent.id,
    )
