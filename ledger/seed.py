"""Demo data loaded at startup when SEED_DEMO_DATA is set."""

import logging
from dataclasses import dataclass

from ledger.service import LedgerService
from nodes import Address, RecipientCategory, Recurrence, SubAccountKind, UserRole

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DemoIds:
    institution_id: str
    family_id: str
    parent_id: str
    child_id: str
    funding_account_id: str
    allowance_id: str
    chore_id: str
    store_id: str


def seed_demo(service: LedgerService) -> DemoIds:
    institution = service.register_institution("First Family Bank", routing_number="021000021")
    family = service.create_family(
        "Rivera",
        parent_name="Alex Rivera",
        institution_id=institution.id,
        email="alex@example.com",
        address=Address(line1="12 Elm St", city="Springfield", region="IL", postal_code="62704"),
    )
    parent = service.resolver().admins(family.id)[0]
    service.add_parent(family.id, "Sam Rivera", by=parent.id, roles=(UserRole.FUNDER, UserRole.APPROVER))
    child = service.add_child(family.id, "Jamie", by=parent.id)
    service.add_device(child.id, "Jamie's tablet", platform="android")

    card = service.add_funding_account(parent.id, institution_name="First Family Bank", last_four="4242")
    wallet = service.resolver().wallet(family.id)
    service.record_transaction(
        "fund_transfer",
        source_id=card.id,
        destination_id=wallet.id,
        amount=10_000,
        initiator_id=parent.id,
        description="Initial top-up",
    )

    allowance = service.create_rule(
        "allowance", child.id, 500, by=parent.id,
        recurrence=Recurrence.WEEKLY, description="Weekly allowance",
    )
    chore = service.create_rule(
        "chore", child.id, 300, by=parent.id,
        sub_account=SubAccountKind.SAVE, title="Mow the lawn",
    )
    service.apply_rule(chore.id)
    store = service.add_payment_recipient("Corner Bookshop", category=RecipientCategory.STORE)

    logger.info("Seeded demo family %s (child %s)", family.id, child.id)
    return DemoIds(
        institution_id=institution.id,
        family_id=family.id,
        parent_id=parent.id,
        child_id=child.id,
        funding_account_id=card.id,
        allowance_id=allowance.id,
        chore_id=chore.id,
        store_id=store.id,
    )
