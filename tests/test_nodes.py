import unittest

from pydantic import ValidationError

from errors import SchemaViolation
from nodes import (
    CAPABILITY_CATALOG,
    NODE_TYPES,
    SUB_ACCOUNT_TYPES,
    Capability,
    Child,
    ExternalFundingAccount,
    Family,
    Parent,
    PaymentRecipient,
    SpendAccount,
    SubAccountKind,
    UserRole,
    Wallet,
    create_node,
    is_a,
)
from nodes.compat import LEGACY_ROLES, current_name


class TestCatalog(unittest.TestCase):
    def test_every_variant_is_catalogued(self):
        self.assertEqual(set(NODE_TYPES), set(CAPABILITY_CATALOG))

    def test_sub_account_registry_covers_every_kind(self):
        self.assertEqual(set(SUB_ACCOUNT_TYPES), set(SubAccountKind))
        for kind, cls in SUB_ACCOUNT_TYPES.items():
            self.assertEqual(cls.kind, kind)

    def test_family_admins(self):
        admins = {t for t, caps in CAPABILITY_CATALOG.items() if Capability.FAMILY_ADMIN in caps}
        self.assertEqual(admins, {"parent", "financial_institution"})


class TestConstruction(unittest.TestCase):
    def test_variant_mismatch_is_schema_violation(self):
        with self.assertRaises(SchemaViolation):
            Family(node_type="child", name="Rivera")

    def test_declared_capabilities_must_match_catalog(self):
        with self.assertRaises(SchemaViolation):
            Wallet(owner_id="f1", capabilities=Capability.IDENTITY | Capability.ACCOUNT)

        wallet = Wallet(owner_id="f1", capabilities=CAPABILITY_CATALOG["wallet"])
        self.assertEqual(wallet.capabilities, CAPABILITY_CATALOG["wallet"])

    def test_create_node_reports_field_errors(self):
        with self.assertRaises(SchemaViolation) as ctx:
            create_node(ExternalFundingAccount, owner_id="p1", last_four="42")

        fields = [e["field"] for e in ctx.exception.data["validation_errors"]]
        self.assertIn("last_four", fields)
        self.assertEqual(ctx.exception.code, "SCHEMA_VIOLATION")

    def test_ids_are_unique_and_nodes_immutable(self):
        a = Child(user_name="Jamie")
        b = Child(user_name="Jamie")
        self.assertNotEqual(a.id, b.id)

        with self.assertRaises(ValidationError):
            a.user_name = "Other"

    def test_parent_roles(self):
        parent = Parent(user_name="Alex", roles=(UserRole.FUNDER,))
        self.assertTrue(parent.has_role(UserRole.FUNDER))
        self.assertFalse(parent.has_role(UserRole.OWNER))


class TestIsA(unittest.TestCase):
    def test_wallet_is_source_and_destination(self):
        wallet = Wallet(owner_id="f1")
        self.assertTrue(is_a(wallet, Capability.TRANSACTION_SOURCE))
        self.assertTrue(is_a(wallet, Capability.TRANSACTION_DESTINATION))
        self.assertTrue(is_a(wallet, Capability.TRANSACTION_SOURCE | Capability.BOUNDED))

    def test_payment_recipient_is_destination_only(self):
        store = PaymentRecipient(name="Corner Bookshop")
        self.assertTrue(is_a(store, Capability.TRANSACTION_DESTINATION))
        self.assertFalse(is_a(store, Capability.TRANSACTION_SOURCE))
        self.assertFalse(is_a(store, Capability.ACCOUNT))

    def test_external_funding_is_unbounded(self):
        card = ExternalFundingAccount(owner_id="p1")
        self.assertTrue(is_a(card, Capability.TRANSACTION_SOURCE))
        self.assertFalse(is_a(card, Capability.TRANSACTION_DESTINATION))
        self.assertFalse(is_a(card, Capability.BOUNDED))

    def test_sub_account(self):
        spend = SpendAccount(owner_id="c1", parent_account_id="a1")
        self.assertTrue(is_a(spend, Capability.SUB_ACCOUNT))
        self.assertFalse(is_a(spend, Capability.WALLET))


class TestCompat(unittest.TestCase):
    def test_legacy_names(self):
        self.assertEqual(current_name("Group"), "Family")
        self.assertEqual(current_name("CardHolder"), "Child")
        self.assertEqual(current_name("Payout"), "FundDistribution")
        self.assertEqual(current_name("Family"), "Family")

    def test_legacy_roles_are_parent_roles(self):
        for legacy, role in LEGACY_ROLES.items():
            self.assertEqual(current_name(legacy), "Parent")
            self.assertIn(role, {r.value for r in UserRole})


if __name__ == "__main__":
    unittest.main()
