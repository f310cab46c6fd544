import threading
import unittest

from errors import (
    CapabilityMismatch,
    LedgerError,
    DanglingReference,
    DeletionBlocked,
    InvalidAmount,
    MembershipMismatch,
    NegativeBalance,
    NotFound,
    RuleMismatch,
    SchemaViolation,
)
from ledger.seed import seed_demo
from nodes import Capability, Recurrence, SubAccountKind, UserRole

from tests.ledger_fixtures import build_family, fund_wallet, new_service


class TestScenarios(unittest.TestCase):
    def setUp(self):
        self.service = new_service()
        self.f = build_family(self.service)
        self.allowance = self.service.create_rule(
            "allowance", self.f.child.id, 50, by=self.f.parent.id, recurrence=Recurrence.WEEKLY
        )

    def test_distribution_from_empty_wallet_fails(self):
        before = self.service.snapshot()
        with self.assertRaises(NegativeBalance):
            self.service.apply_rule(self.allowance.id)

        after = self.service.resolver()
        self.assertIs(after.state, before)
        self.assertEqual(after.balance(self.f.wallet.id), 0)
        self.assertEqual(after.balance(self.f.spend.id), 0)

    def test_funded_wallet_distributes(self):
        fund_wallet(self.service, self.f, 100)
        self.service.apply_rule(self.allowance.id)

        resolver = self.service.resolver()
        self.assertEqual(resolver.balance(self.f.wallet.id), 50)
        self.assertEqual(resolver.balance(self.f.spend.id), 50)
        self.assertEqual(resolver.balance(self.f.card.id), -100)

    def test_rule_distributions_are_ordered(self):
        fund_wallet(self.service, self.f, 100)
        first = self.service.apply_rule(self.allowance.id)
        second = self.service.apply_rule(self.allowance.id)

        distributions = self.service.resolver().distributions(self.allowance.id)
        self.assertEqual([d.id for d in distributions], [first.id, second.id])
        self.assertLessEqual(distributions[0].timestamp, distributions[1].timestamp)

    def test_sub_account_rules_are_filtered_by_kind(self):
        chore = self.service.create_rule(
            "chore", self.f.child.id, 20, by=self.f.parent.id, title="Dishes", sub_account=SubAccountKind.SAVE
        )
        gift = self.service.create_rule(
            "allowance", self.f.child.id, 5, by=self.f.parent.id, sub_account=SubAccountKind.GIVE
        )

        resolver = self.service.resolver()
        spend = resolver.sub_account(self.f.child.id, SubAccountKind.SPEND)
        self.assertEqual([r.id for r in resolver.sub_account_rules(spend.id)], [self.allowance.id])
        self.assertEqual([r.id for r in resolver.sub_account_rules(self.f.save.id)], [chore.id])
        self.assertEqual([r.id for r in resolver.sub_account_rules(self.f.give.id)], [gift.id])
        self.assertEqual(len(resolver.child_rules(self.f.child.id)), 3)


class TestAdministration(unittest.TestCase):
    def setUp(self):
        self.service = new_service()
        self.f = build_family(self.service)

    def test_new_child_gets_account_and_sub_accounts(self):
        resolver = self.service.resolver()
        account = resolver.child_account(self.f.child.id)
        kinds = [s.kind for s in resolver.sub_accounts(account.id)]
        self.assertEqual(kinds, list(SubAccountKind))
        self.assertEqual(resolver.balance(account.id), 0)
        self.assertEqual([c.id for c in resolver.children(self.f.family.id)], [self.f.child.id])

    def test_family_admins(self):
        second = self.service.add_parent(self.f.family.id, "Sam", by=self.f.parent.id, roles=(UserRole.APPROVER,))
        admins = [a.id for a in self.service.resolver().admins(self.f.family.id)]
        self.assertEqual(admins, [self.f.parent.id, self.f.institution.id, second.id])

    def test_retired_admin_cannot_act(self):
        sam = self.service.add_parent(self.f.family.id, "Sam", by=self.f.parent.id)
        self.service.retire_user(sam.id, by=self.f.parent.id)

        with self.assertRaises(DanglingReference):
            self.service.add_child(self.f.family.id, "Ghost", by=sam.id)
        with self.assertRaises(DanglingReference):
            self.service.add_parent(self.f.family.id, "Ghost", by=sam.id)
        with self.assertRaises(DanglingReference):
            self.service.create_rule("allowance", self.f.child.id, 10, by=sam.id)
        self.assertEqual([c.id for c in self.service.resolver().children(self.f.family.id)], [self.f.child.id])

    def test_child_cannot_administer(self):
        with self.assertRaises(CapabilityMismatch):
            self.service.add_child(self.f.family.id, "Riley", by=self.f.child.id)

    def test_admin_of_other_family_rejected(self):
        other = build_family(self.service, "Okafor", "Tobi")
        with self.assertRaises(MembershipMismatch):
            self.service.create_rule("allowance", self.f.child.id, 10, by=other.parent.id)
        with self.assertRaises(MembershipMismatch):
            self.service.add_child(self.f.family.id, "Riley", by=other.institution.id)

    def test_institution_may_create_rules(self):
        rule = self.service.create_rule("allowance", self.f.child.id, 10, by=self.f.institution.id)
        self.assertIsNotNone(self.service.resolver().get(rule.id, Capability.FUNDING_RULE))

    def test_rule_validation(self):
        with self.assertRaises(InvalidAmount):
            self.service.create_rule("allowance", self.f.child.id, 0, by=self.f.parent.id)
        with self.assertRaises(SchemaViolation):
            self.service.create_rule("bonus", self.f.child.id, 10, by=self.f.parent.id)
        with self.assertRaises(SchemaViolation):
            # chores need a title
            self.service.create_rule("chore", self.f.child.id, 10, by=self.f.parent.id)
        with self.assertRaises(NotFound):
            self.service.create_rule("allowance", "missing", 10, by=self.f.parent.id)

    def test_unknown_institution(self):
        with self.assertRaises(NotFound):
            self.service.create_family("Lee", parent_name="Kim", institution_id="missing")

    def test_devices(self):
        device = self.service.add_device(self.f.child.id, "tablet", platform="android")
        self.assertEqual(
            [d.id for d in self.service.resolver().expand(self.f.child.id, "devices")],
            [device.id],
        )


class TestTransactions(unittest.TestCase):
    def setUp(self):
        self.service = new_service()
        self.f = build_family(self.service)
        fund_wallet(self.service, self.f, 100)

    def test_child_request_and_payment(self):
        self.service.record_transaction(
            "funding_request",
            source_id=self.f.wallet.id,
            destination_id=self.f.spend.id,
            amount=30,
            initiator_id=self.f.child.id,
        )
        self.service.record_transaction(
            "sub_account_transfer",
            source_id=self.f.spend.id,
            destination_id=self.f.save.id,
            amount=10,
            initiator_id=self.f.child.id,
        )
        self.service.record_transaction(
            "external_payment",
            source_id=self.f.spend.id,
            destination_id=self.f.store.id,
            amount=15,
            initiator_id=self.f.child.id,
            description="Comic book",
        )

        resolver = self.service.resolver()
        self.assertEqual(resolver.balance(self.f.spend.id), 5)
        self.assertEqual(resolver.balance(self.f.save.id), 10)
        self.assertEqual(resolver.balance(self.f.wallet.id), 70)
        self.assertEqual(resolver.balance(self.f.store.id), 15)

        account = resolver.child_account(self.f.child.id)
        self.assertEqual(resolver.balance(account.id), 15)
        kinds = [tx.node_type for tx in resolver.transactions(account.id)]
        self.assertEqual(kinds, ["funding_request", "sub_account_transfer", "external_payment"])

    def test_balance_conservation(self):
        for amount in (7, 11, 13):
            self.service.record_transaction(
                "funding_request",
                source_id=self.f.wallet.id,
                destination_id=self.f.save.id,
                amount=amount,
                initiator_id=self.f.child.id,
            )
        state = self.service.snapshot()
        accounts = [n.id for n in state.nodes_of(Capability.TRANSACTION_SOURCE)]
        accounts += [n.id for n in state.nodes_of(Capability.PAYEE)]
        self.assertEqual(sum(state.balance(a) for a in accounts), 0)

    def test_equal_timestamps_keep_commit_order(self):
        at = self.service.now()
        first = self.service.record_transaction(
            "funding_request", self.f.wallet.id, self.f.save.id, 5, self.f.child.id, timestamp=at
        )
        second = self.service.record_transaction(
            "funding_request", self.f.wallet.id, self.f.spend.id, 5, self.f.child.id, timestamp=at
        )
        account = self.service.resolver().child_account(self.f.child.id)
        self.assertEqual([tx.id for tx in self.service.resolver().transactions(account.id)], [first.id, second.id])

    def test_concurrent_drains_never_overdraw(self):
        # Five writers each take 60 of the wallet's 100 into a different sub-account
        targets = [self.f.spend, self.f.save, self.f.give]
        resolver = self.service.resolver()
        targets += [resolver.sub_account(self.f.child.id, k) for k in (SubAccountKind.EARN, SubAccountKind.INVEST)]
        barrier = threading.Barrier(len(targets))
        succeeded, failed = [], []

        def drain(destination_id):
            barrier.wait()
            try:
                succeeded.append(self.service.record_transaction(
                    "funding_request", self.f.wallet.id, destination_id, 60, self.f.child.id
                ))
            except LedgerError as e:
                failed.append(e)

        threads = [threading.Thread(target=drain, args=(t.id,)) for t in targets]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(len(succeeded), 1)
        self.assertEqual([type(e) for e in failed], [NegativeBalance] * 4)
        resolver = self.service.resolver()
        self.assertEqual(resolver.balance(self.f.wallet.id), 40)
        self.assertEqual(resolver.balance(resolver.child_account(self.f.child.id).id), 60)

    def test_rejected_transaction_leaves_no_trace(self):
        before = self.service.snapshot()
        with self.assertRaises(NegativeBalance):
            self.service.record_transaction(
                "external_payment",
                source_id=self.f.spend.id,
                destination_id=self.f.store.id,
                amount=1,
                initiator_id=self.f.child.id,
            )
        self.assertIs(self.service.snapshot(), before)

    def test_unknown_kind(self):
        with self.assertRaises(SchemaViolation):
            self.service.record_transaction(
                "refund",
                source_id=self.f.store.id,
                destination_id=self.f.spend.id,
                amount=1,
                initiator_id=self.f.parent.id,
            )


class TestRetirement(unittest.TestCase):
    def setUp(self):
        self.service = new_service()
        self.f = build_family(self.service)
        self.rule = self.service.create_rule("allowance", self.f.child.id, 40, by=self.f.parent.id)
        fund_wallet(self.service, self.f, 100)
        self.service.apply_rule(self.rule.id)

    def test_child_with_live_rule_is_blocked(self):
        with self.assertRaises(DeletionBlocked):
            self.service.retire_user(self.f.child.id, by=self.f.parent.id)

    def test_child_with_balance_is_blocked(self):
        self.service.retire_rule(self.rule.id, by=self.f.parent.id)
        with self.assertRaises(DeletionBlocked):
            self.service.retire_user(self.f.child.id, by=self.f.parent.id)

    def test_retired_child_keeps_history(self):
        self.service.retire_rule(self.rule.id, by=self.f.parent.id)
        self.service.record_transaction(
            "external_payment",
            source_id=self.f.spend.id,
            destination_id=self.f.store.id,
            amount=40,
            initiator_id=self.f.parent.id,
        )
        self.service.retire_user(self.f.child.id, by=self.f.parent.id)

        resolver = self.service.resolver()
        self.assertTrue(resolver.is_retired(self.f.child.id))
        self.assertTrue(resolver.is_retired(self.f.spend.id))
        self.assertEqual(resolver.children(self.f.family.id), [])
        self.assertEqual(len(resolver.transactions(self.f.spend.id)), 2)
        self.assertEqual(len(resolver.distributions(self.rule.id)), 1)

        with self.assertRaises(DanglingReference):
            self.service.record_transaction(
                "funding_request",
                source_id=self.f.wallet.id,
                destination_id=self.f.spend.id,
                amount=1,
                initiator_id=self.f.child.id,
            )

    def test_retired_rule_cannot_pay(self):
        self.service.retire_rule(self.rule.id, by=self.f.parent.id)
        with self.assertRaises(RuleMismatch):
            self.service.apply_rule(self.rule.id)
        self.assertEqual(self.service.resolver().child_rules(self.f.child.id), [])
        self.assertEqual(len(self.service.resolver().child_rules(self.f.child.id, include_retired=True)), 1)

    def test_last_admin_stays(self):
        service = new_service()
        family = service.create_family("Lee", parent_name="Kim")
        parent = service.resolver().admins(family.id)[0]
        with self.assertRaises(DeletionBlocked):
            service.retire_user(parent.id, by=parent.id)

    def test_concurrent_admin_retirements_keep_one(self):
        service = new_service()
        family = service.create_family("Lee", parent_name="Kim")
        kim = service.resolver().admins(family.id)[0]
        sam = service.add_parent(family.id, "Sam", by=kim.id)
        barrier = threading.Barrier(2)
        outcomes = []

        def retire(user_id):
            barrier.wait()
            try:
                service.retire_user(user_id, by=user_id)
                outcomes.append("retired")
            except DeletionBlocked:
                outcomes.append("blocked")

        threads = [threading.Thread(target=retire, args=(u,)) for u in (kim.id, sam.id)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(sorted(outcomes), ["blocked", "retired"])
        self.assertEqual(len(service.resolver().admins(family.id)), 1)

    def test_retired_account_lock_is_released(self):
        self.service.retire_account(self.f.card.id, by=self.f.parent.id)
        tracked = self.service.graph.tracked_accounts()
        self.assertNotIn(self.f.card.id, tracked)
        self.assertIn(self.f.wallet.id, tracked)

    def test_funding_account_retirement(self):
        self.service.retire_account(self.f.card.id, by=self.f.parent.id)
        self.assertTrue(self.service.resolver().is_retired(self.f.card.id))
        with self.assertRaises(DanglingReference):
            fund_wallet(self.service, self.f, 10)


class TestSeed(unittest.TestCase):
    def test_demo_family(self):
        service = new_service()
        ids = seed_demo(service)

        resolver = service.resolver()
        self.assertEqual(len(resolver.admins(ids.family_id)), 3)
        self.assertEqual(resolver.balance(ids.funding_account_id), -10_000)
        self.assertEqual(resolver.balance(resolver.wallet(ids.family_id).id), 9_700)
        save = resolver.sub_account(ids.child_id, SubAccountKind.SAVE)
        self.assertEqual(resolver.balance(save.id), 300)
        self.assertEqual(len(resolver.child_rules(ids.child_id)), 2)


if __name__ == "__main__":
    unittest.main()
