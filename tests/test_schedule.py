import unittest
from datetime import datetime, timedelta

from ledger.schedule import add_months, due_rules, next_due, run_due_rules
from nodes import Recurrence, SubAccountKind

from tests.ledger_fixtures import build_family, fund_wallet, new_service


class TestAddMonths(unittest.TestCase):
    def test_same_day(self):
        self.assertEqual(add_months(datetime(2024, 3, 15, 8), 1), datetime(2024, 4, 15, 8))

    def test_clamped_to_month_end(self):
        self.assertEqual(add_months(datetime(2024, 1, 31), 1), datetime(2024, 2, 29))
        self.assertEqual(add_months(datetime(2023, 1, 31), 1), datetime(2023, 2, 28))

    def test_year_rollover(self):
        self.assertEqual(add_months(datetime(2024, 11, 30), 3), datetime(2025, 2, 28))


class TestSchedule(unittest.TestCase):
    def setUp(self):
        self.service = new_service()
        self.f = build_family(self.service)
        self.weekly = self.service.create_rule(
            "allowance", self.f.child.id, 25, by=self.f.parent.id, recurrence=Recurrence.WEEKLY
        )
        self.monthly = self.service.create_rule(
            "allowance", self.f.child.id, 100, by=self.f.parent.id,
            recurrence=Recurrence.MONTHLY, sub_account=SubAccountKind.INVEST,
        )
        self.chore = self.service.create_rule(
            "chore", self.f.child.id, 10, by=self.f.parent.id, title="Feed the cat"
        )

    def test_next_due(self):
        state = self.service.snapshot()
        self.assertEqual(next_due(self.weekly, state), self.weekly.created_at + timedelta(weeks=1))
        self.assertEqual(next_due(self.monthly, state), add_months(self.monthly.created_at, 1))
        self.assertEqual(next_due(self.chore, state), self.chore.created_at)

    def test_next_due_advances_with_distributions(self):
        fund_wallet(self.service, self.f, 100)
        self.service.apply_rule(self.weekly.id)
        self.service.apply_rule(self.chore.id)

        state = self.service.snapshot()
        self.assertEqual(next_due(self.weekly, state), self.weekly.created_at + timedelta(weeks=2))
        self.assertIsNone(next_due(self.chore, state))

    def test_one_time_chores_are_not_scheduled(self):
        now = self.weekly.created_at + timedelta(days=8)
        due = [r.id for r in due_rules(self.service.snapshot(), now)]
        self.assertEqual(due, [self.weekly.id])

    def test_retired_rule_is_never_due(self):
        self.service.retire_rule(self.weekly.id, by=self.f.parent.id)
        self.assertIsNone(next_due(self.weekly, self.service.snapshot()))

    def test_run_catches_up_missed_periods(self):
        fund_wallet(self.service, self.f, 1000)
        now = self.weekly.created_at + timedelta(days=15)
        run = run_due_rules(self.service, now)

        self.assertEqual(run.failures, [])
        self.assertEqual([tx.rule_id for tx in run.applied], [self.weekly.id, self.weekly.id])
        self.assertEqual(self.service.resolver().balance(self.f.spend.id), 50)

        # Running again at the same instant pays nothing twice
        self.assertEqual(run_due_rules(self.service, now).applied, [])

    def test_monthly_rule(self):
        fund_wallet(self.service, self.f, 1000)
        now = add_months(self.monthly.created_at, 1)
        run = run_due_rules(self.service, now)

        applied = [tx.rule_id for tx in run.applied]
        self.assertIn(self.monthly.id, applied)
        invest = self.service.resolver().sub_account(self.f.child.id, SubAccountKind.INVEST)
        self.assertEqual(self.service.resolver().balance(invest.id), 100)

    def test_retired_creator_does_not_stop_payouts(self):
        sam = self.service.add_parent(self.f.family.id, "Sam", by=self.f.parent.id)
        rule = self.service.create_rule(
            "allowance", self.f.child.id, 15, by=sam.id, recurrence=Recurrence.WEEKLY, sub_account=SubAccountKind.GIVE
        )
        fund_wallet(self.service, self.f, 1000)
        self.service.retire_user(sam.id, by=self.f.parent.id)

        run = run_due_rules(self.service, rule.created_at + timedelta(weeks=1))

        self.assertEqual(run.failures, [])
        paid = [tx for tx in run.applied if tx.rule_id == rule.id]
        self.assertEqual(len(paid), 1)
        self.assertEqual(paid[0].initiator_id, self.f.parent.id)

    def test_failures_are_reported(self):
        now = self.weekly.created_at + timedelta(days=8)
        run = run_due_rules(self.service, now)

        self.assertEqual(run.applied, [])
        self.assertEqual([(rule_id, e.code) for rule_id, e in run.failures], [(self.weekly.id, "NEGATIVE_BALANCE")])


if __name__ == "__main__":
    unittest.main()
