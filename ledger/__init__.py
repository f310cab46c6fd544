"""Write path: administrative operations, transactions and rule scheduling."""

from ledger.schedule import ScheduleRun, due_rules, next_due, run_due_rules
from ledger.service import LedgerService

__all__ = ["LedgerService", "ScheduleRun", "due_rules", "next_due", "run_due_rules"]
